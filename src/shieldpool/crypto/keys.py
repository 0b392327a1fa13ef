"""
Owner key derivation.

A note names its owner by a public identifier derived from the owner's
secret. Two derivations are provided behind the KeyDerivation interface:

    SquareKeyDerivation
        pk = secret^2 mod p. Matches the reference spend circuit, which
        constrains pubkey <== privkey * privkey. Trivially invertible by
        a modular square root, so it must never protect real value.

    BabyJubjubKeyDerivation
        pk = H(x, y) where (x, y) = secret * Base8 on Baby Jubjub, the
        twisted Edwards curve a*x^2 + y^2 = 1 + d*x^2*y^2 defined over the
        BN254 scalar field (EIP-2494). Discrete-log hard.
"""

import logging
import secrets
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from shieldpool.crypto.poseidon import Hasher, default_hasher
from shieldpool.exceptions import InputMalformedError
from shieldpool.utils.field import FIELD_MODULUS, require_field

logger = logging.getLogger(__name__)

Point = Tuple[int, int]

# Baby Jubjub parameters (EIP-2494)
BABYJUB_A = 168700
BABYJUB_D = 168696
BABYJUB_SUBORDER = 2736030358979909402780800718157159386076813972158567259200215660948447373041
BABYJUB_BASE8: Point = (
    5299619240641551281634865583518297030282874472190772894086521144482721001553,
    16950150798460657717958625567821834550301663161624707787222815936182638968203,
)
IDENTITY: Point = (0, 1)


class KeyDerivation(ABC):
    """Derives an owner's public identifier from their secret."""

    name = "abstract"

    # Secrets must lie in [1, secret_bound) so each key has exactly one secret
    secret_bound = FIELD_MODULUS

    def require_secret(self, secret: int) -> int:
        """
        Reject secrets outside the canonical range of this derivation.

        Two secrets that map to the same public key would open the same note
        under different nullifiers, so only one representative is accepted.

        Raises:
            FieldRangeError: If secret is not a field element
            InputMalformedError: If secret is zero or above the canonical bound
        """
        require_field(secret, "owner secret")
        if not 1 <= secret < self.secret_bound:
            raise InputMalformedError(f"owner secret is not canonical for {self.name} keys")
        return secret

    def random_secret(self) -> int:
        """Draw a uniformly random canonical secret."""
        return 1 + secrets.randbelow(self.secret_bound - 1)

    @abstractmethod
    def public_key(self, secret: int) -> int:
        """Return the public identifier for secret."""


class SquareKeyDerivation(KeyDerivation):
    """Placeholder derivation pk = secret^2, compatible with the reference circuit."""

    name = "square"
    # s and p - s share a square
    secret_bound = (FIELD_MODULUS - 1) // 2 + 1

    def __init__(self):
        logger.warning(
            "SquareKeyDerivation is not one-way; use only with the reference circuit"
        )

    def public_key(self, secret: int) -> int:
        self.require_secret(secret)
        return secret * secret % FIELD_MODULUS


def is_on_curve(point: Point) -> bool:
    """Check a*x^2 + y^2 == 1 + d*x^2*y^2."""
    p = FIELD_MODULUS
    x, y = point
    x2 = x * x % p
    y2 = y * y % p
    return (BABYJUB_A * x2 + y2) % p == (1 + BABYJUB_D * x2 * y2) % p


def point_add(p1: Point, p2: Point) -> Point:
    """Twisted Edwards addition (complete for Baby Jubjub)."""
    p = FIELD_MODULUS
    x1, y1 = p1
    x2, y2 = p2
    x1y2 = x1 * y2 % p
    y1x2 = y1 * x2 % p
    y1y2 = y1 * y2 % p
    x1x2 = x1 * x2 % p
    dxy = BABYJUB_D * x1x2 * y1y2 % p

    x3 = (x1y2 + y1x2) * pow((1 + dxy) % p, p - 2, p) % p
    y3 = (y1y2 - BABYJUB_A * x1x2) * pow((1 - dxy) % p, p - 2, p) % p
    return x3, y3


def scalar_mult(scalar: int, point: Point) -> Point:
    """Double-and-add scalar multiplication."""
    result = IDENTITY
    addend = point
    while scalar:
        if scalar & 1:
            result = point_add(result, addend)
        addend = point_add(addend, addend)
        scalar >>= 1
    return result


class BabyJubjubKeyDerivation(KeyDerivation):
    """pk = H(secret * Base8), discrete-log hard."""

    name = "babyjubjub"
    secret_bound = BABYJUB_SUBORDER

    def __init__(self, hasher: Optional[Hasher] = None):
        self.hasher = hasher or default_hasher()

    def public_point(self, secret: int) -> Point:
        return scalar_mult(self.require_secret(secret), BABYJUB_BASE8)

    def public_key(self, secret: int) -> int:
        x, y = self.public_point(secret)
        return self.hasher.hash(x, y)


def get_key_derivation(name: str, hasher: Optional[Hasher] = None) -> KeyDerivation:
    """
    Build a KeyDerivation by configuration name.

    Args:
        name: "square" or "babyjubjub"
        hasher: Hasher for the curve point compression (babyjubjub only)

    Raises:
        ValueError: If name is unknown
    """
    if name == SquareKeyDerivation.name:
        return SquareKeyDerivation()
    if name == BabyJubjubKeyDerivation.name:
        return BabyJubjubKeyDerivation(hasher)
    raise ValueError(f"Unknown key derivation: {name}")
