"""
Poseidon hash over the BN254 scalar field, circomlib parameters.

Arithmetic hash used for note commitments, nullifiers and Merkle nodes.
The permutation follows Grassi et al. (2019), "Poseidon: A New Hash
Function for Zero-Knowledge Proof Systems", instantiated exactly as
circomlib's `Poseidon(n)` template:

    - State width t = n_inputs + 1 (capacity element 0, placed first)
    - S-box x^5
    - R_F = 8 full rounds (4 before, 4 after the partial rounds)
    - R_P partial rounds per width: 56, 57, 56, 60, 60, 63 for t = 2..7
    - Round constants and the Cauchy MDS matrix drawn from the Grain LFSR
      of the Poseidon reference parameter script (prime field, x^alpha
      S-box, n = 254 bits)

Constants are regenerated from the LFSR once per width and cached, so the
tables never have to be shipped. The output is state[0] after the
permutation, which makes digests interchangeable with circomlib circuits
and circomlibjs / poseidon-lite.

Example:
    >>> from shieldpool.crypto.poseidon import poseidon
    >>> poseidon(1, 2)
    7853200120776062878684798364095072458815029376092732009249414926327459813530
"""

from abc import ABC, abstractmethod
from collections import deque
from functools import lru_cache
from typing import List, Tuple

from shieldpool.exceptions import InputMalformedError
from shieldpool.utils.field import FIELD_MODULUS, require_field

FULL_ROUNDS = 8
# Partial rounds indexed by t - 2
PARTIAL_ROUNDS = (56, 57, 56, 60, 60, 63)
MAX_INPUTS = len(PARTIAL_ROUNDS)
ALPHA = 5

FIELD_BITS = FIELD_MODULUS.bit_length()


class Hasher(ABC):
    """Fixed-arity arithmetic hash over the proving field."""

    @abstractmethod
    def hash(self, *inputs: int) -> int:
        """Hash one or more field elements into a field element."""

    def hash_pair(self, left: int, right: int) -> int:
        """Hash two Merkle children."""
        return self.hash(left, right)


def _bits(value: int, width: int) -> List[int]:
    return [int(b) for b in format(value, f"0{width}b")]


class GrainLFSR:
    """
    80-bit Grain shift register used to draw Poseidon parameters.

    Seeded with the field type, S-box type, field size, width and round
    counts, clocked 160 times, then filtered through self-shrinking: bits
    are read in pairs and the second bit is kept only when the first is 1.
    """

    def __init__(self, field_bits: int, t: int, full_rounds: int, partial_rounds: int):
        seed = (
            _bits(1, 2)  # prime field
            + _bits(0, 4)  # x^alpha S-box
            + _bits(field_bits, 12)
            + _bits(t, 12)
            + _bits(full_rounds, 10)
            + _bits(partial_rounds, 10)
            + [1] * 30
        )
        self._state = deque(seed, maxlen=80)
        for _ in range(160):
            self._clock()

    def _clock(self) -> int:
        s = self._state
        bit = s[62] ^ s[51] ^ s[38] ^ s[23] ^ s[13] ^ s[0]
        s.append(bit)
        return bit

    def random_bits(self, count: int) -> int:
        """Return the next `count` output bits as a big-endian integer."""
        value = 0
        for _ in range(count):
            bit = self._clock()
            while bit == 0:
                self._clock()
                bit = self._clock()
            value = (value << 1) | self._clock()
        return value

    def field_element(self) -> int:
        """Draw a canonical field element by rejection sampling."""
        while True:
            value = self.random_bits(FIELD_BITS)
            if value < FIELD_MODULUS:
                return value


def _cauchy_mds(lfsr: GrainLFSR, t: int) -> Tuple[Tuple[int, ...], ...]:
    p = FIELD_MODULUS
    while True:
        draws = [lfsr.random_bits(FIELD_BITS) % p for _ in range(2 * t)]
        while len(set(draws)) != len(draws):
            draws = [lfsr.random_bits(FIELD_BITS) % p for _ in range(2 * t)]
        xs, ys = draws[:t], draws[t:]
        if all((x + y) % p for x in xs for y in ys):
            return tuple(
                tuple(pow(x + y, p - 2, p) for y in ys)
                for x in xs
            )


@lru_cache(maxsize=None)
def poseidon_parameters(t: int) -> Tuple[Tuple[int, ...], Tuple[Tuple[int, ...], ...], int]:
    """
    Return (round_constants, mds_matrix, partial_rounds) for state width t.

    Constants are computed once per width and cached for the process.
    """
    if t < 2 or t > MAX_INPUTS + 1:
        raise InputMalformedError(f"Unsupported Poseidon width: {t}")

    partial_rounds = PARTIAL_ROUNDS[t - 2]
    total_rounds = FULL_ROUNDS + partial_rounds

    lfsr = GrainLFSR(FIELD_BITS, t, FULL_ROUNDS, partial_rounds)
    round_constants = tuple(lfsr.field_element() for _ in range(total_rounds * t))
    mds = _cauchy_mds(lfsr, t)

    return round_constants, mds, partial_rounds


def poseidon_permutation(state: List[int]) -> List[int]:
    """Apply the Poseidon permutation to a full state vector."""
    t = len(state)
    round_constants, mds, partial_rounds = poseidon_parameters(t)
    p = FIELD_MODULUS
    half_full = FULL_ROUNDS // 2
    state = list(state)

    for r in range(FULL_ROUNDS + partial_rounds):
        offset = r * t
        state = [(s + round_constants[offset + i]) % p for i, s in enumerate(state)]

        if r < half_full or r >= half_full + partial_rounds:
            state = [pow(s, ALPHA, p) for s in state]
        else:
            state[0] = pow(state[0], ALPHA, p)

        state = [
            sum(row[j] * state[j] for j in range(t)) % p
            for row in mds
        ]

    return state


class PoseidonHasher(Hasher):
    """Poseidon sponge with a single squeeze, 1 to 6 inputs."""

    def hash(self, *inputs: int) -> int:
        if not inputs:
            raise InputMalformedError("Poseidon needs at least one input")
        if len(inputs) > MAX_INPUTS:
            raise InputMalformedError(f"Poseidon supports at most {MAX_INPUTS} inputs")

        for i, value in enumerate(inputs):
            require_field(value, f"hash input {i}")

        return poseidon_permutation([0, *inputs])[0]

    def __repr__(self) -> str:
        return "PoseidonHasher(bn254)"


_default_hasher = PoseidonHasher()


def default_hasher() -> Hasher:
    """Return the process-wide Poseidon instance."""
    return _default_hasher


def poseidon(*inputs: int) -> int:
    """Convenience wrapper around the default PoseidonHasher."""
    return _default_hasher.hash(*inputs)
