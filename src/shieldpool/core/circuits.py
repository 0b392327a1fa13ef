"""
Deposit and spend circuit definitions.

Each circuit is identified by a versioned id. Any change to the public
input layout or to a constraint needs a new id, since proofs made under the
old circuit stay valid only against the old verification key.

Signal names match the circom circuits the artifacts are built from, so a
witness assembled here can be written straight into a snarkjs input.json.

Deposit (public: commitment, token, denominationId):
    pubkey is private; commitment === H(amount, token, salt, pubkey)

Spend (public: root, nullifier, token, denominationId, newCommitment):
    pubkey      = K(privkey)
    commitment  = H(amount, token, salt, pubkey)
    root       === fold(commitment, pathElements, pathIndices)
    nullifier  === H(privkey, salt)
    newAmount  === amount
    newCommitment === H(newAmount, token, newSalt, newPubkey)
    pathIndices[i] * (1 - pathIndices[i]) === 0

The evaluate_* functions check these constraints outside any proof system.
The reference backend uses them as its constraint oracle.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple

from shieldpool.core.merkle_tree import compute_root
from shieldpool.utils.field import is_field_element


class ConstraintViolation(Exception):
    """A witness does not satisfy a circuit constraint.

    Carries only the constraint name, never witness values.
    """

    def __init__(self, constraint: str):
        super().__init__(f"Constraint not satisfied: {constraint}")
        self.constraint = constraint


@dataclass(frozen=True)
class CircuitDefinition:
    """Static description of one circuit version."""

    circuit_id: str
    artifact_name: str
    public_inputs: Tuple[str, ...]
    private_inputs: Tuple[str, ...]
    depth: int = 0  # Merkle depth for membership circuits
    array_inputs: Tuple[str, ...] = ()

    @property
    def all_inputs(self) -> Tuple[str, ...]:
        return self.public_inputs + self.private_inputs


DEPOSIT_CIRCUIT = CircuitDefinition(
    circuit_id="deposit-v1",
    artifact_name="deposit",
    public_inputs=("commitment", "token", "denominationId"),
    private_inputs=("amount", "salt", "pubkey"),
)

SPEND_PUBLIC_INPUTS = ("root", "nullifier", "token", "denominationId", "newCommitment")
SPEND_PRIVATE_INPUTS = (
    "amount",
    "salt",
    "privkey",
    "pathElements",
    "pathIndices",
    "newAmount",
    "newSalt",
    "newPubkey",
)


def spend_circuit(depth: int) -> CircuitDefinition:
    """Spend circuit definition for a Merkle tree of the given depth."""
    circuit_id = "spend-v1" if depth == 32 else f"spend-v1-d{depth}"
    return CircuitDefinition(
        circuit_id=circuit_id,
        artifact_name="spend",
        public_inputs=SPEND_PUBLIC_INPUTS,
        private_inputs=SPEND_PRIVATE_INPUTS,
        depth=depth,
        array_inputs=("pathElements", "pathIndices"),
    )


SPEND_CIRCUIT = spend_circuit(32)


def _assert(condition: bool, constraint: str) -> None:
    if not condition:
        raise ConstraintViolation(constraint)


def _scalar(inputs: Mapping[str, Any], name: str) -> int:
    value = inputs.get(name)
    _assert(is_field_element(value), f"{name} in field")
    return value


def evaluate_deposit(
    public: Mapping[str, Any], private: Mapping[str, Any], scheme
) -> List[int]:
    """
    Check the deposit constraints.

    Args:
        public: commitment, token, denominationId
        private: amount, salt, pubkey
        scheme: CommitmentScheme providing the hash

    Returns:
        List[int]: Public signals in circuit order

    Raises:
        ConstraintViolation: If any constraint fails
    """
    commitment = _scalar(public, "commitment")
    token = _scalar(public, "token")
    denomination = _scalar(public, "denominationId")
    amount = _scalar(private, "amount")
    salt = _scalar(private, "salt")
    pubkey = _scalar(private, "pubkey")

    computed = scheme.hasher.hash(amount, token, salt, pubkey)
    _assert(computed == commitment, "commitment === H(amount, token, salt, pubkey)")

    return [commitment, token, denomination]


def evaluate_spend(
    public: Mapping[str, Any], private: Mapping[str, Any], scheme, depth: int
) -> List[int]:
    """
    Check the spend constraints.

    Args:
        public: root, nullifier, token, denominationId, newCommitment
        private: amount, salt, privkey, pathElements, pathIndices,
            newAmount, newSalt, newPubkey
        scheme: CommitmentScheme providing hash and key derivation
        depth: Merkle depth the circuit was built for

    Returns:
        List[int]: Public signals in circuit order

    Raises:
        InputMalformedError: If privkey is not a canonical owner secret
        ConstraintViolation: If any constraint fails
    """
    root = _scalar(public, "root")
    nullifier = _scalar(public, "nullifier")
    token = _scalar(public, "token")
    denomination = _scalar(public, "denominationId")
    new_commitment = _scalar(public, "newCommitment")

    amount = _scalar(private, "amount")
    salt = _scalar(private, "salt")
    privkey = _scalar(private, "privkey")
    new_amount = _scalar(private, "newAmount")
    new_salt = _scalar(private, "newSalt")
    new_pubkey = _scalar(private, "newPubkey")

    elements = list(private.get("pathElements") or [])
    indices = list(private.get("pathIndices") or [])
    _assert(len(elements) == depth, "pathElements length")
    _assert(len(indices) == depth, "pathIndices length")
    _assert(all(is_field_element(e) for e in elements), "pathElements in field")
    _assert(all(i in (0, 1) for i in indices), "pathIndices binary")

    scheme.key_derivation.require_secret(privkey)
    pubkey = scheme.derive_public_key(privkey)
    commitment = scheme.hasher.hash(amount, token, salt, pubkey)
    _assert(
        compute_root(commitment, elements, indices, scheme.hasher) == root,
        "root === fold(commitment, path)",
    )
    _assert(scheme.nullify(privkey, salt) == nullifier, "nullifier === H(privkey, salt)")
    _assert(new_amount == amount, "newAmount === amount")
    _assert(
        scheme.hasher.hash(new_amount, token, new_salt, new_pubkey) == new_commitment,
        "newCommitment === H(newAmount, token, newSalt, newPubkey)",
    )

    return [root, nullifier, token, denomination, new_commitment]


def witness_to_json(witness: Dict[str, Any]) -> Dict[str, Any]:
    """Render a witness with decimal strings, as snarkjs expects."""
    rendered: Dict[str, Any] = {}
    for name, value in witness.items():
        if isinstance(value, (list, tuple)):
            rendered[name] = [str(v) for v in value]
        else:
            rendered[name] = str(value)
    return rendered
