"""Proving backend contract.

The proof system (circuit, prover, verifier) is external. A backend turns a
witness into a proof for a named circuit and checks proofs against public
signals. Public signal order must be deterministic per circuit.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Mapping, Sequence


@dataclass(frozen=True)
class BackendProof:
    """Backend-specific proof object plus its public signals."""

    circuit_id: str
    proof: Any
    public_signals: List[int]


class ProvingBackend(ABC):
    """
    External zero-knowledge proving backend.

    Implementations raise ProvingUnavailableError when they cannot run
    (missing artifacts or binaries), ProvingTimeoutError when they run out of
    time, and ProvingFailedError when the witness does not satisfy the
    circuit.
    """

    name = "abstract"

    @abstractmethod
    def prove(
        self,
        circuit_id: str,
        private_witness: Mapping[str, Any],
        public_witness: Mapping[str, Any],
    ) -> BackendProof:
        """Generate a proof."""

    @abstractmethod
    def verify(self, circuit_id: str, proof: Any, public_signals: Sequence[int]) -> bool:
        """Verify a proof (backend object or canonical bytes)."""

    def encode_proof(self, proof: Any) -> bytes:
        """Canonical byte encoding of a backend proof object."""
        if isinstance(proof, (bytes, bytearray)):
            return bytes(proof)
        raise TypeError(f"{type(self).__name__} cannot encode {type(proof).__name__}")

    def supports(self, circuit_id: str) -> bool:
        """Whether this backend can prove circuit_id."""
        return True
