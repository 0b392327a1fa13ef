"""
In-process reference backend.

Evaluates the deposit/spend constraints directly (see core.circuits) and,
if they hold, attests to the public signals with a deterministic ECDSA
signature (P-256, RFC 6979) from the backend's prover key:

    proof = Sign_sk(SHA-256(circuit_id || signal_0 || ... || signal_n))

Verification checks the signature with the published verification key.

This is NOT zero-knowledge and NOT succinct. The attestation only says
"a process holding the prover key saw a satisfying witness". It exists for
tests, local development and as a constraint oracle next to a real backend.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from Crypto.Hash import SHA256
from Crypto.PublicKey import ECC
from Crypto.Signature import DSS

from shieldpool.core.circuits import (
    DEPOSIT_CIRCUIT,
    ConstraintViolation,
    evaluate_deposit,
    evaluate_spend,
    spend_circuit,
)
from shieldpool.exceptions import ProvingFailedError, ProvingUnavailableError
from shieldpool.proving.backend import BackendProof, ProvingBackend
from shieldpool.utils.encoding import FIELD_BYTES

logger = logging.getLogger(__name__)

Evaluator = Callable[[Mapping[str, Any], Mapping[str, Any]], List[int]]


def attestation_digest(circuit_id: str, public_signals: Sequence[int]) -> SHA256.SHA256Hash:
    """Hash object over the circuit id and the 32-byte encoded signals."""
    h = SHA256.new(circuit_id.encode("utf-8") + b"\x00")
    for signal in public_signals:
        h.update(int(signal).to_bytes(FIELD_BYTES, byteorder="big"))
    return h


class ReferenceBackend(ProvingBackend):
    """Constraint-checking backend with ECDSA attestations."""

    name = "reference"
    CURVE = "P-256"

    def __init__(self, scheme, depth: int = 32, signing_key: Optional[ECC.EccKey] = None):
        """
        Args:
            scheme: CommitmentScheme the circuits are evaluated with
            depth: Merkle depth of the spend circuit
            signing_key: Prover key (generated if omitted)
        """
        self.scheme = scheme
        self.depth = depth
        self._signing_key = signing_key or ECC.generate(curve=self.CURVE)
        self._verifying_key = self._signing_key.public_key()

        spend = spend_circuit(depth)
        self.spend_circuit_id = spend.circuit_id
        self._evaluators: Dict[str, Evaluator] = {
            DEPOSIT_CIRCUIT.circuit_id: lambda pub, priv: evaluate_deposit(pub, priv, scheme),
            spend.circuit_id: lambda pub, priv: evaluate_spend(pub, priv, scheme, depth),
        }

    @property
    def verification_key(self) -> str:
        """PEM-encoded public key proofs verify against."""
        return self._verifying_key.export_key(format="PEM")

    def supports(self, circuit_id: str) -> bool:
        return circuit_id in self._evaluators

    def prove(
        self,
        circuit_id: str,
        private_witness: Mapping[str, Any],
        public_witness: Mapping[str, Any],
    ) -> BackendProof:
        evaluator = self._evaluators.get(circuit_id)
        if evaluator is None:
            raise ProvingUnavailableError(f"No circuit registered for '{circuit_id}'")

        try:
            public_signals = evaluator(public_witness, private_witness)
        except ConstraintViolation as e:
            logger.info(f"Reference prover rejected witness for {circuit_id}: {e.constraint}")
            raise ProvingFailedError(f"Witness does not satisfy {circuit_id}: {e.constraint}") from None

        signer = DSS.new(self._signing_key, "deterministic-rfc6979")
        signature = signer.sign(attestation_digest(circuit_id, public_signals))

        return BackendProof(circuit_id=circuit_id, proof=signature, public_signals=public_signals)

    def verify(self, circuit_id: str, proof: Any, public_signals: Sequence[int]) -> bool:
        if not self.supports(circuit_id):
            return False
        if not isinstance(proof, (bytes, bytearray)):
            return False
        try:
            verifier = DSS.new(self._verifying_key, "fips-186-3")
            verifier.verify(attestation_digest(circuit_id, public_signals), bytes(proof))
            return True
        except (ValueError, OverflowError):
            return False

    def __repr__(self) -> str:
        return f"ReferenceBackend(depth={self.depth}, circuits={sorted(self._evaluators)})"
