"""
Proof gateway: uniform front door to a proving backend.

Order of work for every proof request:

    1. Structural validation of the witness (cheap, local)
    2. Backend call, optionally under a timeout
    3. Echo check: backend public signals must equal the declared ones
    4. Conversion into the canonical ProofRecord

Anything wrong with the caller's input fails in step 1 and never reaches the
backend.
"""

import asyncio
import functools
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Mapping, Optional, Sequence

from shieldpool.core.circuits import CircuitDefinition
from shieldpool.exceptions import (
    InputMalformedError,
    ProvingTimeoutError,
    ProvingUnavailableError,
    PublicSignalMismatchError,
)
from shieldpool.models.schemas import ProofRecord
from shieldpool.proving.backend import BackendProof, ProvingBackend
from shieldpool.utils.field import require_field

logger = logging.getLogger(__name__)


class ProofGateway:
    """Wraps a ProvingBackend with validation, timeouts and canonical output."""

    def __init__(
        self,
        backend: ProvingBackend,
        timeout: Optional[float] = None,
        max_workers: int = 2,
    ):
        """
        Args:
            backend: The external proving backend
            timeout: Seconds a single proof may take (None = unbounded)
            max_workers: Worker threads for timed and async proving
        """
        if timeout is not None and timeout <= 0:
            raise ValueError("Timeout must be positive")
        self.backend = backend
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="shieldpool-prover"
        )

    def validate_witness(
        self,
        circuit: CircuitDefinition,
        private_witness: Mapping[str, Any],
        public_witness: Mapping[str, Any],
    ) -> None:
        """
        Check presence, field range and array lengths of every circuit input.

        Raises:
            InputMalformedError: On the first structural problem found
        """
        for names, witness, kind in (
            (circuit.public_inputs, public_witness, "public"),
            (circuit.private_inputs, private_witness, "private"),
        ):
            for name in names:
                if name not in witness or witness[name] is None:
                    raise InputMalformedError(f"Missing {kind} input: {name}")

                value = witness[name]
                if name in circuit.array_inputs:
                    if not isinstance(value, (list, tuple)) or len(value) != circuit.depth:
                        raise InputMalformedError(
                            f"{name} must have exactly {circuit.depth} entries"
                        )
                    for i, item in enumerate(value):
                        require_field(item, f"{name}[{i}]")
                else:
                    require_field(value, name)

    def _call_backend(
        self,
        circuit: CircuitDefinition,
        private_witness: Mapping[str, Any],
        public_witness: Mapping[str, Any],
    ) -> BackendProof:
        try:
            return self.backend.prove(circuit.circuit_id, private_witness, public_witness)
        except OSError as e:
            raise ProvingUnavailableError(f"Proving backend unavailable: {e.strerror}") from None

    def _to_record(
        self, circuit: CircuitDefinition, result: BackendProof, expected_signals: Sequence[int]
    ) -> ProofRecord:
        if list(result.public_signals) != list(expected_signals):
            logger.error(
                f"Backend {self.backend.name} returned unexpected public signals for "
                f"{circuit.circuit_id}"
            )
            raise PublicSignalMismatchError(
                f"Public signals from backend do not match declared inputs for {circuit.circuit_id}"
            )

        return ProofRecord(
            circuit_id=circuit.circuit_id,
            proof_bytes=self.backend.encode_proof(result.proof),
            public_signals=tuple(result.public_signals),
        )

    def prove(
        self,
        circuit: CircuitDefinition,
        private_witness: Mapping[str, Any],
        public_witness: Mapping[str, Any],
        expected_signals: Sequence[int],
    ) -> ProofRecord:
        """
        Validate, prove and canonicalize.

        Raises:
            InputMalformedError: Structural problem in the witness
            ProvingUnavailableError / ProvingTimeoutError: Backend cannot run now
            ProvingFailedError / PublicSignalMismatchError: Backend produced no
                usable proof for this witness
        """
        self.validate_witness(circuit, private_witness, public_witness)
        logger.info(f"Proving {circuit.circuit_id} with {self.backend.name} backend")

        if self.timeout is None:
            result = self._call_backend(circuit, private_witness, public_witness)
        else:
            future = self._executor.submit(
                self._call_backend, circuit, private_witness, public_witness
            )
            try:
                result = future.result(timeout=self.timeout)
            except FutureTimeoutError:
                future.cancel()
                logger.warning(f"Proving {circuit.circuit_id} timed out after {self.timeout}s")
                raise ProvingTimeoutError(
                    f"Proving {circuit.circuit_id} exceeded {self.timeout}s"
                ) from None

        return self._to_record(circuit, result, expected_signals)

    async def aprove(
        self,
        circuit: CircuitDefinition,
        private_witness: Mapping[str, Any],
        public_witness: Mapping[str, Any],
        expected_signals: Sequence[int],
    ) -> ProofRecord:
        """
        Awaitable prove(). The backend runs in the gateway's worker pool.

        Cancelling the awaiting task abandons the result; nothing is
        persisted by proving, so there is nothing to roll back.
        """
        self.validate_witness(circuit, private_witness, public_witness)
        logger.info(f"Proving {circuit.circuit_id} with {self.backend.name} backend (async)")

        loop = asyncio.get_running_loop()
        call = functools.partial(self._call_backend, circuit, private_witness, public_witness)
        try:
            result = await asyncio.wait_for(
                loop.run_in_executor(self._executor, call), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Proving {circuit.circuit_id} timed out after {self.timeout}s")
            raise ProvingTimeoutError(
                f"Proving {circuit.circuit_id} exceeded {self.timeout}s"
            ) from None

        return self._to_record(circuit, result, expected_signals)

    def verify_locally(self, record: ProofRecord) -> bool:
        """Off-chain check of a canonical proof record."""
        return self.backend.verify(record.circuit_id, record.proof_bytes, list(record.public_signals))

    def close(self) -> None:
        """Release the worker pool."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "ProofGateway":
        return self

    def __exit__(self, *args) -> None:
        self.close()
