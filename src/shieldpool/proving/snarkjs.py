"""
Groth16 backend driving the snarkjs command line.

Artifacts are looked up by circuit artifact name under one directory, the
layout circom/snarkjs build scripts produce:

    <circuit_dir>/<name>_js/<name>.wasm
    <circuit_dir>/<name>.zkey
    <circuit_dir>/<name>.vkey.json

Proofs are exchanged in canonical form as 256 bytes, eight 32-byte
big-endian words in verifier-contract order:

    a.x a.y b.x[1] b.x[0] b.y[1] b.y[0] c.x c.y
"""

import json
import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

from shieldpool.core.circuits import DEPOSIT_CIRCUIT, CircuitDefinition, spend_circuit, witness_to_json
from shieldpool.exceptions import (
    ProvingFailedError,
    ProvingTimeoutError,
    ProvingUnavailableError,
)
from shieldpool.proving.backend import BackendProof, ProvingBackend

logger = logging.getLogger(__name__)

GROTH16_PROOF_BYTES = 256
WORD = 32


def encode_groth16_proof(proof: Mapping[str, Any]) -> bytes:
    """Encode a snarkjs proof.json object into 256 canonical bytes."""
    try:
        words = [
            proof["pi_a"][0], proof["pi_a"][1],
            proof["pi_b"][0][1], proof["pi_b"][0][0],
            proof["pi_b"][1][1], proof["pi_b"][1][0],
            proof["pi_c"][0], proof["pi_c"][1],
        ]
        return b"".join(int(w).to_bytes(WORD, byteorder="big") for w in words)
    except (KeyError, IndexError, TypeError, ValueError, OverflowError) as e:
        raise ValueError(f"Malformed Groth16 proof: {e}") from None


def decode_groth16_proof(data: bytes) -> Dict[str, Any]:
    """Decode 256 canonical bytes back into a snarkjs proof.json object."""
    if len(data) != GROTH16_PROOF_BYTES:
        raise ValueError(f"Groth16 proof must be {GROTH16_PROOF_BYTES} bytes")
    w = [str(int.from_bytes(data[i:i + WORD], byteorder="big")) for i in range(0, len(data), WORD)]
    return {
        "pi_a": [w[0], w[1], "1"],
        "pi_b": [[w[3], w[2]], [w[5], w[4]], ["1", "0"]],
        "pi_c": [w[6], w[7], "1"],
        "protocol": "groth16",
        "curve": "bn128",
    }


class SnarkjsBackend(ProvingBackend):
    """Runs `snarkjs groth16 fullprove` / `snarkjs groth16 verify` in a subprocess."""

    name = "snarkjs"

    def __init__(
        self,
        circuit_dir: Union[str, Path] = "build",
        snarkjs_bin: str = "snarkjs",
        timeout: Optional[float] = None,
        circuits: Optional[Iterable[CircuitDefinition]] = None,
    ):
        """
        Args:
            circuit_dir: Directory holding the compiled circuit artifacts
            snarkjs_bin: snarkjs executable name or path
            timeout: Seconds before a subprocess is killed (None = no limit)
            circuits: Circuit definitions served (default deposit + spend depth 32)
        """
        self.circuit_dir = Path(circuit_dir)
        self.snarkjs_bin = snarkjs_bin
        self.timeout = timeout
        circuits = list(circuits) if circuits is not None else [DEPOSIT_CIRCUIT, spend_circuit(32)]
        self.circuits: Dict[str, CircuitDefinition] = {c.circuit_id: c for c in circuits}

    def artifact_paths(self, circuit_id: str) -> Dict[str, Path]:
        circuit = self._circuit(circuit_id)
        name = circuit.artifact_name
        return {
            "wasm": self.circuit_dir / f"{name}_js" / f"{name}.wasm",
            "zkey": self.circuit_dir / f"{name}.zkey",
            "vkey": self.circuit_dir / f"{name}.vkey.json",
        }

    def supports(self, circuit_id: str) -> bool:
        return circuit_id in self.circuits

    def _circuit(self, circuit_id: str) -> CircuitDefinition:
        circuit = self.circuits.get(circuit_id)
        if circuit is None:
            raise ProvingUnavailableError(f"No circuit registered for '{circuit_id}'")
        return circuit

    def _executable(self) -> str:
        resolved = shutil.which(self.snarkjs_bin)
        if resolved is None:
            raise ProvingUnavailableError(f"snarkjs executable not found: {self.snarkjs_bin}")
        return resolved

    def _run(self, args: Sequence[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise ProvingTimeoutError(f"snarkjs did not finish within {self.timeout}s") from None
        except OSError as e:
            raise ProvingUnavailableError(f"Could not start snarkjs: {e.strerror}") from None

    def prove(
        self,
        circuit_id: str,
        private_witness: Mapping[str, Any],
        public_witness: Mapping[str, Any],
    ) -> BackendProof:
        paths = self.artifact_paths(circuit_id)
        missing = [kind for kind in ("wasm", "zkey") if not paths[kind].exists()]
        if missing:
            raise ProvingUnavailableError(
                f"Circuit artifacts missing for {circuit_id}: {', '.join(missing)}"
            )
        executable = self._executable()

        with tempfile.TemporaryDirectory(prefix="shieldpool-") as workdir:
            work = Path(workdir)
            input_path = work / "input.json"
            proof_path = work / "proof.json"
            public_path = work / "public.json"

            witness = witness_to_json({**public_witness, **private_witness})
            input_path.write_text(json.dumps(witness))

            logger.info(f"Running snarkjs groth16 fullprove for {circuit_id}")
            result = self._run([
                executable, "groth16", "fullprove",
                str(input_path), str(paths["wasm"]), str(paths["zkey"]),
                str(proof_path), str(public_path),
            ])

            # stderr may echo witness values, so it is never logged or re-raised
            if result.returncode != 0 or not proof_path.exists() or not public_path.exists():
                logger.warning(f"snarkjs fullprove failed for {circuit_id} (exit {result.returncode})")
                raise ProvingFailedError(f"snarkjs could not prove {circuit_id}")

            proof = json.loads(proof_path.read_text())
            public_signals = [int(s) for s in json.loads(public_path.read_text())]

        return BackendProof(circuit_id=circuit_id, proof=proof, public_signals=public_signals)

    def verify(self, circuit_id: str, proof: Any, public_signals: Sequence[int]) -> bool:
        paths = self.artifact_paths(circuit_id)
        if not paths["vkey"].exists():
            raise ProvingUnavailableError(f"Verification key missing for {circuit_id}")
        executable = self._executable()

        if isinstance(proof, (bytes, bytearray)):
            try:
                proof = decode_groth16_proof(bytes(proof))
            except ValueError:
                return False

        with tempfile.TemporaryDirectory(prefix="shieldpool-") as workdir:
            work = Path(workdir)
            proof_path = work / "proof.json"
            public_path = work / "public.json"
            proof_path.write_text(json.dumps(proof))
            public_path.write_text(json.dumps([str(s) for s in public_signals]))

            result = self._run([
                executable, "groth16", "verify",
                str(paths["vkey"]), str(public_path), str(proof_path),
            ])

        return result.returncode == 0 and "OK" in (result.stdout or "")

    def encode_proof(self, proof: Any) -> bytes:
        if isinstance(proof, (bytes, bytearray)):
            return bytes(proof)
        return encode_groth16_proof(proof)

    def __repr__(self) -> str:
        return f"SnarkjsBackend(circuit_dir='{self.circuit_dir}', circuits={sorted(self.circuits)})"
