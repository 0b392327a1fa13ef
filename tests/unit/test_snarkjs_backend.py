"""Tests for the snarkjs subprocess backend."""

import json
import subprocess
from pathlib import Path

import pytest

from shieldpool.core.circuits import DEPOSIT_CIRCUIT, spend_circuit
from shieldpool.exceptions import (
    ProvingFailedError,
    ProvingTimeoutError,
    ProvingUnavailableError,
)
from shieldpool.proving import snarkjs as snarkjs_module
from shieldpool.proving.gateway import ProofGateway
from shieldpool.proving.snarkjs import (
    GROTH16_PROOF_BYTES,
    SnarkjsBackend,
    decode_groth16_proof,
    encode_groth16_proof,
)

SAMPLE_PROOF = {
    "pi_a": ["1", "2", "1"],
    "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
    "pi_c": ["7", "8", "1"],
    "protocol": "groth16",
    "curve": "bn128",
}


@pytest.fixture
def artifacts(tmp_path):
    """Fake compiled deposit circuit."""
    (tmp_path / "deposit_js").mkdir()
    (tmp_path / "deposit_js" / "deposit.wasm").write_bytes(b"\x00asm")
    (tmp_path / "deposit.zkey").write_bytes(b"zkey")
    (tmp_path / "deposit.vkey.json").write_text("{}")
    return tmp_path


@pytest.fixture
def fake_snarkjs(monkeypatch):
    """Replace the snarkjs binary with an in-process fake."""
    calls = []
    behaviour = {"returncode": 0, "stdout": "[INFO]  snarkJS: OK!", "raise": None}

    def fake_run(args, capture_output, text, timeout, check):
        calls.append(list(args))
        if behaviour["raise"] is not None:
            raise behaviour["raise"]
        if args[2] == "fullprove" and behaviour["returncode"] == 0:
            witness = json.loads(Path(args[3]).read_text())
            Path(args[6]).write_text(json.dumps(SAMPLE_PROOF))
            public = [witness[name] for name in DEPOSIT_CIRCUIT.public_inputs]
            Path(args[7]).write_text(json.dumps(public))
        return subprocess.CompletedProcess(
            args, behaviour["returncode"], stdout=behaviour["stdout"], stderr="secret witness dump"
        )

    monkeypatch.setattr(snarkjs_module.shutil, "which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr(snarkjs_module.subprocess, "run", fake_run)
    return calls, behaviour


@pytest.fixture
def witness():
    public = {"commitment": 11, "token": 22, "denominationId": 1}
    private = {"amount": 5, "salt": 6, "pubkey": 7}
    return private, public


class TestGroth16Encoding:
    """Tests for the canonical 256-byte proof layout."""

    def test_encode_length_and_order(self):
        data = encode_groth16_proof(SAMPLE_PROOF)
        assert len(data) == GROTH16_PROOF_BYTES
        words = [int.from_bytes(data[i:i + 32], "big") for i in range(0, 256, 32)]
        assert words == [1, 2, 4, 3, 6, 5, 7, 8]

    def test_decode_restores_proof(self):
        decoded = decode_groth16_proof(encode_groth16_proof(SAMPLE_PROOF))
        assert decoded["pi_a"][:2] == SAMPLE_PROOF["pi_a"][:2]
        assert decoded["pi_b"][:2] == SAMPLE_PROOF["pi_b"][:2]
        assert decoded["pi_c"][:2] == SAMPLE_PROOF["pi_c"][:2]

    def test_encode_malformed(self):
        with pytest.raises(ValueError):
            encode_groth16_proof({"pi_a": ["1"]})

    def test_decode_wrong_length(self):
        with pytest.raises(ValueError):
            decode_groth16_proof(b"\x00" * 255)


class TestSnarkjsArtifacts:
    """Tests for artifact lookup."""

    def test_artifact_paths(self, tmp_path):
        backend = SnarkjsBackend(circuit_dir=tmp_path)
        paths = backend.artifact_paths("spend-v1")
        assert paths["wasm"] == tmp_path / "spend_js" / "spend.wasm"
        assert paths["zkey"] == tmp_path / "spend.zkey"
        assert paths["vkey"] == tmp_path / "spend.vkey.json"

    def test_registered_circuits(self, tmp_path):
        backend = SnarkjsBackend(circuit_dir=tmp_path, circuits=[DEPOSIT_CIRCUIT, spend_circuit(8)])
        assert backend.supports("spend-v1-d8")
        assert not backend.supports("spend-v1")
        with pytest.raises(ProvingUnavailableError):
            backend.artifact_paths("spend-v1")

    def test_missing_artifacts(self, tmp_path, fake_snarkjs, witness):
        private, public = witness
        with pytest.raises(ProvingUnavailableError, match="wasm"):
            SnarkjsBackend(circuit_dir=tmp_path).prove("deposit-v1", private, public)
        calls, _ = fake_snarkjs
        assert calls == []

    def test_missing_binary(self, artifacts, monkeypatch, witness):
        monkeypatch.setattr(snarkjs_module.shutil, "which", lambda name: None)
        private, public = witness
        with pytest.raises(ProvingUnavailableError, match="not found"):
            SnarkjsBackend(circuit_dir=artifacts).prove("deposit-v1", private, public)


class TestSnarkjsProve:
    """Tests for fullprove."""

    def test_prove(self, artifacts, fake_snarkjs, witness):
        private, public = witness
        result = SnarkjsBackend(circuit_dir=artifacts).prove("deposit-v1", private, public)
        assert result.public_signals == [11, 22, 1]
        assert result.proof == SAMPLE_PROOF

        calls, _ = fake_snarkjs
        assert calls[0][1:3] == ["groth16", "fullprove"]

    def test_input_json_uses_decimal_strings(self, artifacts, monkeypatch, witness):
        seen = {}

        def capture(args, **kwargs):
            seen.update(json.loads(Path(args[3]).read_text()))
            return subprocess.CompletedProcess(args, 1, stdout="", stderr="")

        monkeypatch.setattr(snarkjs_module.shutil, "which", lambda name: "/usr/bin/snarkjs")
        monkeypatch.setattr(snarkjs_module.subprocess, "run", capture)
        private, public = witness
        with pytest.raises(ProvingFailedError):
            SnarkjsBackend(circuit_dir=artifacts).prove("deposit-v1", private, public)
        assert seen == {
            "commitment": "11", "token": "22", "denominationId": "1",
            "amount": "5", "salt": "6", "pubkey": "7",
        }

    def test_failure_hides_stderr(self, artifacts, fake_snarkjs, witness, caplog):
        _, behaviour = fake_snarkjs
        behaviour["returncode"] = 1
        private, public = witness
        with pytest.raises(ProvingFailedError) as exc_info:
            SnarkjsBackend(circuit_dir=artifacts).prove("deposit-v1", private, public)
        assert "secret witness dump" not in str(exc_info.value)
        assert "secret witness dump" not in caplog.text

    def test_timeout(self, artifacts, fake_snarkjs, witness):
        _, behaviour = fake_snarkjs
        behaviour["raise"] = subprocess.TimeoutExpired(cmd="snarkjs", timeout=1)
        private, public = witness
        with pytest.raises(ProvingTimeoutError):
            SnarkjsBackend(circuit_dir=artifacts, timeout=1).prove("deposit-v1", private, public)

    def test_cannot_start(self, artifacts, fake_snarkjs, witness):
        _, behaviour = fake_snarkjs
        behaviour["raise"] = PermissionError(13, "Permission denied")
        private, public = witness
        with pytest.raises(ProvingUnavailableError):
            SnarkjsBackend(circuit_dir=artifacts).prove("deposit-v1", private, public)

    def test_through_gateway(self, artifacts, fake_snarkjs, witness):
        private, public = witness
        with ProofGateway(SnarkjsBackend(circuit_dir=artifacts)) as gateway:
            record = gateway.prove(DEPOSIT_CIRCUIT, private, public, [11, 22, 1])
        assert len(record.proof_bytes) == GROTH16_PROOF_BYTES
        assert record.public_signals == (11, 22, 1)


class TestSnarkjsVerify:
    """Tests for groth16 verify."""

    def test_verify_ok(self, artifacts, fake_snarkjs):
        backend = SnarkjsBackend(circuit_dir=artifacts)
        proof = encode_groth16_proof(SAMPLE_PROOF)
        assert backend.verify("deposit-v1", proof, [11, 22, 1])

        calls, _ = fake_snarkjs
        assert calls[-1][1:3] == ["groth16", "verify"]

    def test_verify_rejected(self, artifacts, fake_snarkjs):
        _, behaviour = fake_snarkjs
        behaviour["returncode"] = 1
        behaviour["stdout"] = "[ERROR] snarkJS: Invalid proof"
        backend = SnarkjsBackend(circuit_dir=artifacts)
        assert not backend.verify("deposit-v1", encode_groth16_proof(SAMPLE_PROOF), [11, 22, 1])

    def test_verify_malformed_bytes(self, artifacts, fake_snarkjs):
        backend = SnarkjsBackend(circuit_dir=artifacts)
        assert not backend.verify("deposit-v1", b"\x00" * 10, [11, 22, 1])
        calls, _ = fake_snarkjs
        assert calls == []

    def test_verify_missing_key(self, tmp_path, fake_snarkjs):
        backend = SnarkjsBackend(circuit_dir=tmp_path)
        with pytest.raises(ProvingUnavailableError):
            backend.verify("deposit-v1", encode_groth16_proof(SAMPLE_PROOF), [1, 2, 3])

    def test_encode_proof_passthrough(self, tmp_path):
        backend = SnarkjsBackend(circuit_dir=tmp_path)
        assert backend.encode_proof(b"\x01") == b"\x01"
        assert len(backend.encode_proof(SAMPLE_PROOF)) == GROTH16_PROOF_BYTES
