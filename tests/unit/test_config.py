"""Tests for settings and component wiring."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from shieldpool.config import Settings, build_backend, build_components, get_settings
from shieldpool.core.commitment import CommitmentScheme
from shieldpool.crypto.keys import SquareKeyDerivation
from shieldpool.proving.reference import ReferenceBackend
from shieldpool.proving.snarkjs import SnarkjsBackend


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the caller's environment and .env file."""
    for key in list(os.environ):
        if key.startswith("SHIELDPOOL_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        settings = Settings()
        assert settings.tree_depth == 32
        assert settings.root_history_size == 30
        assert settings.key_derivation == "babyjubjub"
        assert settings.proving_backend == "reference"
        assert settings.proving_timeout is None
        assert settings.database_url is None

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("SHIELDPOOL_TREE_DEPTH", "20")
        monkeypatch.setenv("SHIELDPOOL_PROVING_BACKEND", "snarkjs")
        monkeypatch.setenv("SHIELDPOOL_PROVING_TIMEOUT", "2.5")
        monkeypatch.setenv("SHIELDPOOL_CIRCUIT_DIR", "/opt/circuits")
        settings = Settings()
        assert settings.tree_depth == 20
        assert settings.proving_backend == "snarkjs"
        assert settings.proving_timeout == 2.5
        assert settings.circuit_dir == Path("/opt/circuits")

    def test_env_file(self, tmp_path):
        (tmp_path / ".env").write_text("SHIELDPOOL_KEY_DERIVATION=square\n")
        assert Settings().key_derivation == "square"

    @pytest.mark.parametrize("key,value", [
        ("SHIELDPOOL_TREE_DEPTH", "0"),
        ("SHIELDPOOL_TREE_DEPTH", "65"),
        ("SHIELDPOOL_PROVING_BACKEND", "rapidsnark"),
        ("SHIELDPOOL_PROVING_TIMEOUT", "0"),
    ])
    def test_invalid(self, monkeypatch, key, value):
        monkeypatch.setenv(key, value)
        with pytest.raises(ValidationError):
            Settings()

    def test_cached(self):
        assert get_settings() is get_settings()


class TestBuildComponents:
    """Tests for wiring from settings."""

    def test_build_backend(self):
        scheme = CommitmentScheme()
        assert isinstance(build_backend(Settings(tree_depth=4), scheme), ReferenceBackend)

        backend = build_backend(Settings(tree_depth=4, proving_backend="snarkjs"), scheme)
        assert isinstance(backend, SnarkjsBackend)
        assert backend.supports("spend-v1-d4")
        assert backend.supports("deposit-v1")

    def test_in_memory(self):
        components = build_components(Settings(tree_depth=4, key_derivation="square"))
        try:
            assert isinstance(components.scheme.key_derivation, SquareKeyDerivation)
            assert components.pool.depth == 4
            assert components.spends.accumulator is components.pool.accumulator
            assert components.spends.circuit.circuit_id == components.pool.spend_circuit_id
        finally:
            components.gateway.close()

    def test_round_trip(self):
        components = build_components(Settings(tree_depth=4))
        try:
            secret = 987654321
            draft = components.deposits.build(10, 1, 0, secret)
            components.deposits.prove(draft)
            components.deposits.submit(draft, components.pool)

            spend = components.spends.build(draft.note, secret, 10, 42)
            components.spends.prove(spend)
            components.spends.submit(spend, components.pool)
            assert components.pool.is_spent(spend.nullifier)
        finally:
            components.gateway.close()

    def test_with_database(self, tmp_path):
        settings = Settings(tree_depth=4, database_url=f"sqlite:///{tmp_path / 'pool.db'}")
        first = build_components(settings)
        try:
            draft = first.deposits.build(10, 1, 0, 555)
            first.deposits.prove(draft)
            first.deposits.submit(draft, first.pool)
        finally:
            first.gateway.close()

        second = build_components(settings)
        try:
            assert draft.commitment in second.pool.accumulator
            assert second.pool.accumulator.root == first.pool.accumulator.root
        finally:
            second.gateway.close()
