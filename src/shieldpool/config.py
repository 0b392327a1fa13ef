"""Runtime configuration.

Values come from the environment (prefix ``SHIELDPOOL_``) or a ``.env`` file
in the working directory, e.g.::

    SHIELDPOOL_TREE_DEPTH=20
    SHIELDPOOL_PROVING_BACKEND=snarkjs
    SHIELDPOOL_CIRCUIT_DIR=./build
    SHIELDPOOL_DATABASE_URL=sqlite:///shieldpool.db
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, NamedTuple, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from shieldpool.core.circuits import DEPOSIT_CIRCUIT, spend_circuit
from shieldpool.core.commitment import CommitmentScheme
from shieldpool.core.deposit import DepositProtocol
from shieldpool.core.pool import ShieldedPool
from shieldpool.core.spend import SpendProtocol
from shieldpool.crypto.keys import get_key_derivation
from shieldpool.crypto.poseidon import default_hasher
from shieldpool.proving.backend import ProvingBackend
from shieldpool.proving.gateway import ProofGateway
from shieldpool.proving.reference import ReferenceBackend
from shieldpool.proving.snarkjs import SnarkjsBackend
from shieldpool.storage.database import DatabaseManager

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseSettings):
    """Pool, proving and storage settings."""

    model_config = SettingsConfigDict(
        env_prefix="SHIELDPOOL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    tree_depth: int = Field(32, ge=1, le=64)
    root_history_size: int = Field(30, ge=1)
    key_derivation: Literal["babyjubjub", "square"] = "babyjubjub"

    proving_backend: Literal["reference", "snarkjs"] = "reference"
    circuit_dir: Path = Path("build")
    snarkjs_bin: str = "snarkjs"
    proving_timeout: Optional[float] = Field(None, gt=0)
    proving_workers: int = Field(2, ge=1)

    database_url: Optional[str] = None
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Apply the configured log level to the root logger."""
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)


class Components(NamedTuple):
    """Wired-up pool for one process."""

    scheme: CommitmentScheme
    backend: ProvingBackend
    gateway: ProofGateway
    pool: ShieldedPool
    deposits: DepositProtocol
    spends: SpendProtocol


def build_backend(settings: Settings, scheme: CommitmentScheme) -> ProvingBackend:
    """Create the configured proving backend."""
    if settings.proving_backend == "snarkjs":
        return SnarkjsBackend(
            circuit_dir=settings.circuit_dir,
            snarkjs_bin=settings.snarkjs_bin,
            timeout=settings.proving_timeout,
            circuits=[DEPOSIT_CIRCUIT, spend_circuit(settings.tree_depth)],
        )
    return ReferenceBackend(scheme, depth=settings.tree_depth)


def build_components(settings: Optional[Settings] = None) -> Components:
    """
    Build scheme, backend, gateway, ledger and protocols from settings.

    With a database_url the ledger is restored from storage.
    """
    settings = settings or get_settings()

    hasher = default_hasher()
    scheme = CommitmentScheme(
        hasher=hasher,
        key_derivation=get_key_derivation(settings.key_derivation, hasher),
    )
    backend = build_backend(settings, scheme)
    gateway = ProofGateway(
        backend, timeout=settings.proving_timeout, max_workers=settings.proving_workers
    )

    pool_options = dict(
        depth=settings.tree_depth,
        hasher=hasher,
        root_history_size=settings.root_history_size,
    )
    if settings.database_url:
        db = DatabaseManager(settings.database_url)
        db.create_tables()
        pool = ShieldedPool.restore(db, backend, **pool_options)
    else:
        pool = ShieldedPool(backend, **pool_options)

    logger.info(
        f"Built shielded pool: depth={settings.tree_depth}, "
        f"backend={backend.name}, keys={scheme.key_derivation.name}"
    )
    return Components(
        scheme=scheme,
        backend=backend,
        gateway=gateway,
        pool=pool,
        deposits=DepositProtocol(scheme, gateway),
        spends=SpendProtocol(scheme, gateway, pool.accumulator),
    )
