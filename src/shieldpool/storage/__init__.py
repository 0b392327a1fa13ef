"""Storage layer for persistent data."""

from shieldpool.storage.database import (
    DatabaseManager,
    ProofRecordRow,
    CommitmentRow,
    NullifierRow,
    MerkleRootRow,
    RecordKind,
    Base,
    get_db_manager,
    reset_db_manager,
)

__all__ = [
    "DatabaseManager",
    "ProofRecordRow",
    "CommitmentRow",
    "NullifierRow",
    "MerkleRootRow",
    "RecordKind",
    "Base",
    "get_db_manager",
    "reset_db_manager",
]
