"""Shielded note pool: private deposits and 1-in-1-out spends."""

__version__ = "0.1.0"
__author__ = "Shielded Pool Team"
__description__ = "Shielded note pool over Poseidon commitments and a sparse Merkle accumulator"

from .core.note import Note
from .core.commitment import CommitmentScheme
from .core.merkle_tree import MerkleAccumulator, MerkleWitness
from .core.deposit import DepositProtocol, DepositDraft
from .core.spend import SpendProtocol, SpendDraft
from .core.pool import ShieldedPool
from .proving.gateway import ProofGateway
from .models.schemas import ProofRecord

__all__ = [
    "Note",
    "CommitmentScheme",
    "MerkleAccumulator",
    "MerkleWitness",
    "DepositProtocol",
    "DepositDraft",
    "SpendProtocol",
    "SpendDraft",
    "ShieldedPool",
    "ProofGateway",
    "ProofRecord",
]
