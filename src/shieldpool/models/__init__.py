"""Data models shared with ledger and verifier collaborators."""

from shieldpool.models.schemas import DepositSignals, ProofRecord, SpendSignals

__all__ = ["DepositSignals", "ProofRecord", "SpendSignals"]
