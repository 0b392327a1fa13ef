"""Proving backends and the proof gateway."""

from shieldpool.proving.backend import BackendProof, ProvingBackend
from shieldpool.proving.reference import ReferenceBackend
from shieldpool.proving.snarkjs import SnarkjsBackend
from shieldpool.proving.gateway import ProofGateway

__all__ = [
    "BackendProof",
    "ProvingBackend",
    "ReferenceBackend",
    "SnarkjsBackend",
    "ProofGateway",
]
