"""Pytest configuration and fixtures."""

import pytest
import sys
from pathlib import Path

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from shieldpool.core.commitment import CommitmentScheme
from shieldpool.core.deposit import DepositProtocol
from shieldpool.core.pool import ShieldedPool
from shieldpool.core.spend import SpendProtocol
from shieldpool.proving.gateway import ProofGateway
from shieldpool.proving.reference import ReferenceBackend

# Small trees keep Poseidon-heavy tests fast
TEST_DEPTH = 6
# 160-bit token address
TEST_TOKEN = 0x6B175474E89094C44DA98B954EEDEAC495271D0F


@pytest.fixture
def depth():
    """Accumulator depth used across tests."""
    return TEST_DEPTH


@pytest.fixture
def token():
    """Token field element used across tests."""
    return TEST_TOKEN


@pytest.fixture
def scheme():
    """Commitment scheme with Poseidon and Baby Jubjub keys."""
    return CommitmentScheme()


@pytest.fixture
def backend(scheme):
    """Reference proving backend for TEST_DEPTH."""
    return ReferenceBackend(scheme, depth=TEST_DEPTH)


@pytest.fixture
def gateway(backend):
    """Proof gateway over the reference backend."""
    gw = ProofGateway(backend)
    yield gw
    gw.close()


@pytest.fixture
def pool(backend):
    """Empty ledger verifying with the reference backend."""
    return ShieldedPool(backend, depth=TEST_DEPTH)


@pytest.fixture
def deposits(scheme, gateway):
    return DepositProtocol(scheme, gateway)


@pytest.fixture
def spends(scheme, gateway, pool):
    return SpendProtocol(scheme, gateway, pool.accumulator)


@pytest.fixture
def owner_secret(scheme):
    """Fresh owner secret, canonical for the scheme's key derivation."""
    return scheme.fresh_secret()


@pytest.fixture
def deposited(deposits, pool, owner_secret, token):
    """A deposit of 1000 that the ledger has accepted."""
    draft = deposits.build(amount=1000, token=token, denomination_bucket=1, owner_secret=owner_secret)
    deposits.prove(draft)
    deposits.submit(draft, pool)
    return draft
