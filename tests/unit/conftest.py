import pytest

from fakes import MINT_A, MINT_B, FakeMints, keyset
from mint_ledger.registry import MintRegistry
from mint_ledger.store import MemoryStore


@pytest.fixture
def fake_mints():
    """Two reachable mints: A offers sat and usd, B offers sat only."""
    mints = FakeMints()
    mints.add(MINT_A, [keyset("00aa000000000001", "sat"), keyset("00aa000000000002", "usd")])
    mints.add(MINT_B, [keyset("00bb000000000001", "sat")])
    return mints


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def registry(store, fake_mints):
    return MintRegistry(store, client_factory=fake_mints)
