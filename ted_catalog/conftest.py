import pytest

from ted_catalog.store import MemoryStore
from ted_catalog.testing import make_fetcher


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def fetcher():
    return make_fetcher()
