"""
Shared fixtures for vocab-store tests.
"""

import itertools
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from vocab_platform import database as db
from vocab_platform.persistence import FlatBackend, JsonFileKeyValueStore
from vocab_platform.persistence.sqlite_backend import SQLiteBackend
from vocab_platform.runtime.clock import Clock
from vocab_platform.runtime.config import BACKEND_FLAT, BACKEND_SQLITE, DB_FILE, KV_FILE


@pytest.fixture(autouse=True)
def _fresh_consumer_module():
    """Make sure no test inherits another test's process-wide backend."""
    db.reset_database()
    yield
    db.reset_database()


@pytest.fixture
def id_factory():
    """Deterministic journal ids: entry-1, entry-2, ..."""
    counter = itertools.count(1)
    return lambda: f"entry-{next(counter)}"


@pytest.fixture
def frozen_clock():
    """Clock whose wall time never moves.

    Successive timestamps still advance by one microsecond, so ordering
    assertions can be exact.
    """
    moment = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
    return Clock(lambda: moment)


@pytest.fixture(params=[BACKEND_SQLITE, BACKEND_FLAT])
def backend_kind(request):
    return request.param


@pytest.fixture
def make_backend(backend_kind, tmp_path, id_factory):
    """Factory for an uninitialised on-disk backend of the current kind.

    Calling it twice yields two backends over the same files, which is how
    tests simulate a process restart.
    """
    def _make(**kwargs):
        kwargs.setdefault("id_factory", id_factory)
        if backend_kind == BACKEND_SQLITE:
            return SQLiteBackend(tmp_path / DB_FILE, **kwargs)
        return FlatBackend(JsonFileKeyValueStore(tmp_path / KV_FILE), **kwargs)
    return _make


@pytest_asyncio.fixture
async def backend(make_backend):
    """Initialised backend; parametrised so every test runs on both kinds."""
    b = make_backend()
    await b.initialize()
    yield b
    b.close()
