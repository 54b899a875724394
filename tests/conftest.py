# tests/conftest.py
# Shared fixtures: Qt core app, hand-driven clock, throwaway stores

from datetime import datetime

import pytest
from PySide6.QtCore import QCoreApplication

from BackEnd.core.clock import ms_to_iso
from BackEnd.core.exceptions import StoreError
from BackEnd.repos.kv_store import MemoryKeyValueStore, SqliteKeyValueStore
from BackEnd.repos.session_repo import StudyRepository
from BackEnd.services.write_behind import WriteBehindWriter


class ManualClock:
    """Clock that only moves when a test tells it to."""

    def __init__(self, start=datetime(2024, 5, 15, 10, 0, 0)):
        self.ms = int(start.timestamp() * 1000)

    def now_ms(self):
        return self.ms

    def today(self):
        return datetime.fromtimestamp(self.ms / 1000).date()

    def now_iso(self):
        return ms_to_iso(self.ms)

    def advance(self, ms):
        self.ms += ms


class BrokenStore:
    """Every call fails the way an unreachable database would."""

    def get(self, key):
        raise StoreError("database unavailable", key)

    def put(self, key, value, updated_at):
        raise StoreError("database unavailable", key)

    def delete(self, key):
        raise StoreError("database unavailable", key)


@pytest.fixture(scope="session", autouse=True)
def qapp():
    # QTimer and signals need a core application, but no event loop is run
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def memory_store():
    return MemoryKeyValueStore()


@pytest.fixture
def sqlite_store(tmp_path):
    return SqliteKeyValueStore(tmp_path / "study.db")


@pytest.fixture
def writer(memory_store, clock):
    w = WriteBehindWriter(memory_store, clock)
    yield w
    w.close()


@pytest.fixture
def repo(writer, clock):
    return StudyRepository(writer, clock)


@pytest.fixture
def broken_store():
    return BrokenStore()
