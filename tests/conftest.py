"""
Global test configuration and fixtures for the session store

This module provides shared fixtures: a recording fake database, a real
temporary SQLite database, deterministic identifiers and a controllable
clock.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from http.cookies import SimpleCookie
from typing import Optional

import pytest
from starlette.responses import Response

from sessionstore.core.security import KeyPair
from sessionstore.db.database import SQLAlchemyDatabase
from sessionstore.db.session import create_session_engine
from sessionstore.store import SessionOptions, SQLStore

TEST_HASH_KEY = b"test-hash-key-0123456789abcdefghijkl"
TEST_BLOCK_KEY = b"test-block-key-0123456789abcdefghij"
GENERATED_SESSION_ID = "generated-session-id"


# ============================================================================
# Fakes
# ============================================================================

class RecordingDatabase:
    """In-memory Database that records the last call made to it"""

    def __init__(self):
        self.calls = 0
        self.action = ""
        self.id = ""
        self.data: Optional[bytes] = None
        self.updated_at: Optional[datetime] = None
        self.fail_with: Optional[Exception] = None

    async def load(self, id):
        self._record("select", id)
        if self.data is None:
            return None, None
        return self.updated_at or datetime.now(timezone.utc), self.data

    async def insert(self, id, data):
        self._record("insert", id)
        self.data = data
        self.updated_at = datetime.now(timezone.utc)

    async def update(self, id, data):
        self._record("update", id)
        self.data = data
        self.updated_at = datetime.now(timezone.utc)

    async def delete(self, id):
        self._record("delete", id)
        self.data = None

    def _record(self, action, id):
        self.calls += 1
        self.action = action
        self.id = id
        if self.fail_with is not None:
            raise self.fail_with

    def reset_calls(self):
        self.calls = 0
        self.action = ""
        self.id = ""

    def assert_not_called(self):
        assert self.calls == 0, f"Incorrect database calls. Got {self.calls}, want 0"

    def assert_called(self, calls, action, id):
        assert self.calls == calls, f"Incorrect database calls. Got {self.calls}, want {calls}"
        assert self.action == action, f"Invalid database action. Got {self.action}, want {action}"
        assert self.id == id, f"Invalid session ID. Got {self.id}, want {id}"


class FrozenClock:
    """Clock returning a fixed UTC time that tests can move forward"""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def response_cookies(response: Response) -> SimpleCookie:
    """Parse every Set-Cookie header of a response"""
    cookies = SimpleCookie()
    for header in response.headers.getlist("set-cookie"):
        cookies.load(header)
    return cookies


# ============================================================================
# Store Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def key_pairs():
    """A single signing-only key pair"""
    return [KeyPair(hash_key=TEST_HASH_KEY)]


@pytest.fixture(scope="function")
def recording_db():
    """Fake database recording the calls made to it"""
    return RecordingDatabase()


@pytest.fixture(scope="function")
def clock():
    """Controllable clock"""
    return FrozenClock()


@pytest.fixture(scope="function")
def store(recording_db, key_pairs):
    """Store over the recording database with deterministic identifiers"""
    return SQLStore(
        recording_db,
        key_pairs,
        id_generator=lambda: GENERATED_SESSION_ID,
    )


@pytest.fixture(scope="function")
def response():
    """Bare Starlette response to collect Set-Cookie headers"""
    return Response()


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def sqlite_engine():
    """Engine over a temporary SQLite database file"""
    db_fd, db_path = tempfile.mkstemp(suffix='.db')
    engine = create_session_engine(f"sqlite:///{db_path}")

    yield engine

    engine.dispose()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture(scope="function")
def sql_database(sqlite_engine, clock):
    """SQLAlchemyDatabase with its schema created"""
    database = SQLAlchemyDatabase(sqlite_engine, clock=clock)
    database.create_schema()
    return database


@pytest.fixture(scope="function")
def sql_store(sql_database, key_pairs, clock):
    """Store backed by a real SQLite database"""
    return SQLStore(
        sql_database,
        key_pairs,
        options=SessionOptions(max_age=86400),
        clock=clock,
    )
