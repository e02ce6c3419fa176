"""
Global test configuration and fixtures for the session store

Provides a throwaway SQLite database per test, a controllable clock, key
pairs and a ready-to-use store with the background GC disabled.
"""

import os
import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from ormsession.core.codec import KeyPair
from ormsession.store import SessionStore


# ============================================================================
# Clock
# ============================================================================

class FakeClock:
    """Callable clock returning naive UTC datetimes that only moves when told to"""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture(scope="function")
def clock():
    return FakeClock()


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def db_url():
    """Create a temporary SQLite database file for each test function"""
    db_fd, db_path = tempfile.mkstemp(suffix='.db')
    yield f"sqlite:///{db_path}"

    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture(scope="function")
def engine(db_url):
    engine = create_engine(db_url, connect_args={"check_same_thread": False})
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture(scope="function")
def count_rows(session_factory):
    """Count rows in a session model's table"""
    def _count(model) -> int:
        with session_factory() as db:
            return db.scalar(select(func.count()).select_from(model))
    return _count


# ============================================================================
# Key Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def key_pair():
    return KeyPair(
        "test-hash-key-0123456789-abcdefghijklmnop",
        "test-block-key-9876543210-qrstuvwxyzabcd",
    )


@pytest.fixture(scope="function")
def old_key_pair():
    return KeyPair(
        "old-hash-key-0123456789-abcdefghijklmnopq",
        "old-block-key-9876543210-qrstuvwxyzabcde",
    )


# ============================================================================
# Store Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def store(session_factory, key_pair, clock):
    """Secure store without background GC"""
    store = SessionStore(
        session_factory,
        gc_enabled=False,
        key_pairs=[key_pair],
        now_func=clock,
    )
    yield store
    store.close()


@pytest.fixture(scope="function")
def temp_directory():
    """Provide temporary directory for test file operations"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


# ============================================================================
# Test Markers and Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: isolated tests of a single component"
    )
    config.addinivalue_line(
        "markers", "integration: tests running through a FastAPI application"
    )
    config.addinivalue_line(
        "markers", "security: mark test as security-related"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on file location"""
    for item in items:
        path = str(item.path)
        if "security" in path:
            item.add_marker(pytest.mark.security)
        if "integration" in path:
            item.add_marker(pytest.mark.integration)
