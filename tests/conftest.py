"""
Shared fixtures for the bridgewatch test suite.
"""

import os
import sys

import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from bridgewatch.database_sqlite import DatabaseSQLite
from bridgewatch.logger import configure_logging

configure_logging(log_level="DEBUG", file_output=False)


def h(n: int) -> str:
    """Deterministic 32-byte hash for test fixtures."""
    return "0x" + format(n, "064x")


@pytest_asyncio.fixture
async def db():
    """Fresh in-memory store with the full schema."""
    store = await DatabaseSQLite.create(":memory:")
    yield store
    await store.close()
