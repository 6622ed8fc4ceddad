"""Shared test configuration and fixtures."""

from unittest.mock import AsyncMock, patch

import aiosqlite
import pytest

from feed_aggregator.storage.database import init_database


@pytest.fixture
def anyio_backend():
    """Run anyio-marked tests on asyncio only."""
    return "asyncio"


@pytest.fixture
async def in_memory_db():
    """Create an in-memory database for testing."""
    db = await aiosqlite.connect(":memory:")
    db.row_factory = aiosqlite.Row
    await init_database(db)

    # Patch get_database to return our in-memory connection
    with patch("feed_aggregator.storage.database.get_database", AsyncMock(return_value=db)):
        yield db

    await db.close()
