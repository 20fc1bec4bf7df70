"""Shared fixtures for WOFlow tests."""

import tempfile
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio

# Configure pytest-asyncio
pytest_plugins = ("pytest_asyncio",)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def temp_db_path() -> AsyncGenerator[Path, None]:
    """Create temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        yield db_path


@pytest_asyncio.fixture
async def test_database(temp_db_path: Path):
    """Initialized test database."""
    from src.database.connection import Database

    db = Database(temp_db_path)
    await db.connect()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def reader(test_database):
    from src.query.record_reader import RecordReader

    return RecordReader(test_database)


@pytest_asyncio.fixture
async def seeded_wo(test_database) -> str:
    """One work order with material passed and first piece waived."""
    from tests.fixtures.sample_data import seed_work_order

    return await seed_work_order(test_database)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def engine_config():
    """Default EngineConfig for testing."""
    from src.config import EngineConfig

    return EngineConfig()


@pytest.fixture
def test_config(engine_config, temp_db_path):
    """Complete test Config."""
    from src.config import AuthConfig, Config

    return Config(
        engine=engine_config,
        auth=AuthConfig(user_roles={"lead": ["production"], "viewer": ["viewer"]}),
        db_path=temp_db_path,
    )
