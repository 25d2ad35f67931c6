"""Test configuration and fixtures for the Devlink package.

This module provides common fixtures used across all test modules:
- Environment setup (log directory)
- An in-memory user directory and a social graph service over it
- Seeded users
"""

import os
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

TEST_DATA_DIR = Path(__file__).parent / "data"
TEST_DATA_DIR.mkdir(exist_ok=True)
os.environ.setdefault("API_LOG_DIR", str(TEST_DATA_DIR / "logs"))

from devlink.core.settings import GraphSettings  # noqa: E402
from devlink.services.directory import InMemoryUserDirectory  # noqa: E402
from devlink.services.graph import SocialGraphService  # noqa: E402

BASE_TIME = datetime(2024, 1, 1, tzinfo=UTC)


async def create_users(directory, names, start=BASE_TIME):
    """Create one user per name, each account a minute newer than the last."""
    created = {}
    for offset, name in enumerate(names):
        created[name] = await directory.create_user(
            name=name.capitalize(),
            email=f"{name}@example.com",
            created_at=start + timedelta(minutes=offset),
        )
    return created


@pytest.fixture
def directory():
    """Fixture for an empty in-memory user directory."""
    return InMemoryUserDirectory()


@pytest.fixture
def graph_config():
    """Fixture for graph limits with a short transaction timeout."""
    return GraphSettings(
        default_page_size=20,
        max_page_size=100,
        default_suggestion_limit=10,
        max_suggestion_limit=50,
        transaction_timeout=0.2,
    )


@pytest.fixture
def graph_service(directory, graph_config):
    """Fixture for a SocialGraphService over the test directory."""
    return SocialGraphService(directory, graph_config)


@pytest.fixture
def user_factory(directory):
    """Fixture returning an async factory that seeds named users."""

    async def factory(names, start=BASE_TIME):
        return await create_users(directory, names, start)

    return factory


@pytest_asyncio.fixture
async def users(directory):
    """Fixture for three unconnected users: alice, bob and carol."""
    return await create_users(directory, ["alice", "bob", "carol"])


@pytest.fixture
def mock_graph_service():
    """Fixture for a mocked SocialGraphService."""
    return MagicMock(spec=SocialGraphService)


@pytest.fixture
def test_data_dir():
    """Fixture for test data directory."""
    return TEST_DATA_DIR


@pytest.fixture
def cleanup_test_files():
    """Fixture to clean up test files after tests."""
    yield
    for file in TEST_DATA_DIR.glob("*"):
        if file.is_file():
            file.unlink()
