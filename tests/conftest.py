import pytest
import pytest_asyncio

from votenode import config
from votenode.census import Census
from votenode.db import SQLiteStore


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point every default path at the test's temp dir."""
    monkeypatch.setenv("VOTENODE_DIR", str(tmp_path / "home"))
    monkeypatch.setenv("VOTENODE_DB", str(tmp_path / "home" / "votenode.db"))
    monkeypatch.setenv("VOTENODE_CENSUS_DB", str(tmp_path / "home" / "census.db"))
    monkeypatch.setenv("VOTENODE_SUBSCRIPTION_RETRY_DELAY", "0")
    config.reload()
    yield
    monkeypatch.undo()
    config.reload()


@pytest.fixture
def census(tmp_path):
    return Census(tmp_path / "census.db")


@pytest_asyncio.fixture
async def store(tmp_path):
    s = SQLiteStore(tmp_path / "votenode.db", pool_size=4)
    await s.init_db()
    yield s
    await s.close()


