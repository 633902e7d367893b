"""Votenode relational store: processes, sync checkpoint and vote packages."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from votenode import config
from votenode.db.connection_pool import ConnectionPool
from votenode.db.process_mixin import ProcessMixin
from votenode.db.schema import ALL_SCHEMA, get_init_meta
from votenode.db.sync_mixin import SyncStateMixin
from votenode.db.vote_mixin import VotePackageMixin

logger = logging.getLogger("votenode.db")


class SQLiteStore(SyncStateMixin, ProcessMixin, VotePackageMixin):
    """SQLite-backed persistence ports used by the synchronizer and the
    vote API. Each operation runs on its own pooled connection and commits
    on its own."""

    def __init__(self, db_path: str | Path | None = None, pool_size: int | None = None):
        self._db_path = Path(db_path or config.DB_PATH).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._pool = ConnectionPool(
            str(self._db_path), size=pool_size or config.CONNECTION_POOL_SIZE
        )

    @property
    def db_path(self) -> Path:
        return self._db_path

    @asynccontextmanager
    async def session(self) -> AsyncIterator[aiosqlite.Connection]:
        async with self._pool.acquire() as conn:
            yield conn

    async def init_db(self) -> None:
        """Create the schema. Safe to call multiple times."""
        async with self.session() as conn:
            for stmt in ALL_SCHEMA:
                await conn.executescript(stmt)
            for k, v in get_init_meta():
                await conn.execute(
                    "INSERT OR IGNORE INTO votenode_meta (key, value) VALUES (?, ?)",
                    (k, v),
                )
            await conn.commit()
        logger.info("Votenode database initialized at %s", self._db_path)

    async def close(self) -> None:
        await self._pool.close()

    async def __aenter__(self) -> "SQLiteStore":
        await self.init_db()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
