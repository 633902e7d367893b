"""
Votenode connection pool.

Sessions for SQLiteStore. Connections are opened lazily, at most ``size``
of them are lent out at once, and each one runs in WAL mode with foreign
keys enforced; the vote store relies on the latter to reject votes for
unknown processes.

A session that fails is rolled back and its connection goes back to the
pool. Only a connection that cannot be rolled back, or a session
interrupted by cancellation, is closed and replaced later.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import AsyncIterator, List

import aiosqlite

logger = logging.getLogger("votenode.pool")

PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
    "PRAGMA busy_timeout=5000",
)


class ConnectionPool:
    """Bounded set of reusable aiosqlite connections to one database."""

    def __init__(self, db_path: str, size: int = 5):
        if size < 1:
            raise ValueError(f"pool size must be positive, got {size}")
        self.db_path = db_path
        self.size = size
        self._idle: List[aiosqlite.Connection] = []
        self._slots = asyncio.Semaphore(size)

    async def _connect(self) -> aiosqlite.Connection:
        try:
            conn = await aiosqlite.connect(self.db_path, timeout=30)
        except sqlite3.Error as e:
            logger.critical("Failed to open %s: %s", self.db_path, e)
            raise
        try:
            for pragma in PRAGMAS:
                await conn.execute(pragma)
        except sqlite3.Error:
            await self._discard(conn)
            raise
        logger.debug("Opened connection to %s", self.db_path)
        return conn

    async def _discard(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.close()
        except sqlite3.Error as e:
            logger.warning("Error closing connection: %s", e)

    async def _release_after_error(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.rollback()
        except (sqlite3.Error, ValueError) as e:
            logger.warning("Rollback failed, dropping connection: %s", e)
            await self._discard(conn)
        else:
            self._idle.append(conn)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[aiosqlite.Connection]:
        """Lend a connection for one session. Waits while all are in use."""
        async with self._slots:
            conn = self._idle.pop() if self._idle else await self._connect()
            try:
                yield conn
            except Exception:
                await self._release_after_error(conn)
                raise
            except BaseException:
                await self._discard(conn)
                raise
            else:
                self._idle.append(conn)

    async def close(self) -> None:
        """Close every idle connection."""
        idle, self._idle = self._idle, []
        for conn in idle:
            await self._discard(conn)
        logger.info("Connection pool for %s closed", self.db_path)
