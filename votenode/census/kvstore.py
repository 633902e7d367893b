"""
Key-ordered transactional store for the census tree.

A single ``kv`` table in a SQLite file. Every transaction opens its own
connection; write transactions start with ``BEGIN IMMEDIATE`` so concurrent
writers, in this process or another one, serialize on the database lock.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Tuple

from votenode.exceptions import DatabaseTransactionError

logger = logging.getLogger("votenode.census.kvstore")

CREATE_KV = """
CREATE TABLE IF NOT EXISTS kv (
    key     BLOB PRIMARY KEY,
    value   BLOB NOT NULL
) WITHOUT ROWID;
"""


def _prefix_upper_bound(prefix: bytes) -> Optional[bytes]:
    """Smallest key greater than every key starting with prefix."""
    p = bytearray(prefix)
    while p:
        if p[-1] < 0xFF:
            p[-1] += 1
            return bytes(p)
        p.pop()
    return None


class ReadTx:
    """Read-only view over the store, valid inside its ``with`` block."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get(self, key: bytes) -> Optional[bytes]:
        row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return bytes(row[0]) if row else None

    def iterate(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        """Yield (key, value) pairs whose key starts with prefix, in key order."""
        upper = _prefix_upper_bound(prefix)
        if upper is None:
            cursor = self._conn.execute(
                "SELECT key, value FROM kv WHERE key >= ? ORDER BY key", (prefix,)
            )
        else:
            cursor = self._conn.execute(
                "SELECT key, value FROM kv WHERE key >= ? AND key < ? ORDER BY key",
                (prefix, upper),
            )
        for key, value in cursor:
            yield bytes(key), bytes(value)


class WriteTx(ReadTx):
    def put(self, key: bytes, value: bytes) -> None:
        self._conn.execute(
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    def delete(self, key: bytes) -> None:
        self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))


class KVStore:
    """SQLite-backed ordered key/value store with scoped transactions."""

    def __init__(self, path: str | Path, timeout: float = 30.0):
        self.path = Path(path).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._timeout = timeout
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(CREATE_KV)
        finally:
            conn.close()

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                str(self.path), timeout=self._timeout, isolation_level=None
            )
        except sqlite3.Error as e:
            logger.critical("Failed to open census store at %s: %s", self.path, e)
            raise DatabaseTransactionError(f"cannot open census store: {e}") from e
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    @contextmanager
    def read_tx(self) -> Iterator[ReadTx]:
        conn = self._connect()
        try:
            conn.execute("BEGIN")
            yield ReadTx(conn)
        except sqlite3.Error as e:
            raise DatabaseTransactionError(f"census read transaction failed: {e}") from e
        finally:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            conn.close()

    @contextmanager
    def write_tx(self) -> Iterator[WriteTx]:
        """Commit on clean exit, discard everything on any exception."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield WriteTx(conn)
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            logger.error("Census write transaction rolled back: %s", e)
            raise DatabaseTransactionError(f"census write transaction failed: {e}") from e
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
