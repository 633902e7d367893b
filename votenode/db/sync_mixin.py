"""Sync checkpoint mixin: last fully processed chain block number."""

from __future__ import annotations

import logging
import sqlite3

from votenode.db.schema import fits_integer
from votenode.exceptions import DatabaseTransactionError

logger = logging.getLogger("votenode.db")


class SyncStateMixin:
    async def get_last_sync_block_num(self) -> int:
        try:
            async with self.session() as conn:
                async with conn.execute(
                    "SELECT last_sync_block_num FROM sync_state WHERE id = 0"
                ) as cursor:
                    row = await cursor.fetchone()
        except (sqlite3.Error, OverflowError) as e:
            raise DatabaseTransactionError(f"reading last sync block failed: {e}") from e
        return row[0] if row else 0

    async def update_last_sync_block_num(self, block_num: int) -> None:
        """Advance the checkpoint. The stored value never decreases."""
        if not fits_integer(block_num):
            raise ValueError(f"block number out of storable range: {block_num}")
        try:
            async with self.session() as conn:
                await conn.execute(
                    "UPDATE sync_state SET last_sync_block_num = MAX(last_sync_block_num, ?) "
                    "WHERE id = 0",
                    (block_num,),
                )
                await conn.commit()
        except (sqlite3.Error, OverflowError) as e:
            raise DatabaseTransactionError(f"updating last sync block failed: {e}") from e
