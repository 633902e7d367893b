"""Process registry mixin: process records and their status lifecycle."""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

from votenode.db.schema import MAX_SQLITE_INT, fits_integer
from votenode.exceptions import DatabaseTransactionError, ProcessExists, ProcessNotFound
from votenode.types import Process, ProcessStatus

logger = logging.getLogger("votenode.db")

PROCESS_COLUMNS = (
    "id, census_root, census_size, eth_block_num, res_pub_start_block, "
    "res_pub_window, min_participation, type, status, inserted_at"
)


def row_to_process(row) -> Process:
    return Process(
        id=row[0],
        census_root=bytes(row[1]),
        census_size=row[2],
        eth_block_num=row[3],
        res_pub_start_block=row[4],
        res_pub_window=row[5],
        min_participation=row[6],
        type=row[7],
        status=ProcessStatus(row[8]),
        inserted_at=row[9],
    )


class ProcessMixin:
    async def store_process(
        self,
        process_id: int,
        census_root: bytes,
        census_size: int,
        eth_block_num: int,
        res_pub_start_block: int,
        res_pub_window: int,
        min_participation: int,
        typ: int,
    ) -> None:
        """Store a new process with status ON. Fails if the id exists."""
        for name, value in (
            ("process id", process_id),
            ("census size", census_size),
            ("block number", eth_block_num),
            ("results publishing start block", res_pub_start_block),
            ("results publishing window", res_pub_window),
        ):
            if not fits_integer(value):
                raise ValueError(f"{name} out of storable range: {value}")

        try:
            async with self.session() as conn:
                await conn.execute(
                    "INSERT INTO processes (id, census_root, census_size, eth_block_num, "
                    "res_pub_start_block, res_pub_window, min_participation, type, status) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        process_id,
                        bytes(census_root),
                        census_size,
                        eth_block_num,
                        res_pub_start_block,
                        res_pub_window,
                        min_participation,
                        typ,
                        int(ProcessStatus.ON),
                    ),
                )
                await conn.commit()
        except sqlite3.IntegrityError as e:
            raise ProcessExists(f"process {process_id} already stored") from e
        except (sqlite3.Error, OverflowError) as e:
            raise DatabaseTransactionError(f"storing process {process_id} failed: {e}") from e
        logger.debug("Stored process %d (block %d)", process_id, eth_block_num)

    async def read_process(self, process_id: int) -> Process:
        if not fits_integer(process_id):
            raise ProcessNotFound(f"process {process_id} does not exist")
        try:
            async with self.session() as conn:
                async with conn.execute(
                    f"SELECT {PROCESS_COLUMNS} FROM processes WHERE id = ?", (process_id,)
                ) as cursor:
                    row = await cursor.fetchone()
        except (sqlite3.Error, OverflowError) as e:
            raise DatabaseTransactionError(f"reading process {process_id} failed: {e}") from e
        if row is None:
            raise ProcessNotFound(f"process {process_id} does not exist")
        return row_to_process(row)

    async def read_processes(self, status: Optional[ProcessStatus] = None) -> List[Process]:
        query = f"SELECT {PROCESS_COLUMNS} FROM processes"
        params: tuple = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (int(status),)
        query += " ORDER BY id ASC"
        try:
            async with self.session() as conn:
                async with conn.execute(query, params) as cursor:
                    rows = await cursor.fetchall()
        except (sqlite3.Error, OverflowError) as e:
            raise DatabaseTransactionError(f"reading processes failed: {e}") from e
        return [row_to_process(r) for r in rows]

    async def update_process_status(self, process_id: int, status: ProcessStatus) -> None:
        """Move a process to status. Statuses only move forward, so a
        request to go back is a no-op."""
        status = ProcessStatus(status)
        if not fits_integer(process_id):
            raise ProcessNotFound(f"process {process_id} does not exist")
        try:
            async with self.session() as conn:
                cursor = await conn.execute(
                    "UPDATE processes SET status = ? WHERE id = ? AND status <= ?",
                    (int(status), process_id, int(status)),
                )
                updated = cursor.rowcount
                await conn.commit()
                if updated == 0:
                    async with conn.execute(
                        "SELECT status FROM processes WHERE id = ?", (process_id,)
                    ) as cur:
                        row = await cur.fetchone()
        except (sqlite3.Error, OverflowError) as e:
            raise DatabaseTransactionError(
                f"updating process {process_id} status failed: {e}"
            ) from e

        if updated == 0:
            if row is None:
                raise ProcessNotFound(f"process {process_id} does not exist")
            logger.debug(
                "Process %d already at status %s, not moving to %s",
                process_id,
                ProcessStatus(row[0]).name,
                status.name,
            )

    async def froze_processes_by_current_block_num(self, block_num: int) -> int:
        """Freeze every ON process whose results publishing start block has
        been reached. Idempotent; returns how many processes changed."""
        if block_num < 0:
            raise ValueError(f"block number must be non-negative, got {block_num}")
        # every stored start block fits an INTEGER, so larger heights freeze the same rows
        block_num = min(block_num, MAX_SQLITE_INT)
        try:
            async with self.session() as conn:
                cursor = await conn.execute(
                    "UPDATE processes SET status = ? "
                    "WHERE status = ? AND res_pub_start_block <= ?",
                    (int(ProcessStatus.FROZEN), int(ProcessStatus.ON), block_num),
                )
                frozen = cursor.rowcount
                await conn.commit()
        except (sqlite3.Error, OverflowError) as e:
            raise DatabaseTransactionError(f"freezing processes failed: {e}") from e
        if frozen:
            logger.info("Froze %d processes at block %d", frozen, block_num)
        return frozen
