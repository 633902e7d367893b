"""Vote package mixin: append-only store of submitted votes."""

from __future__ import annotations

import logging
import sqlite3
from typing import List

from votenode.db.schema import fits_integer
from votenode.exceptions import DatabaseTransactionError, DuplicateVote, ProcessNotFound
from votenode.types import CensusProof, VotePackage, bytes_to_weight, weight_to_bytes

logger = logging.getLogger("votenode.db")


class VotePackageMixin:
    async def store_vote_package(self, process_id: int, vote: VotePackage) -> None:
        """Store a vote package for process_id.

        A voter, identified by (census index, public key), votes once per
        process. A missing weight is stored as 0.

        Raises:
            DuplicateVote: the voter already voted in this process.
            ProcessNotFound: process_id is not a stored process.
            ValueError: the census index does not fit the store.
        """
        cp = vote.census_proof
        if not fits_integer(cp.index):
            raise ValueError(f"census index out of storable range: {cp.index}")
        if not fits_integer(process_id):
            raise ProcessNotFound(
                f"can not store vote package, process {process_id} does not exist"
            )

        try:
            async with self.session() as conn:
                await conn.execute(
                    "INSERT INTO votepackages "
                    "(indx, public_key, weight, merkleproof, signature, vote, process_id) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        cp.index,
                        bytes(cp.identity),
                        weight_to_bytes(cp.weight),
                        bytes(cp.merkle_proof),
                        bytes(vote.signature),
                        bytes(vote.vote),
                        process_id,
                    ),
                )
                await conn.commit()
        except sqlite3.IntegrityError as e:
            if "FOREIGN KEY" in str(e):
                raise ProcessNotFound(
                    f"can not store vote package, process {process_id} does not exist"
                ) from e
            if "UNIQUE" in str(e):
                raise DuplicateVote(
                    f"index {cp.index} already voted in process {process_id}"
                ) from e
            raise DatabaseTransactionError(f"storing vote package failed: {e}") from e
        except (sqlite3.Error, OverflowError) as e:
            raise DatabaseTransactionError(f"storing vote package failed: {e}") from e

        logger.debug("Stored vote package: process %d, index %d", process_id, cp.index)

    async def read_vote_packages_by_process_id(self, process_id: int) -> List[VotePackage]:
        """All vote packages of a process, ordered by census index."""
        # TODO paginate once processes outgrow a single read
        if not fits_integer(process_id):
            return []
        try:
            async with self.session() as conn:
                async with conn.execute(
                    "SELECT signature, indx, public_key, weight, merkleproof, vote, "
                    "process_id, inserted_at FROM votepackages "
                    "WHERE process_id = ? ORDER BY indx ASC",
                    (process_id,),
                ) as cursor:
                    rows = await cursor.fetchall()
        except (sqlite3.Error, OverflowError) as e:
            raise DatabaseTransactionError(f"reading vote packages failed: {e}") from e

        return [
            VotePackage(
                signature=bytes(r[0]),
                census_proof=CensusProof(
                    index=r[1],
                    identity=bytes(r[2]),
                    weight=bytes_to_weight(r[3]),
                    merkle_proof=bytes(r[4]),
                ),
                vote=bytes(r[5]),
                process_id=r[6],
                inserted_at=r[7],
            )
            for r in rows
        ]

    async def count_vote_packages(self, process_id: int) -> int:
        if not fits_integer(process_id):
            return 0
        try:
            async with self.session() as conn:
                async with conn.execute(
                    "SELECT COUNT(*) FROM votepackages WHERE process_id = ?", (process_id,)
                ) as cursor:
                    row = await cursor.fetchone()
        except (sqlite3.Error, OverflowError) as e:
            raise DatabaseTransactionError(f"counting vote packages failed: {e}") from e
        return row[0]
