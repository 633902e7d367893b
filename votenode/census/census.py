"""
Verifiable Census.

A weighted set of identities committed into a sparse Merkle tree. Each
identity gets the next free index; the leaf at that index commits to
(index, identity, weight) with Poseidon. Once closed, the census accepts no
more identities and its root is the one the voting process commits to.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from votenode.census.hashing import hash_leaf
from votenode.census.kvstore import KVStore, ReadTx, WriteTx
from votenode.census.tree import MerkleTree, verify
from votenode.exceptions import CensusClosed, IdentityNotFound, VoteNodeError
from votenode.types import (
    MAX_UINT64,
    CensusInfo,
    CensusProof,
    bytes_to_weight,
    check_identity,
    index_to_uint64,
    normalize_weight,
    uint64_to_index,
    weight_to_bytes,
)

logger = logging.getLogger("votenode.census")

NEXT_INDEX_KEY = b"c/nextIndex"
CLOSED_KEY = b"c/closed"
ERR_MSG_KEY = b"c/errMsg"
# identity -> index
IDENTITY_PREFIX = b"c/pk/"
# index -> weight
WEIGHT_PREFIX = b"c/w/"


class Census:
    """Census tree plus its nextIndex counter and closed flag, in one store."""

    def __init__(self, store: KVStore | str | Path):
        self._db = store if isinstance(store, KVStore) else KVStore(store)
        self._tree = MerkleTree()

        with self._db.write_tx() as wtx:
            if wtx.get(NEXT_INDEX_KEY) is None:
                self._set_next_index(wtx, 0)
                wtx.put(CLOSED_KEY, b"\x00")
                logger.info("New census initialized at %s", self._db.path)

    # ─── Counters & flags ─────────────────────────────────────────

    def _get_next_index(self, tx: ReadTx) -> int:
        raw = tx.get(NEXT_INDEX_KEY)
        return index_to_uint64(raw) if raw else 0

    def _set_next_index(self, tx: WriteTx, i: int) -> None:
        tx.put(NEXT_INDEX_KEY, uint64_to_index(i))

    def _closed(self, tx: ReadTx) -> bool:
        return tx.get(CLOSED_KEY) == b"\x01"

    def _record_error(self, msg: str) -> None:
        try:
            with self._db.write_tx() as wtx:
                wtx.put(ERR_MSG_KEY, msg.encode("utf-8"))
        except VoteNodeError as e:
            logger.error("Could not record census error %r: %s", msg, e)

    # ─── Enrollment ───────────────────────────────────────────────

    def add_identities(
        self,
        identities: Sequence[bytes],
        weights: Optional[Sequence[Optional[int]]] = None,
    ) -> List[bytes]:
        """Enroll identities, returning the ones rejected as duplicates.

        The whole batch runs in one write transaction: either every new
        identity gets its index or, on a storage failure, none does.

        Raises:
            CensusClosed: the census no longer accepts identities.
            ValueError: malformed identity, negative weight, or a weights
                list whose length differs from identities.
            DatabaseTransactionError: the transaction was rolled back.
        """
        if weights is None:
            weights = [0] * len(identities)
        if len(weights) != len(identities):
            raise ValueError(
                f"got {len(identities)} identities but {len(weights)} weights"
            )
        pks = [check_identity(pk) for pk in identities]
        ws = [normalize_weight(w) for w in weights]

        invalids: List[bytes] = []
        try:
            with self._db.write_tx() as wtx:
                if self._closed(wtx):
                    raise CensusClosed("census closed, can not add identities")

                next_index = self._get_next_index(wtx)
                for pk, w in zip(pks, ws):
                    pk_key = IDENTITY_PREFIX + pk
                    if wtx.get(pk_key) is not None:
                        invalids.append(pk)
                        continue
                    index_bytes = uint64_to_index(next_index)
                    self._tree.add(wtx, next_index, hash_leaf(next_index, pk, w))
                    wtx.put(pk_key, index_bytes)
                    wtx.put(WEIGHT_PREFIX + index_bytes, weight_to_bytes(w))
                    next_index += 1

                self._set_next_index(wtx, next_index)
                wtx.delete(ERR_MSG_KEY)
        except (VoteNodeError, ValueError) as e:
            self._record_error(str(e))
            raise

        logger.debug(
            "Added %d identities to census (%d invalid)",
            len(pks) - len(invalids),
            len(invalids),
        )
        return invalids

    # ─── Proofs ───────────────────────────────────────────────────

    def get_proof(self, identity: bytes) -> CensusProof:
        """Index, weight and inclusion proof of an enrolled identity."""
        pk = check_identity(identity)
        with self._db.read_tx() as rtx:
            raw_index = rtx.get(IDENTITY_PREFIX + pk)
            if raw_index is None:
                raise IdentityNotFound(f"identity {pk.hex()} not in census")
            index = index_to_uint64(raw_index)
            weight = bytes_to_weight(rtx.get(WEIGHT_PREFIX + raw_index))
            proof = self._tree.proof(rtx, index)
        return CensusProof(index=index, identity=pk, weight=weight, merkle_proof=proof)

    # ─── Lifecycle ────────────────────────────────────────────────

    def close(self) -> bytes:
        """Freeze the census. Idempotent. Returns the final root."""
        with self._db.write_tx() as wtx:
            if not self._closed(wtx):
                wtx.put(CLOSED_KEY, b"\x01")
                logger.info("Census closed with %d identities", self._get_next_index(wtx))
            return self._tree.root(wtx)

    def is_closed(self) -> bool:
        with self._db.read_tx() as rtx:
            return self._closed(rtx)

    def root(self) -> bytes:
        with self._db.read_tx() as rtx:
            return self._tree.root(rtx)

    def size(self) -> int:
        with self._db.read_tx() as rtx:
            return self._get_next_index(rtx)

    def info(self) -> CensusInfo:
        with self._db.read_tx() as rtx:
            err = rtx.get(ERR_MSG_KEY)
            return CensusInfo(
                size=self._get_next_index(rtx),
                closed=self._closed(rtx),
                root=self._tree.root(rtx),
                err_msg=err.decode("utf-8") if err else "",
            )


def check_proof(
    root: bytes,
    proof: bytes,
    index: int,
    identity: bytes,
    weight: Optional[int],
) -> bool:
    """Verify that (index, identity, weight) is a leaf of the census with
    the given root. Stateless; usable by anyone holding the root."""
    if not 0 <= index <= MAX_UINT64:
        return False
    try:
        leaf = hash_leaf(index, identity, weight)
    except ValueError:
        return False
    return verify(root, leaf, index, proof)
