"""
Sparse Merkle tree addressed by a 64-bit index.

One tree level per index bit: the leaf for index ``i`` sits at depth 64,
position ``i``, and its path to the root is read from the index bits,
least significant bit at the leaf level. Empty subtrees hash to zero, so
the root of an empty tree is the all-zero hash.

Inclusion proofs are packed as an 8-byte little-endian bitmap marking the
non-empty siblings, followed by those siblings (32 bytes each), leaf level
first.
"""

from __future__ import annotations

from typing import List, Optional

from votenode.census.hashing import (
    EMPTY_NODE,
    hash_node,
    hash_to_int,
    in_field,
    int_to_hash,
)
from votenode.census.kvstore import ReadTx, WriteTx
from votenode.types import EMPTY_ROOT, HASH_LEN, MAX_UINT64

DEPTH = 64
_BITMAP_LEN = DEPTH // 8


def pack_siblings(siblings: List[int]) -> bytes:
    if len(siblings) != DEPTH:
        raise ValueError(f"expected {DEPTH} siblings, got {len(siblings)}")
    bitmap = 0
    body = bytearray()
    for level, sibling in enumerate(siblings):
        if sibling != EMPTY_NODE:
            bitmap |= 1 << level
            body += int_to_hash(sibling)
    return bitmap.to_bytes(_BITMAP_LEN, "little") + bytes(body)


def unpack_siblings(proof: bytes) -> List[int]:
    if len(proof) < _BITMAP_LEN:
        raise ValueError("proof shorter than its bitmap")
    bitmap = int.from_bytes(proof[:_BITMAP_LEN], "little")
    body = proof[_BITMAP_LEN:]
    if len(body) != HASH_LEN * bin(bitmap).count("1"):
        raise ValueError("proof length does not match its bitmap")

    siblings = []
    offset = 0
    for level in range(DEPTH):
        if bitmap >> level & 1:
            siblings.append(hash_to_int(body[offset:offset + HASH_LEN]))
            offset += HASH_LEN
        else:
            siblings.append(EMPTY_NODE)
    return siblings


def compute_root(leaf_hash: int, index: int, siblings: List[int]) -> int:
    current = leaf_hash
    pos = index
    for sibling in siblings:
        if pos & 1:
            current = hash_node(sibling, current)
        else:
            current = hash_node(current, sibling)
        pos >>= 1
    return current


def verify(root: bytes, leaf_hash: int, index: int, proof: bytes) -> bool:
    """Check that leaf_hash sits at index under root. Pure, never raises
    on malformed input."""
    if len(root) != HASH_LEN or not 0 <= index <= MAX_UINT64:
        return False
    try:
        siblings = unpack_siblings(bytes(proof))
    except ValueError:
        return False
    if not all(in_field(s) for s in siblings):
        return False
    return int_to_hash(compute_root(leaf_hash, index, siblings)) == root


class MerkleTree:
    """Tree nodes persisted in a KVStore under a key prefix."""

    def __init__(self, prefix: bytes = b"t/"):
        self._prefix = prefix

    def _node_key(self, level: int, pos: int) -> bytes:
        return self._prefix + b"n" + bytes([level]) + pos.to_bytes(8, "big")

    def _get(self, tx: ReadTx, level: int, pos: int) -> int:
        raw = tx.get(self._node_key(level, pos))
        return hash_to_int(raw) if raw else EMPTY_NODE

    def root(self, tx: ReadTx) -> bytes:
        raw = tx.get(self._node_key(0, 0))
        return raw if raw else EMPTY_ROOT

    def leaf(self, tx: ReadTx, index: int) -> Optional[int]:
        raw = tx.get(self._node_key(DEPTH, index))
        return hash_to_int(raw) if raw else None

    def add(self, tx: WriteTx, index: int, leaf_hash: int) -> bytes:
        """Insert a leaf and rehash its path. Returns the new root."""
        if not 0 <= index <= MAX_UINT64:
            raise ValueError(f"index out of range: {index}")
        if self.leaf(tx, index) is not None:
            raise ValueError(f"leaf {index} already exists")

        current = leaf_hash
        pos = index
        tx.put(self._node_key(DEPTH, pos), int_to_hash(current))
        for level in range(DEPTH, 0, -1):
            sibling = self._get(tx, level, pos ^ 1)
            if pos & 1:
                current = hash_node(sibling, current)
            else:
                current = hash_node(current, sibling)
            pos >>= 1
            tx.put(self._node_key(level - 1, pos), int_to_hash(current))
        return int_to_hash(current)

    def siblings(self, tx: ReadTx, index: int) -> List[int]:
        siblings = []
        pos = index
        for level in range(DEPTH, 0, -1):
            siblings.append(self._get(tx, level, pos ^ 1))
            pos >>= 1
        return siblings

    def proof(self, tx: ReadTx, index: int) -> bytes:
        return pack_siblings(self.siblings(tx, index))
