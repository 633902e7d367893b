"""Verifiable census: Poseidon sparse Merkle tree over a transactional store."""

from votenode.census.census import Census, check_proof
from votenode.census.kvstore import KVStore

__all__ = ["Census", "check_proof", "KVStore"]
