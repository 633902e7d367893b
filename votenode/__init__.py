"""
votenode: synchronization and verification core of an on-chain voting node.

Follows the voting contract's event log into local process records, keeps a
weighted, Poseidon-hashed census tree that issues inclusion proofs, and
stores the vote packages submitted against it.
"""

__version__ = "0.1.0"

from votenode.census import Census, check_proof
from votenode.db import SQLiteStore
from votenode.eth import EventSynchronizer

__all__ = ["Census", "check_proof", "SQLiteStore", "EventSynchronizer", "__version__"]
