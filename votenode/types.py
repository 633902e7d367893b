"""
Votenode Shared Types.

Value objects exchanged between the synchronizer, the census and the
relational store, plus the canonical byte codecs for indexes and weights.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

MAX_UINT64 = 2**64 - 1

# Compressed public key length
IDENTITY_LEN = 32
HASH_LEN = 32
INDEX_LEN = 8

EMPTY_ROOT = bytes(HASH_LEN)


class ProcessStatus(IntEnum):
    """Lifecycle of a voting process. Only ever moves forward."""

    ON = 0
    FROZEN = 1  # results publishing phase reached
    CONTRACT_CLOSED = 2


@dataclass
class Process:
    id: int
    census_root: bytes
    census_size: int
    eth_block_num: int
    res_pub_start_block: int
    res_pub_window: int
    min_participation: int
    type: int
    status: ProcessStatus = ProcessStatus.ON
    inserted_at: Optional[str] = None


@dataclass
class CensusProof:
    """Membership of one identity in a census, as handed to voters."""

    index: int
    identity: bytes
    weight: Optional[int]
    merkle_proof: bytes


@dataclass
class VotePackage:
    signature: bytes
    census_proof: CensusProof
    vote: bytes
    process_id: Optional[int] = None
    inserted_at: Optional[str] = None


@dataclass
class CensusInfo:
    size: int
    closed: bool
    root: bytes
    err_msg: str = ""


# ─── Codecs ───────────────────────────────────────────────────────────


def uint64_to_index(i: int) -> bytes:
    """Encode a census index as 8 bytes, little-endian."""
    if i < 0 or i > MAX_UINT64:
        raise ValueError(f"index out of uint64 range: {i}")
    return i.to_bytes(INDEX_LEN, "little")


def index_to_uint64(b: bytes) -> int:
    if len(b) != INDEX_LEN:
        raise ValueError(f"index must be {INDEX_LEN} bytes, got {len(b)}")
    return int.from_bytes(b, "little")


def normalize_weight(weight: Optional[int]) -> int:
    """Absent weights are zero; negative weights are rejected."""
    if weight is None:
        return 0
    if weight < 0:
        raise ValueError(f"weight must be non-negative, got {weight}")
    return int(weight)


def weight_to_bytes(weight: Optional[int]) -> bytes:
    """Minimal big-endian encoding; zero encodes to b""."""
    w = normalize_weight(weight)
    return w.to_bytes((w.bit_length() + 7) // 8, "big")


def bytes_to_weight(b: Optional[bytes]) -> int:
    if not b:
        return 0
    return int.from_bytes(b, "big")


def check_identity(identity: bytes) -> bytes:
    identity = bytes(identity)
    if len(identity) != IDENTITY_LEN:
        raise ValueError(
            f"identity must be a {IDENTITY_LEN}-byte compressed public key, got {len(identity)} bytes"
        )
    return identity
