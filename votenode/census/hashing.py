"""
Poseidon hashing for census leaves and tree nodes.

Values live in the Poseidon field, so 256-bit inputs (public keys, big
weights) are split into 128-bit limbs before hashing. The weight is
prefixed with its limb count, which keeps the encoding unambiguous.
"""

from __future__ import annotations

from typing import List

from poseidon_py.poseidon_hash import poseidon_hash, poseidon_hash_many

from votenode.types import HASH_LEN, check_identity, normalize_weight

# Prime of the field the Poseidon permutation works over
FIELD_PRIME = 2**251 + 17 * 2**192 + 1

EMPTY_NODE = 0

_LIMB_BITS = 128
_LIMB_MASK = (1 << _LIMB_BITS) - 1


def _limbs(n: int) -> List[int]:
    """Little-endian 128-bit limbs of n; zero has no limbs."""
    limbs = []
    while n:
        limbs.append(n & _LIMB_MASK)
        n >>= _LIMB_BITS
    return limbs


def hash_leaf(index: int, identity: bytes, weight: int | None) -> int:
    """Leaf value committing to (index, identity, weight)."""
    identity = check_identity(identity)
    pk = int.from_bytes(identity, "big")
    w_limbs = _limbs(normalize_weight(weight))
    return poseidon_hash_many(
        [index, pk >> _LIMB_BITS, pk & _LIMB_MASK, len(w_limbs), *w_limbs]
    )


def hash_node(left: int, right: int) -> int:
    """Parent of two children. Two empty children make an empty parent."""
    if left == EMPTY_NODE and right == EMPTY_NODE:
        return EMPTY_NODE
    return poseidon_hash(left, right)


def int_to_hash(n: int) -> bytes:
    return n.to_bytes(HASH_LEN, "big")


def hash_to_int(b: bytes) -> int:
    if len(b) != HASH_LEN:
        raise ValueError(f"hash must be {HASH_LEN} bytes, got {len(b)}")
    return int.from_bytes(b, "big")


def in_field(n: int) -> bool:
    return 0 <= n < FIELD_PRIME
