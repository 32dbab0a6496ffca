"""
Cryptographic primitives for Whistle.

This module provides the field arithmetic helpers, hash functions, deposit
notes and the Merkle accumulator used by the privacy pool.
"""

from .field import BASE_FIELD_MODULUS, SCALAR_FIELD_MODULUS
from .hashing import (
    FieldHasher,
    Hash,
    SHA256Hasher,
    Sha3FieldHasher,
    get_default_hasher,
    hash_pair,
    set_default_hasher,
)
from .merkle import (
    AccumulatorSnapshot,
    MerkleAccumulator,
    MerkleProof,
    RootHistory,
    TreeState,
    compute_root,
    compute_zero_hashes,
)
from .notes import (
    Note,
    compute_commitment,
    compute_nullifier_hash,
    create_note,
    generate_note,
)

__all__ = [
    "SCALAR_FIELD_MODULUS",
    "BASE_FIELD_MODULUS",
    "Hash",
    "SHA256Hasher",
    "FieldHasher",
    "Sha3FieldHasher",
    "get_default_hasher",
    "set_default_hasher",
    "hash_pair",
    "Note",
    "compute_commitment",
    "compute_nullifier_hash",
    "create_note",
    "generate_note",
    "MerkleAccumulator",
    "MerkleProof",
    "AccumulatorSnapshot",
    "RootHistory",
    "TreeState",
    "compute_root",
    "compute_zero_hashes",
]
