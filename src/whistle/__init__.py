"""
Whistle: protocol core of a shielded privacy pool.

Deposit notes and their commitments, an append-only Merkle accumulator with
a recent-root window, the Groth16 proof byte layout expected by the on-chain
verifier, a spent nullifier registry and the trusted setup contribution
chain.
"""

__version__ = "0.1.0"
__author__ = "Whistle Team"

from .ceremony import CeremonyArchive, ContributionChain, ContributionRecord, VerificationReport
from .config import WhistleConfig, get_global_config, set_global_config
from .crypto import (
    Hash,
    MerkleAccumulator,
    MerkleProof,
    Note,
    compute_commitment,
    compute_nullifier_hash,
    generate_note,
)
from .crypto.zkp import Groth16Proof, MockProvingBackend, decode_proof, encode_proof
from .errors import (
    CapacityError,
    ConflictError,
    EncodingError,
    IntegrityError,
    OperationResult,
    OperationStatus,
    ValidationError,
    WhistleError,
)
from .pool import NullifierRegistry, PoolState, PrivacyPool, WithdrawRequest

__all__ = [
    "WhistleConfig",
    "get_global_config",
    "set_global_config",
    "Hash",
    "Note",
    "generate_note",
    "compute_commitment",
    "compute_nullifier_hash",
    "MerkleAccumulator",
    "MerkleProof",
    "Groth16Proof",
    "encode_proof",
    "decode_proof",
    "MockProvingBackend",
    "NullifierRegistry",
    "PrivacyPool",
    "PoolState",
    "WithdrawRequest",
    "ContributionChain",
    "ContributionRecord",
    "VerificationReport",
    "CeremonyArchive",
    "WhistleError",
    "ValidationError",
    "CapacityError",
    "ConflictError",
    "EncodingError",
    "IntegrityError",
    "OperationResult",
    "OperationStatus",
]
