"""
Persisted account layouts and instruction payloads of the pool program.

All integers that are field elements are 32-byte big-endian; counters and
lamport amounts are little-endian u64. Instruction payloads start with the
8-byte discriminator ``sha256("global:<name>")[:8]``.
"""

import struct
from dataclasses import dataclass

from ..crypto.field import (
    SCALAR_FIELD_MODULUS,
    from_be32,
    is_field_element,
    require_field_element,
    require_u64,
    to_be32,
)
from ..crypto.hashing import SHA256Hasher
from ..crypto.zkp.codec import PROOF_SIZE
from ..errors import (
    EncodingError,
    EncodingReason,
    ValidationError,
    ValidationReason,
    create_field_error,
)

INITIALIZE_DISCRIMINATOR = SHA256Hasher.discriminator("initialize")
DEPOSIT_DISCRIMINATOR = SHA256Hasher.discriminator("deposit")
WITHDRAW_DISCRIMINATOR = SHA256Hasher.discriminator("withdraw")
TRANSFER_DISCRIMINATOR = SHA256Hasher.discriminator("transfer")

DISCRIMINATOR_SIZE = 8
POOL_STATE_SIZE = 1 + 8 + 32 + 8
WITHDRAW_PAYLOAD_SIZE = DISCRIMINATOR_SIZE + PROOF_SIZE + 32 + 32 + 8 + 8 + 32
TRANSFER_PAYLOAD_SIZE = DISCRIMINATOR_SIZE + PROOF_SIZE + 32 + 32 + 32
DEPOSIT_PAYLOAD_SIZE = DISCRIMINATOR_SIZE + 32 + 8


def _check_payload(data: bytes, size: int, discriminator: bytes, name: str) -> None:
    if len(data) != size:
        raise EncodingError(
            f"{name} payload must be {size} bytes, got {len(data)}",
            reason=EncodingReason.INVALID_LENGTH,
        )
    if bytes(data[:DISCRIMINATOR_SIZE]) != discriminator:
        raise ValidationError(
            f"Payload does not carry the {name} discriminator",
            reason=ValidationReason.MALFORMED_PAYLOAD,
            field="discriminator",
            value=bytes(data[:DISCRIMINATOR_SIZE]).hex(),
        )


def _check_proof_bytes(proof: bytes) -> None:
    if not isinstance(proof, (bytes, bytearray)) or len(proof) != PROOF_SIZE:
        raise ValidationError(
            f"Encoded proof must be {PROOF_SIZE} bytes",
            reason=ValidationReason.MALFORMED_PAYLOAD,
            field="proof",
        )


@dataclass(frozen=True)
class PoolState:
    """Pool account: depth, next leaf index, current root, total deposited."""

    depth: int
    next_index: int
    current_root: int
    total_deposits: int

    def __post_init__(self):
        if not is_field_element(self.depth, 2**8):
            raise create_field_error("depth", self.depth, 2**8, "Invalid depth: must be a u8")
        require_u64(self.next_index, "next_index")
        require_field_element(self.current_root, "current_root")
        require_u64(self.total_deposits, "total_deposits")

    def to_bytes(self) -> bytes:
        return (
            struct.pack("<BQ", self.depth, self.next_index)
            + to_be32(self.current_root)
            + struct.pack("<Q", self.total_deposits)
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "PoolState":
        if len(data) != POOL_STATE_SIZE:
            raise EncodingError(
                f"Pool state must be {POOL_STATE_SIZE} bytes, got {len(data)}",
                reason=EncodingReason.INVALID_LENGTH,
            )
        depth, next_index = struct.unpack_from("<BQ", data, 0)
        root = from_be32(data, 9, SCALAR_FIELD_MODULUS, EncodingReason.NON_CANONICAL)
        (total,) = struct.unpack_from("<Q", data, 41)
        return cls(depth=depth, next_index=next_index, current_root=root, total_deposits=total)


@dataclass(frozen=True)
class DepositRequest:
    """Deposit instruction: commitment and lamport amount."""

    commitment: int
    amount: int

    def to_instruction_data(self) -> bytes:
        return DEPOSIT_DISCRIMINATOR + to_be32(self.commitment) + struct.pack("<Q", self.amount)

    @classmethod
    def from_instruction_data(cls, data: bytes) -> "DepositRequest":
        _check_payload(data, DEPOSIT_PAYLOAD_SIZE, DEPOSIT_DISCRIMINATOR, "deposit")
        commitment = from_be32(data, 8, SCALAR_FIELD_MODULUS, EncodingReason.NON_CANONICAL)
        (amount,) = struct.unpack_from("<Q", data, 40)
        return cls(commitment=commitment, amount=amount)


@dataclass(frozen=True)
class WithdrawRequest:
    """Withdraw instruction.

    Wire layout (376 bytes)::

        discriminator (8) | proof A (64) | proof B (128) | proof C (64)
        | nullifier hash (32) | recipient (32) | amount (8, LE)
        | relayer fee (8, LE) | merkle root (32)
    """

    proof: bytes
    nullifier_hash: int
    recipient: bytes
    amount: int
    relayer_fee: int
    merkle_root: int

    def __post_init__(self):
        _check_proof_bytes(self.proof)
        object.__setattr__(self, "proof", bytes(self.proof))
        if not isinstance(self.recipient, (bytes, bytearray)) or len(self.recipient) != 32:
            raise ValidationError(
                "Recipient must be 32 bytes",
                reason=ValidationReason.MALFORMED_PAYLOAD,
                field="recipient",
            )
        object.__setattr__(self, "recipient", bytes(self.recipient))
        require_field_element(self.nullifier_hash, "nullifier_hash")
        require_field_element(self.merkle_root, "merkle_root")
        require_u64(self.amount, "amount")
        require_u64(self.relayer_fee, "relayer_fee")

    def to_instruction_data(self) -> bytes:
        return (
            WITHDRAW_DISCRIMINATOR
            + self.proof
            + to_be32(self.nullifier_hash)
            + self.recipient
            + struct.pack("<QQ", self.amount, self.relayer_fee)
            + to_be32(self.merkle_root)
        )

    @classmethod
    def from_instruction_data(cls, data: bytes) -> "WithdrawRequest":
        _check_payload(data, WITHDRAW_PAYLOAD_SIZE, WITHDRAW_DISCRIMINATOR, "withdraw")
        offset = DISCRIMINATOR_SIZE
        proof = bytes(data[offset:offset + PROOF_SIZE])
        offset += PROOF_SIZE
        nullifier_hash = from_be32(data, offset, SCALAR_FIELD_MODULUS, EncodingReason.NON_CANONICAL)
        offset += 32
        recipient = bytes(data[offset:offset + 32])
        offset += 32
        amount, relayer_fee = struct.unpack_from("<QQ", data, offset)
        offset += 16
        merkle_root = from_be32(data, offset, SCALAR_FIELD_MODULUS, EncodingReason.NON_CANONICAL)
        return cls(
            proof=proof,
            nullifier_hash=nullifier_hash,
            recipient=recipient,
            amount=amount,
            relayer_fee=relayer_fee,
            merkle_root=merkle_root,
        )


@dataclass(frozen=True)
class TransferRequest:
    """Private transfer instruction: spend one note, append a new commitment."""

    proof: bytes
    nullifier_hash: int
    new_commitment: int
    merkle_root: int

    def __post_init__(self):
        _check_proof_bytes(self.proof)
        object.__setattr__(self, "proof", bytes(self.proof))
        require_field_element(self.nullifier_hash, "nullifier_hash")
        require_field_element(self.new_commitment, "new_commitment")
        require_field_element(self.merkle_root, "merkle_root")

    def to_instruction_data(self) -> bytes:
        return (
            TRANSFER_DISCRIMINATOR
            + self.proof
            + to_be32(self.nullifier_hash)
            + to_be32(self.new_commitment)
            + to_be32(self.merkle_root)
        )

    @classmethod
    def from_instruction_data(cls, data: bytes) -> "TransferRequest":
        _check_payload(data, TRANSFER_PAYLOAD_SIZE, TRANSFER_DISCRIMINATOR, "transfer")
        offset = DISCRIMINATOR_SIZE + PROOF_SIZE
        values = [
            from_be32(data, offset + 32 * i, SCALAR_FIELD_MODULUS, EncodingReason.NON_CANONICAL)
            for i in range(3)
        ]
        return cls(
            proof=bytes(data[DISCRIMINATOR_SIZE:offset]),
            nullifier_hash=values[0],
            new_commitment=values[1],
            merkle_root=values[2],
        )
