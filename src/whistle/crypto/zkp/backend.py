"""
Proving backend interface.

The constraint systems and the Groth16 prover live outside this library.
This module fixes what the pool needs from them: the public and private
inputs of the withdraw and transfer circuits, and a backend with
``prove(witness)`` and ``verify(proof, public_inputs, verifying_key)``.

``MockProvingBackend`` stands in for a real prover in tests. It enforces the
same relations the circuits do (note commitment under the claimed root,
nullifier hash derived from the nullifier, amounts in range) and produces a
deterministic proof keyed by its verifying key, so a proof made for one set
of public inputs does not verify against another.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from cryptography.hazmat.primitives import hashes, hmac

from ...errors import ValidationError, ValidationReason
from ...logging import get_logger
from ..field import BASE_FIELD_MODULUS, require_field_element, require_u64, to_be32
from ..hashing import FieldHasher, Hash, SHA256Hasher, get_default_hasher
from ..merkle import compute_root
from ..notes import compute_commitment, compute_nullifier_hash
from .codec import G1Point, G2Point, Groth16Proof

logger = get_logger(__name__)

WITHDRAW_CIRCUIT = "withdraw_merkle"
TRANSFER_CIRCUIT = "transfer_merkle"

RECIPIENT_SIZE = 32


def recipient_to_field(recipient: bytes) -> int:
    """Map a 32-byte address into the scalar field as ``0x00 || recipient[:31]``."""
    if not isinstance(recipient, (bytes, bytearray)) or len(recipient) != RECIPIENT_SIZE:
        raise ValidationError(
            "Recipient must be 32 bytes",
            reason=ValidationReason.MALFORMED_PAYLOAD,
            field="recipient",
        )
    return int.from_bytes(b"\x00" + bytes(recipient[:31]), byteorder="big")


@dataclass(frozen=True)
class VerifyingKey:
    """Identifies the key material a proof is checked against."""
    circuit: str
    key_hash: Hash

    @classmethod
    def from_artifact(cls, circuit: str, artifact: bytes) -> "VerifyingKey":
        """Bind to a ceremony artifact by its SHA-256."""
        return cls(circuit=circuit, key_hash=SHA256Hasher.hash(artifact))

    def get_hash(self) -> str:
        return self.key_hash.to_hex()


@dataclass(frozen=True)
class WithdrawPublicInputs:
    """Public signals of the withdraw circuit."""
    merkle_root: int
    nullifier_hash: int
    recipient: int
    amount: int
    relayer_fee: int

    circuit = WITHDRAW_CIRCUIT

    def to_field_elements(self) -> List[int]:
        return [self.merkle_root, self.nullifier_hash, self.recipient, self.amount, self.relayer_fee]


@dataclass(frozen=True)
class TransferPublicInputs:
    """Public signals of the private transfer circuit."""
    merkle_root: int
    nullifier_hash: int
    new_commitment: int

    circuit = TRANSFER_CIRCUIT

    def to_field_elements(self) -> List[int]:
        return [self.merkle_root, self.nullifier_hash, self.new_commitment]


PublicInputs = Union[WithdrawPublicInputs, TransferPublicInputs]


@dataclass(frozen=True)
class WithdrawWitness:
    """Full assignment for the withdraw circuit."""
    public: WithdrawPublicInputs
    secret: int
    nullifier: int
    note_amount: int
    path_elements: Tuple[int, ...] = field(default_factory=tuple)
    path_indices: Tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TransferWitness:
    """Full assignment for the private transfer circuit.

    The new note must carry the same amount as the spent one.
    """
    public: TransferPublicInputs
    secret: int
    nullifier: int
    amount: int
    new_secret: int
    new_nullifier: int
    path_elements: Tuple[int, ...] = field(default_factory=tuple)
    path_indices: Tuple[int, ...] = field(default_factory=tuple)


Witness = Union[WithdrawWitness, TransferWitness]


class ProvingBackend(ABC):
    """Abstract prover/verifier pair."""

    @property
    @abstractmethod
    def verifying_key(self) -> VerifyingKey:
        """Key that proofs from this backend verify against."""
        pass

    @abstractmethod
    def prove(self, witness: Witness) -> Groth16Proof:
        """Produce a proof, raising ``ValidationError`` for an unsatisfiable witness."""
        pass

    @abstractmethod
    def verify(self, proof: Groth16Proof, public_inputs: PublicInputs,
               verifying_key: VerifyingKey) -> bool:
        """Check ``proof`` against ``public_inputs``."""
        pass


def _unsatisfied(message: str, **metadata) -> ValidationError:
    return ValidationError(message, reason=ValidationReason.INVALID_WITNESS, metadata=metadata)


class MockProvingBackend(ProvingBackend):
    """Deterministic stand-in for a Groth16 prover."""

    def __init__(self, verifying_key: Optional[VerifyingKey] = None,
                 hasher: Optional[FieldHasher] = None):
        self._key = verifying_key or VerifyingKey.from_artifact(WITHDRAW_CIRCUIT, b"whistle-mock-setup")
        self._hasher = hasher or get_default_hasher()
        self._lock = threading.RLock()
        self.proofs_generated = 0
        self.verifications = 0

    @property
    def verifying_key(self) -> VerifyingKey:
        return self._key

    def _check_membership(self, commitment: int, merkle_root: int,
                          path_elements: Sequence[int], path_indices: Sequence[int]) -> None:
        if not path_elements or len(path_elements) != len(path_indices):
            raise _unsatisfied("Merkle path is empty or inconsistent",
                               elements=len(path_elements), indices=len(path_indices))
        index = sum(bit << level for level, bit in enumerate(path_indices))
        root = compute_root(commitment, index, path_elements, path_indices, self._hasher)
        if root != merkle_root:
            raise _unsatisfied("Note commitment is not in the tree under the claimed root")

    def _check_withdraw(self, witness: WithdrawWitness) -> None:
        public = witness.public
        require_u64(public.amount, "amount")
        require_u64(public.relayer_fee, "relayer_fee")
        require_u64(witness.note_amount, "note_amount")
        require_field_element(public.recipient, "recipient")

        commitment = compute_commitment(witness.secret, witness.nullifier, witness.note_amount, self._hasher)
        self._check_membership(commitment, public.merkle_root, witness.path_elements, witness.path_indices)

        if compute_nullifier_hash(witness.nullifier, self._hasher) != public.nullifier_hash:
            raise _unsatisfied("Nullifier hash does not match the nullifier")
        if public.amount > witness.note_amount:
            raise _unsatisfied("Withdrawal exceeds the note amount",
                               amount=public.amount, note_amount=witness.note_amount)
        if public.relayer_fee > public.amount:
            raise _unsatisfied("Relayer fee exceeds the withdrawal amount")

    def _check_transfer(self, witness: TransferWitness) -> None:
        public = witness.public
        commitment = compute_commitment(witness.secret, witness.nullifier, witness.amount, self._hasher)
        self._check_membership(commitment, public.merkle_root, witness.path_elements, witness.path_indices)

        if compute_nullifier_hash(witness.nullifier, self._hasher) != public.nullifier_hash:
            raise _unsatisfied("Nullifier hash does not match the nullifier")
        new_commitment = compute_commitment(witness.new_secret, witness.new_nullifier,
                                            witness.amount, self._hasher)
        if new_commitment != public.new_commitment:
            raise _unsatisfied("New commitment does not carry the spent amount")

    def _derive(self, key: VerifyingKey, public_inputs: PublicInputs) -> Groth16Proof:
        values = []
        for counter in range(8):
            mac = hmac.HMAC(key.key_hash.value, hashes.SHA256())
            mac.update(public_inputs.circuit.encode("utf-8"))
            mac.update(bytes([counter]))
            for element in public_inputs.to_field_elements():
                mac.update(to_be32(element))
            values.append(int.from_bytes(mac.finalize(), byteorder="big") % BASE_FIELD_MODULUS)

        return Groth16Proof(
            a=G1Point(values[0], values[1]),
            b=G2Point(x=(values[2], values[3]), y=(values[4], values[5])),
            c=G1Point(values[6], values[7]),
        )

    def prove(self, witness: Witness) -> Groth16Proof:
        if isinstance(witness, WithdrawWitness):
            self._check_withdraw(witness)
        elif isinstance(witness, TransferWitness):
            self._check_transfer(witness)
        else:
            raise _unsatisfied(f"Unsupported witness type {type(witness).__name__}")

        proof = self._derive(self._key, witness.public)
        with self._lock:
            self.proofs_generated += 1
        logger.debug("Generated mock proof", extra={"circuit": witness.public.circuit})
        return proof

    def verify(self, proof: Groth16Proof, public_inputs: PublicInputs,
               verifying_key: VerifyingKey) -> bool:
        with self._lock:
            self.verifications += 1
        if verifying_key != self._key:
            return False
        return proof == self._derive(verifying_key, public_inputs)
