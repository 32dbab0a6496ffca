"""
Privacy pool.

Composes the accumulator, the nullifier registry, the proof codec and a
proving backend into deposit, withdraw and private transfer operations.
Operations return an :class:`OperationResult`; expected rejections such as
a double spend or a root outside the history window are results, not
exceptions, so a caller working through a batch is not interrupted.
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config import WhistleConfig, get_global_config
from ..crypto.field import require_u64
from ..crypto.hashing import FieldHasher, get_default_hasher
from ..crypto.merkle import AccumulatorSnapshot, MerkleAccumulator
from ..crypto.notes import Note
from ..crypto.zkp.backend import (
    ProvingBackend,
    TransferPublicInputs,
    TransferWitness,
    WithdrawPublicInputs,
    WithdrawWitness,
    recipient_to_field,
)
from ..crypto.zkp.codec import decode_proof, encode_proof
from ..errors import (
    CapacityError,
    CapacityReason,
    ConflictError,
    ConflictReason,
    EncodingError,
    OperationResult,
    OperationStatus,
    ValidationError,
    ValidationReason,
    status_for_error,
)
from ..logging import LogContext, get_logger
from .nullifiers import NullifierRegistry
from .state import PoolState, TransferRequest, WithdrawRequest

logger = get_logger(__name__)


@dataclass(frozen=True)
class DepositReceipt:
    """Where a deposit landed."""
    commitment: int
    leaf_index: int
    amount: int
    root: int


@dataclass(frozen=True)
class WithdrawReceipt:
    """Payout of an accepted withdrawal."""
    nullifier_hash: int
    recipient: bytes
    amount: int
    relayer_fee: int

    @property
    def net_amount(self) -> int:
        return self.amount - self.relayer_fee


@dataclass(frozen=True)
class TransferReceipt:
    """Result of an accepted private transfer."""
    nullifier_hash: int
    new_commitment: int
    leaf_index: int
    root: int


class PrivacyPool:
    """Fixed-denomination shielded pool."""

    def __init__(
        self,
        backend: ProvingBackend,
        config: Optional[WhistleConfig] = None,
        hasher: Optional[FieldHasher] = None,
        pool_id: str = "pool",
    ):
        self.config = config or get_global_config()
        self.config.validate()
        self.backend = backend
        self.pool_id = pool_id
        self._hasher = hasher or get_default_hasher()
        self.tree = MerkleAccumulator.from_config(self.config, self._hasher)
        self.nullifiers = NullifierRegistry(self.config.nullifier_capacity)
        self._total_deposits = 0
        self._lock = threading.RLock()

    @property
    def total_deposits(self) -> int:
        with self._lock:
            return self._total_deposits

    def _log_context(self, operation: str) -> LogContext:
        return LogContext(component="pool", operation=operation, pool_id=self.pool_id)

    def _reject(self, operation: str, status: OperationStatus, message: str,
                error=None, **metadata: Any) -> OperationResult:
        logger.warning(
            f"{operation} rejected: {message}",
            context=self._log_context(operation),
            extra={"status": status.name, **metadata},
        )
        return OperationResult.failure(status, error=error, message=message, **metadata)

    def _check_denomination(self, amount: int) -> bool:
        return amount in self.config.allowed_denominations

    # Deposits

    def deposit(self, commitment: int, amount: int) -> OperationResult:
        """Append ``commitment`` for a deposit of ``amount`` lamports."""
        try:
            require_u64(amount, "amount")
        except ValidationError as e:
            return self._reject("deposit", OperationStatus.INVALID_INPUT, e.message, error=e)
        if not self._check_denomination(amount):
            return self._reject("deposit", OperationStatus.INVALID_DENOMINATION,
                                f"{amount} is not an allowed denomination", amount=amount)

        with self._lock:
            try:
                leaf_index = self.tree.insert(commitment)
            except (ValidationError, CapacityError) as e:
                return self._reject("deposit", status_for_error(e), e.message, error=e)

            self._total_deposits += amount
            root = self.tree.current_root

        logger.info(
            "Deposited",
            context=self._log_context("deposit"),
            extra={"leaf_index": leaf_index, "amount": amount},
        )
        return OperationResult.success(
            DepositReceipt(commitment=commitment, leaf_index=leaf_index, amount=amount, root=root)
        )

    def deposit_note(self, note: Note) -> OperationResult:
        """Deposit a note; on success the value is the note with its leaf index."""
        result = self.deposit(note.commitment, note.amount)
        if result.is_success:
            result.value = note.with_leaf_index(result.value.leaf_index)
        return result

    # Withdrawals

    def withdraw(self, request: WithdrawRequest) -> OperationResult:
        """Pay out a note proven to be in the tree under a recent root."""
        operation = "withdraw"
        if not self._check_denomination(request.amount):
            return self._reject(operation, OperationStatus.INVALID_DENOMINATION,
                                f"{request.amount} is not an allowed denomination")
        if request.relayer_fee > request.amount:
            return self._reject(operation, OperationStatus.FEE_TOO_HIGH,
                                "Relayer fee exceeds the withdrawal amount")

        public_inputs = WithdrawPublicInputs(
            merkle_root=request.merkle_root,
            nullifier_hash=request.nullifier_hash,
            recipient=recipient_to_field(request.recipient),
            amount=request.amount,
            relayer_fee=request.relayer_fee,
        )

        with self._lock:
            checked = self._check_spend(operation, request.nullifier_hash, request.merkle_root)
            if checked is not None:
                return checked

            verified = self._verify_proof(operation, request.proof, public_inputs)
            if verified is not None:
                return verified
            spent = self._spend(operation, request.nullifier_hash)
            if spent is not None:
                return spent

        logger.info(
            "Withdrawn",
            context=self._log_context(operation),
            extra={"amount": request.amount, "relayer_fee": request.relayer_fee},
        )
        return OperationResult.success(
            WithdrawReceipt(
                nullifier_hash=request.nullifier_hash,
                recipient=request.recipient,
                amount=request.amount,
                relayer_fee=request.relayer_fee,
            )
        )

    def withdraw_instruction(self, data: bytes) -> OperationResult:
        """Parse a withdraw payload and process it."""
        try:
            request = WithdrawRequest.from_instruction_data(data)
        except (EncodingError, ValidationError) as e:
            return self._reject("withdraw", OperationStatus.MALFORMED_DATA, e.message, error=e)
        return self.withdraw(request)

    def _check_spend(self, operation: str, nullifier_hash: int, merkle_root: int) -> Optional[OperationResult]:
        if self.nullifiers.is_spent(nullifier_hash):
            error = ConflictError("Nullifier has already been spent", reason=ConflictReason.DOUBLE_SPEND)
            return self._reject(operation, OperationStatus.DOUBLE_SPEND, error.message, error=error)
        if not self.tree.is_known_root(merkle_root):
            error = ConflictError("Merkle root is not in the recent root window",
                                  reason=ConflictReason.STALE_ROOT)
            return self._reject(operation, OperationStatus.STALE_ROOT, error.message, error=error)
        return None

    def _verify_proof(self, operation: str, encoded: bytes, public_inputs) -> Optional[OperationResult]:
        try:
            proof = decode_proof(encoded)
        except EncodingError as e:
            return self._reject(operation, OperationStatus.INVALID_PROOF,
                                f"Proof does not decode: {e.message}", error=e)
        if not self.backend.verify(proof, public_inputs, self.backend.verifying_key):
            return self._reject(operation, OperationStatus.INVALID_PROOF, "Proof does not verify")
        return None

    def _spend(self, operation: str, nullifier_hash: int) -> Optional[OperationResult]:
        try:
            fresh = self.nullifiers.check_and_insert(nullifier_hash)
        except CapacityError as e:
            return self._reject(operation, OperationStatus.REGISTRY_FULL, e.message, error=e)
        if not fresh:
            error = ConflictError("Nullifier has already been spent", reason=ConflictReason.DOUBLE_SPEND)
            return self._reject(operation, OperationStatus.DOUBLE_SPEND, error.message, error=error)
        return None

    # Private transfers

    def transfer(self, request: TransferRequest) -> OperationResult:
        """Spend a note and append a new commitment of the same amount."""
        operation = "transfer"
        public_inputs = TransferPublicInputs(
            merkle_root=request.merkle_root,
            nullifier_hash=request.nullifier_hash,
            new_commitment=request.new_commitment,
        )

        with self._lock:
            checked = self._check_spend(operation, request.nullifier_hash, request.merkle_root)
            if checked is not None:
                return checked

            verified = self._verify_proof(operation, request.proof, public_inputs)
            if verified is not None:
                return verified
            # Both stores must accept before either is touched
            if self.tree.snapshot().is_full:
                error = CapacityError("Merkle tree is full", reason=CapacityReason.TREE_FULL,
                                      capacity=self.tree.capacity)
                return self._reject(operation, OperationStatus.TREE_FULL, error.message, error=error)
            if self.nullifiers.remaining == 0:
                error = CapacityError("Nullifier registry is full", reason=CapacityReason.REGISTRY_FULL,
                                      capacity=self.nullifiers.capacity)
                return self._reject(operation, OperationStatus.REGISTRY_FULL, error.message, error=error)

            spent = self._spend(operation, request.nullifier_hash)
            if spent is not None:
                return spent
            leaf_index = self.tree.insert(request.new_commitment)
            root = self.tree.current_root

        logger.info("Transferred", context=self._log_context(operation), extra={"leaf_index": leaf_index})
        return OperationResult.success(
            TransferReceipt(
                nullifier_hash=request.nullifier_hash,
                new_commitment=request.new_commitment,
                leaf_index=leaf_index,
                root=root,
            )
        )

    # Client side helpers

    def _path_for(self, note: Note):
        if note.leaf_index is None:
            raise ValidationError(
                "Note has not been deposited (no leaf index)",
                reason=ValidationReason.INVALID_INDEX,
                field="leaf_index",
            )
        proof = self.tree.get_proof(note.leaf_index)
        self.tree.verify_proof(note.commitment, proof)
        return proof

    def prepare_withdrawal(self, note: Note, recipient: bytes, relayer_fee: int = 0,
                           amount: Optional[int] = None) -> WithdrawRequest:
        """Build a ready-to-submit withdraw request for ``note``.

        Raises:
            ValidationError: the note has no leaf index or the backend
                rejects the witness.
            ConflictError: the note is not in the tree at its leaf index.
        """
        amount = note.amount if amount is None else amount
        require_u64(relayer_fee, "relayer_fee")
        path = self._path_for(note)

        public_inputs = WithdrawPublicInputs(
            merkle_root=path.root,
            nullifier_hash=note.nullifier_hash,
            recipient=recipient_to_field(recipient),
            amount=amount,
            relayer_fee=relayer_fee,
        )
        witness = WithdrawWitness(
            public=public_inputs,
            secret=note.secret,
            nullifier=note.nullifier,
            note_amount=note.amount,
            path_elements=path.siblings,
            path_indices=path.direction_bits,
        )
        proof = self.backend.prove(witness)
        return WithdrawRequest(
            proof=encode_proof(proof),
            nullifier_hash=note.nullifier_hash,
            recipient=bytes(recipient),
            amount=amount,
            relayer_fee=relayer_fee,
            merkle_root=path.root,
        )

    def prepare_transfer(self, note: Note, new_note: Note) -> TransferRequest:
        """Build a transfer request moving ``note`` into ``new_note``."""
        if new_note.amount != note.amount:
            raise ValidationError(
                "A transfer must preserve the note amount",
                reason=ValidationReason.INVALID_AMOUNT,
                field="amount",
                value=new_note.amount,
            )
        path = self._path_for(note)
        public_inputs = TransferPublicInputs(
            merkle_root=path.root,
            nullifier_hash=note.nullifier_hash,
            new_commitment=new_note.commitment,
        )
        witness = TransferWitness(
            public=public_inputs,
            secret=note.secret,
            nullifier=note.nullifier,
            amount=note.amount,
            new_secret=new_note.secret,
            new_nullifier=new_note.nullifier,
            path_elements=path.siblings,
            path_indices=path.direction_bits,
        )
        proof = self.backend.prove(witness)
        return TransferRequest(
            proof=encode_proof(proof),
            nullifier_hash=note.nullifier_hash,
            new_commitment=new_note.commitment,
            merkle_root=path.root,
        )

    # State

    def snapshot(self) -> AccumulatorSnapshot:
        return self.tree.snapshot()

    def pool_state(self) -> PoolState:
        with self._lock:
            snapshot = self.tree.snapshot()
            return PoolState(
                depth=snapshot.depth,
                next_index=snapshot.next_index,
                current_root=snapshot.root,
                total_deposits=self._total_deposits,
            )

    def get_stats(self) -> Dict[str, Any]:
        state = self.pool_state()
        return {
            'pool_id': self.pool_id,
            'depth': state.depth,
            'next_index': state.next_index,
            'total_deposits': state.total_deposits,
            'nullifiers': self.nullifiers.get_stats(),
        }
