"""
Shielded pool: nullifier registry, account layouts and the pool itself.
"""

from .nullifiers import NullifierRegistry
from .pool import DepositReceipt, PrivacyPool, TransferReceipt, WithdrawReceipt
from .state import (
    DEPOSIT_DISCRIMINATOR,
    INITIALIZE_DISCRIMINATOR,
    TRANSFER_DISCRIMINATOR,
    WITHDRAW_DISCRIMINATOR,
    WITHDRAW_PAYLOAD_SIZE,
    DepositRequest,
    PoolState,
    TransferRequest,
    WithdrawRequest,
)

__all__ = [
    "NullifierRegistry",
    "PrivacyPool",
    "DepositReceipt",
    "WithdrawReceipt",
    "TransferReceipt",
    "PoolState",
    "DepositRequest",
    "WithdrawRequest",
    "TransferRequest",
    "INITIALIZE_DISCRIMINATOR",
    "DEPOSIT_DISCRIMINATOR",
    "WITHDRAW_DISCRIMINATOR",
    "TRANSFER_DISCRIMINATOR",
    "WITHDRAW_PAYLOAD_SIZE",
]
