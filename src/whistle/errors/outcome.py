"""
Typed operation outcomes.

Pool operations report expected failures (a spent nullifier, a root that has
rolled out of the history window, a proof that does not verify) as values so
that a caller processing a batch can keep going. Only structural problems are
raised.
"""

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional

from .exceptions import (
    CapacityError,
    CapacityReason,
    ConflictError,
    ConflictReason,
    EncodingError,
    ValidationError,
    WhistleError,
)


class OperationStatus(IntEnum):
    """Status codes for pool operations."""
    SUCCESS = 0
    INVALID_INPUT = 1
    INVALID_DENOMINATION = 2
    FEE_TOO_HIGH = 3
    DOUBLE_SPEND = 4
    STALE_ROOT = 5
    INVALID_PROOF = 6
    TREE_FULL = 7
    REGISTRY_FULL = 8
    MALFORMED_DATA = 9

    @property
    def is_retryable(self) -> bool:
        """Whether retrying against refreshed state can succeed."""
        return self == OperationStatus.STALE_ROOT


@dataclass
class OperationResult:
    """Outcome of a pool operation."""
    status: OperationStatus
    value: Any = None
    error: Optional[WhistleError] = None
    error_message: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        """Check if the operation was applied."""
        return self.status == OperationStatus.SUCCESS

    @property
    def retryable(self) -> bool:
        return self.status.is_retryable

    def unwrap(self) -> Any:
        """Return the value or raise the recorded error."""
        if self.is_success:
            return self.value
        if self.error is not None:
            raise self.error
        raise WhistleError(self.error_message or self.status.name, error_code=self.status.name.lower())

    @classmethod
    def success(cls, value: Any = None, **metadata: Any) -> 'OperationResult':
        return cls(status=OperationStatus.SUCCESS, value=value, metadata=metadata)

    @classmethod
    def failure(cls, status: OperationStatus, error: Optional[WhistleError] = None,
                message: Optional[str] = None, **metadata: Any) -> 'OperationResult':
        if message is None and error is not None:
            message = error.message
        return cls(status=status, error=error, error_message=message, metadata=metadata)

    @classmethod
    def from_error(cls, error: WhistleError, **metadata: Any) -> 'OperationResult':
        """Map a protocol error onto the matching status."""
        return cls.failure(status_for_error(error), error=error, **metadata)


_CONFLICT_STATUS = {
    ConflictReason.DOUBLE_SPEND: OperationStatus.DOUBLE_SPEND,
    ConflictReason.STALE_ROOT: OperationStatus.STALE_ROOT,
    ConflictReason.PATH_MISMATCH: OperationStatus.INVALID_PROOF,
    ConflictReason.CHAIN_BROKEN: OperationStatus.INVALID_INPUT,
}

_CAPACITY_STATUS = {
    CapacityReason.TREE_FULL: OperationStatus.TREE_FULL,
    CapacityReason.REGISTRY_FULL: OperationStatus.REGISTRY_FULL,
    CapacityReason.ARTIFACT_TOO_LARGE: OperationStatus.INVALID_INPUT,
}


def status_for_error(error: WhistleError) -> OperationStatus:
    """Translate an exception from a lower layer into an operation status."""
    if isinstance(error, ConflictError):
        return _CONFLICT_STATUS[error.reason]
    if isinstance(error, CapacityError):
        return _CAPACITY_STATUS[error.reason]
    if isinstance(error, EncodingError):
        return OperationStatus.MALFORMED_DATA
    if isinstance(error, ValidationError):
        return OperationStatus.INVALID_INPUT
    raise error
