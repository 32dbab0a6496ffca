"""Exception hierarchy for Whistle.

This module defines the error taxonomy shared by every protocol component:
validation of field elements and inputs, fixed-capacity exhaustion,
state conflicts (double spends, stale roots, broken chains) and
encoding failures of curve points.
"""

import time
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories."""

    VALIDATION = "validation"
    CAPACITY = "capacity"
    CONFLICT = "conflict"
    ENCODING = "encoding"
    INTEGRITY = "integrity"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


class ValidationReason(Enum):
    """Why an input was rejected."""

    INVALID_FIELD_ELEMENT = "invalid_field_element"
    INVALID_AMOUNT = "invalid_amount"
    INVALID_INDEX = "invalid_index"
    INVALID_WITNESS = "invalid_witness"
    INVALID_ARTIFACT_NAME = "invalid_artifact_name"
    MALFORMED_NOTE = "malformed_note"
    MALFORMED_PAYLOAD = "malformed_payload"


class CapacityReason(Enum):
    """Which fixed-size store ran out of room."""

    TREE_FULL = "tree_full"
    REGISTRY_FULL = "registry_full"
    ARTIFACT_TOO_LARGE = "artifact_too_large"


class ConflictReason(Enum):
    """Which state conflict was detected."""

    DOUBLE_SPEND = "double_spend"
    PATH_MISMATCH = "path_mismatch"
    CHAIN_BROKEN = "chain_broken"
    STALE_ROOT = "stale_root"


class EncodingReason(Enum):
    """Why a byte string could not be decoded."""

    MALFORMED_POINT = "malformed_point"
    INVALID_LENGTH = "invalid_length"
    NON_CANONICAL = "non_canonical"


@dataclass
class ErrorContext:
    """Context information for an error."""

    timestamp: float = field(default_factory=time.time)
    component: Optional[str] = None
    operation: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "timestamp": self.timestamp,
            "component": self.component,
            "operation": self.operation,
            "metadata": self.metadata,
        }


class WhistleError(Exception):
    """Base exception for all Whistle errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        retryable: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.severity = severity
        self.category = category
        self.context = context or ErrorContext()
        self.cause = cause
        self.retryable = retryable
        self.metadata = metadata or {}
        self.timestamp = time.time()
        self.traceback = traceback.format_exc()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "severity": self.severity.value,
            "category": self.category.value,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
            "retryable": self.retryable,
            "metadata": self.metadata,
            "timestamp": self.timestamp,
        }

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [f"{self.__class__.__name__}: {self.message}"]

        if self.error_code:
            parts.append(f"Code: {self.error_code}")

        if self.severity != ErrorSeverity.MEDIUM:
            parts.append(f"Severity: {self.severity.value}")

        if self.retryable:
            parts.append("Retryable: Yes")

        return " | ".join(parts)


class ValidationError(WhistleError):
    """Malformed or out-of-range input."""

    def __init__(
        self,
        message: str,
        reason: ValidationReason = ValidationReason.INVALID_FIELD_ELEMENT,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", reason.value)
        super().__init__(message, category=ErrorCategory.VALIDATION, **kwargs)
        self.reason = reason
        self.field = field
        self.value = value

    def to_dict(self) -> Dict[str, Any]:
        """Convert validation error to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "reason": self.reason.value,
                "field": self.field,
                "value": str(self.value) if self.value is not None else None,
            }
        )
        return data


class CapacityError(WhistleError):
    """A fixed-capacity store cannot accept another entry."""

    def __init__(
        self,
        message: str,
        reason: CapacityReason,
        capacity: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", reason.value)
        super().__init__(
            message,
            category=ErrorCategory.CAPACITY,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )
        self.reason = reason
        self.capacity = capacity

    def to_dict(self) -> Dict[str, Any]:
        """Convert capacity error to dictionary."""
        data = super().to_dict()
        data.update({"reason": self.reason.value, "capacity": self.capacity})
        return data


class ConflictError(WhistleError):
    """The operation conflicts with current protocol state."""

    def __init__(self, message: str, reason: ConflictReason, **kwargs):
        kwargs.setdefault("error_code", reason.value)
        kwargs.setdefault("retryable", reason == ConflictReason.STALE_ROOT)
        super().__init__(message, category=ErrorCategory.CONFLICT, **kwargs)
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        """Convert conflict error to dictionary."""
        data = super().to_dict()
        data.update({"reason": self.reason.value})
        return data


class EncodingError(WhistleError):
    """A byte string does not decode to a well-formed value."""

    def __init__(
        self,
        message: str,
        reason: EncodingReason = EncodingReason.MALFORMED_POINT,
        offset: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("error_code", reason.value)
        super().__init__(message, category=ErrorCategory.ENCODING, **kwargs)
        self.reason = reason
        self.offset = offset

    def to_dict(self) -> Dict[str, Any]:
        """Convert encoding error to dictionary."""
        data = super().to_dict()
        data.update({"reason": self.reason.value, "offset": self.offset})
        return data


class IntegrityError(WhistleError):
    """Structural inconsistency in persisted or derived state.

    Raised when recomputed state cannot be reconciled with what was stored;
    dependent operations must stop rather than continue on a wrong result.
    """

    def __init__(self, message: str, component: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.INTEGRITY,
            severity=ErrorSeverity.CRITICAL,
            retryable=False,
            **kwargs,
        )
        self.component = component

    def to_dict(self) -> Dict[str, Any]:
        """Convert integrity error to dictionary."""
        data = super().to_dict()
        data.update({"component": self.component})
        return data


class ConfigurationError(WhistleError):
    """Configuration error."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs,
    ):
        super().__init__(message, category=ErrorCategory.CONFIGURATION, **kwargs)
        self.config_key = config_key
        self.config_value = config_value

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration error to dictionary."""
        data = super().to_dict()
        data.update(
            {
                "config_key": self.config_key,
                "config_value": str(self.config_value)
                if self.config_value is not None
                else None,
            }
        )
        return data


def create_field_error(
    field: str, value: Any, modulus: int, message: Optional[str] = None
) -> ValidationError:
    """Create a validation error for a value outside the field."""
    if message is None:
        message = f"Invalid field element for '{field}': must satisfy 0 <= value < {modulus}"

    return ValidationError(
        message=message,
        reason=ValidationReason.INVALID_FIELD_ELEMENT,
        field=field,
        value=value,
    )
