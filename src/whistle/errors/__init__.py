"""Whistle Error Handling System.

Exception hierarchy for the protocol components and the typed outcome used
by pool operations for expected failures.
"""

from .exceptions import (
    CapacityError,
    CapacityReason,
    ConfigurationError,
    ConflictError,
    ConflictReason,
    EncodingError,
    EncodingReason,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    IntegrityError,
    ValidationError,
    ValidationReason,
    WhistleError,
    create_field_error,
)
from .outcome import OperationResult, OperationStatus, status_for_error

__all__ = [
    # Exceptions
    "WhistleError",
    "ValidationError",
    "CapacityError",
    "ConflictError",
    "EncodingError",
    "IntegrityError",
    "ConfigurationError",
    # Reasons
    "ValidationReason",
    "CapacityReason",
    "ConflictReason",
    "EncodingReason",
    # Metadata
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorContext",
    "create_field_error",
    # Outcomes
    "OperationResult",
    "OperationStatus",
    "status_for_error",
]
