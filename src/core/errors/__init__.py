"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- PipelineError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    # Enums
    ErrorCategory,
    # Base classes
    PipelineError,
    AuthError,
    TransientError,
    PermanentError,
    # Transient errors
    ConnectionError,
    TimeoutError,
    ThrottlingError,
    ServiceUnavailableError,
    # Permanent errors
    NotFoundError,
    ForbiddenError,
    ValidationError,
    ConfigurationError,
    # Domain errors
    StreamInitializationError,
    StreamReadError,
    CursorExpiredError,
    PayloadDecodeError,
    DocumentBuildError,
    ObjectFetchError,
    SearchStoreError,
    # Classification utilities
    classify_http_status,
    classify_exception,
    wrap_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "PipelineError",
    "AuthError",
    "TransientError",
    "PermanentError",
    # Transient errors
    "ConnectionError",
    "TimeoutError",
    "ThrottlingError",
    "ServiceUnavailableError",
    # Permanent errors
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "ConfigurationError",
    # Domain errors
    "StreamInitializationError",
    "StreamReadError",
    "CursorExpiredError",
    "PayloadDecodeError",
    "DocumentBuildError",
    "ObjectFetchError",
    "SearchStoreError",
    # Classification utilities
    "classify_http_status",
    "classify_exception",
    "wrap_exception",
]
