"""
Exception types and error classification for the stream indexer.

Provides:
- ErrorCategory enum for retry/skip decisions
- Typed exception hierarchy for pipeline errors
- Domain errors for the log, object store and search store collaborators
- Error classification utilities
"""

from enum import Enum
from typing import Optional


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., network timeouts, throttling, 503 errors)
        AUTH: Authentication failures requiring credential refresh
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., 404, malformed payloads, configuration issues)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class PipelineError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error should trigger a retry."""
        return self.category in (
            ErrorCategory.TRANSIENT,
            ErrorCategory.AUTH,
            ErrorCategory.UNKNOWN,
        )

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Authentication Errors
# =============================================================================


class AuthError(PipelineError):
    """Credentials rejected by a collaborator."""

    category = ErrorCategory.AUTH


# =============================================================================
# Transient Errors
# =============================================================================


class TransientError(PipelineError):
    """Base class for transient/retriable errors."""

    category = ErrorCategory.TRANSIENT


class ConnectionError(TransientError):
    """Network connection failed (DNS, refused, reset)."""

    pass


class TimeoutError(TransientError):
    """Operation timed out."""

    pass


class ThrottlingError(TransientError):
    """Rate limited (429 / provisioned throughput exceeded)."""

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        super().__init__(message, cause, context)
        self.retry_after = retry_after


class ServiceUnavailableError(TransientError):
    """Service temporarily unavailable (503)."""

    pass


# =============================================================================
# Permanent Errors
# =============================================================================


class PermanentError(PipelineError):
    """Base class for permanent/non-retriable errors."""

    category = ErrorCategory.PERMANENT


class NotFoundError(PermanentError):
    """Resource not found (404, missing stream/bucket/key)."""

    pass


class ForbiddenError(PermanentError):
    """Access denied (403)."""

    pass


class ValidationError(PermanentError):
    """Data validation failed."""

    pass


class ConfigurationError(PermanentError):
    """Invalid configuration."""

    pass


# =============================================================================
# Stream (log storage) Errors
# =============================================================================


class StreamInitializationError(PermanentError):
    """Stream or shard could not be described/located at startup. Fatal."""

    pass


class StreamReadError(TransientError):
    """A batch read against the log storage failed."""

    pass


class CursorExpiredError(TransientError):
    """
    The shard iterator was rejected as expired or invalid.

    Distinct from StreamReadError: retrying the same cursor can never
    succeed, the cursor has to be re-initialized.
    """

    def __init__(
        self,
        message: str = "Shard iterator expired or invalid",
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        super().__init__(message, cause, context)


# =============================================================================
# Record Pipeline Errors
# =============================================================================


class PayloadDecodeError(ValidationError):
    """Record bytes are not UTF-8 JSON of an accepted shape."""

    pass


class DocumentBuildError(ValidationError):
    """Decoded payload could not be turned into an indexable document."""

    pass


class _CategorizedError(PipelineError):
    """Collaborator error whose category is decided per instance."""

    def __init__(
        self,
        message: str,
        category: Optional[ErrorCategory] = None,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        super().__init__(message, cause, context)
        if category is not None:
            self.category = category


class ObjectFetchError(_CategorizedError):
    """Referenced object could not be fetched from the object store."""

    pass


class SearchStoreError(_CategorizedError):
    """Search store request failed."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        category: Optional[ErrorCategory] = None,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        super().__init__(message, category, cause, context)
        self.status = status


# =============================================================================
# Error Classification Utilities
# =============================================================================


def classify_http_status(status_code: int) -> ErrorCategory:
    """
    Classify HTTP status code into error category.

    Args:
        status_code: HTTP response status

    Returns:
        Appropriate ErrorCategory
    """
    if 200 <= status_code < 300:
        return ErrorCategory.UNKNOWN  # Not an error

    if status_code == 401:
        return ErrorCategory.AUTH

    if status_code in (408, 429):
        return ErrorCategory.TRANSIENT

    if 400 <= status_code < 500:
        return ErrorCategory.PERMANENT

    if status_code >= 500:
        return ErrorCategory.TRANSIENT

    return ErrorCategory.UNKNOWN


def classify_exception(exc: Exception) -> ErrorCategory:
    """
    Classify an exception into error category.

    Args:
        exc: Exception to classify

    Returns:
        Appropriate ErrorCategory
    """
    # Already classified
    if isinstance(exc, PipelineError):
        return exc.category

    exc_type = type(exc).__name__.lower()
    exc_str = str(exc).lower()

    connection_markers = (
        "connectionerror",
        "endpointconnectionerror",
        "connection refused",
        "connection reset",
        "connection aborted",
        "could not connect",
        "name resolution",
        "dns",
        "socket",
        "broken pipe",
    )
    if any(m in exc_type or m in exc_str for m in connection_markers):
        return ErrorCategory.TRANSIENT

    if "timeout" in exc_type or "timeout" in exc_str:
        return ErrorCategory.TRANSIENT

    auth_markers = (
        "401",
        "unauthorized",
        "unrecognizedclient",
        "invalidsignature",
        "signaturedoesnotmatch",
        "expiredtoken",
    )
    if any(m in exc_type or m in exc_str for m in auth_markers):
        return ErrorCategory.AUTH

    if "429" in exc_str or "throttl" in exc_str or "rate limit" in exc_str:
        return ErrorCategory.TRANSIENT

    if "503" in exc_str or "502" in exc_str or "504" in exc_str:
        return ErrorCategory.TRANSIENT

    if "403" in exc_str or "forbidden" in exc_str or "access denied" in exc_str:
        return ErrorCategory.PERMANENT

    if "404" in exc_str or "not found" in exc_str:
        return ErrorCategory.PERMANENT

    return ErrorCategory.UNKNOWN


def wrap_exception(
    exc: Exception,
    default_class: type = PipelineError,
    context: Optional[dict] = None,
) -> PipelineError:
    """
    Wrap a generic exception in appropriate PipelineError subclass.

    Args:
        exc: Exception to wrap
        default_class: Class to use if can't classify
        context: Additional context to include

    Returns:
        Appropriate PipelineError subclass instance
    """
    if isinstance(exc, PipelineError):
        if context:
            exc.context.update(context)
        return exc

    category = classify_exception(exc)
    exc_str = str(exc).lower()

    if category == ErrorCategory.AUTH:
        return AuthError(str(exc), cause=exc, context=context)

    if category == ErrorCategory.TRANSIENT:
        if "timeout" in exc_str or "timeout" in type(exc).__name__.lower():
            return TimeoutError(str(exc), cause=exc, context=context)
        if "429" in exc_str or "throttl" in exc_str:
            return ThrottlingError(str(exc), cause=exc, context=context)
        if "503" in exc_str:
            return ServiceUnavailableError(str(exc), cause=exc, context=context)
        return ConnectionError(str(exc), cause=exc, context=context)

    if category == ErrorCategory.PERMANENT:
        if "404" in exc_str or "not found" in exc_str:
            return NotFoundError(str(exc), cause=exc, context=context)
        if "403" in exc_str or "forbidden" in exc_str:
            return ForbiddenError(str(exc), cause=exc, context=context)
        return PermanentError(str(exc), cause=exc, context=context)

    return default_class(str(exc), cause=exc, context=context)
