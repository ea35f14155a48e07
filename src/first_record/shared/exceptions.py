"""
Unified Exception Hierarchy for First Record Finder.

Exception Hierarchy:
    FirstRecordError (base)
    ├── APIError
    │   ├── UpstreamUnavailableError
    │   └── RateLimitError
    ├── QuotaExceededError
    ├── ValidationError
    │   ├── InvalidParameterError
    │   └── InvalidQueryError
    ├── SecurityRejection
    │   ├── UnsupportedTypeError
    │   ├── TooLargeError
    │   ├── InvalidSignatureError
    │   └── PathEscapeError
    ├── DataError
    │   ├── NotFoundError
    │   └── ParseError
    ├── AnalysisInProgressError
    ├── OperationNotAllowedError
    ├── ConfigurationError
    └── InternalError

Adapter- and document-level failures are converted to data by their
callers (``per_source_errors``, ``error_message``). Validation and security
rejections propagate and terminate the single request.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from first_record.application.quota.tracker import QuotaStatus


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    WARNING = auto()      # Recoverable, can continue
    ERROR = auto()        # Failed but can retry
    CRITICAL = auto()     # Cannot continue
    TRANSIENT = auto()    # Temporary, should retry automatically


class ErrorCategory(Enum):
    """Categories for error classification."""
    API = "api"
    QUOTA = "quota"
    VALIDATION = "validation"
    SECURITY = "security"
    DATA = "data"
    STATE = "state"
    CONFIGURATION = "config"
    INTERNAL = "internal"


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Rich context attached to every error."""
    operation: str | None = None
    input_value: Any = None
    suggestion: str | None = None
    retry_after: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class FirstRecordError(Exception):
    """
    Base exception for all First Record Finder errors.

    Provides:
    - Structured error context
    - Severity classification
    - Retry guidance
    - JSON-friendly formatting for the HTTP API
    """

    __slots__ = ('context', 'severity', 'category', 'retryable')

    code: str = "error"

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        category: ErrorCategory = ErrorCategory.API,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.context = context or ErrorContext()
        self.severity = severity
        self.category = category
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": str(self),
            "code": self.code,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.context.suggestion:
            result["suggestion"] = self.context.suggestion
        if self.context.retry_after:
            result["retry_after_seconds"] = self.context.retry_after
        return result


# =============================================================================
# API Errors
# =============================================================================

class APIError(FirstRecordError):
    """Base class for errors raised while talking to an external service."""

    code = "upstream_error"

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.ERROR,
            category=ErrorCategory.API,
            retryable=retryable,
        )


class UpstreamUnavailableError(APIError):
    """A single source or provider failed; callers isolate it."""

    code = "upstream_unavailable"

    def __init__(
        self,
        service: str,
        message: str = "Service temporarily unavailable",
        *,
        retryable: bool = True,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(f"{service}: {message}", context=context, retryable=retryable)
        self.service = service
        if retryable:
            self.severity = ErrorSeverity.TRANSIENT


class RateLimitError(APIError):
    """Raised when an upstream rate limit or open circuit blocks a call."""

    code = "rate_limited"

    def __init__(
        self,
        message: str = "API rate limit exceeded",
        *,
        retry_after: float = 1.0,
    ) -> None:
        ctx = ErrorContext(suggestion="Wait and retry the request", retry_after=retry_after)
        super().__init__(message, context=ctx, retryable=True)
        self.severity = ErrorSeverity.TRANSIENT


# =============================================================================
# Quota
# =============================================================================

class QuotaExceededError(FirstRecordError):
    """The free-tier daily quota is spent; the billable call was not made."""

    code = "quota_exceeded"

    def __init__(self, status: QuotaStatus) -> None:
        super().__init__(
            f"Free-tier daily quota exhausted: {status.used}/{status.limit} calls used. "
            f"Resets at {status.resets_at.isoformat()}",
            context=ErrorContext(
                suggestion="Choose a paid or local model, or wait for the daily reset",
                metadata={"resets_at": status.resets_at.isoformat()},
            ),
            severity=ErrorSeverity.WARNING,
            category=ErrorCategory.QUOTA,
            retryable=False,
        )
        self.status = status


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(FirstRecordError):
    """Base class for bad input shape or range. Never retried."""

    code = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.WARNING,
            category=ErrorCategory.VALIDATION,
            retryable=False,
        )


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is invalid."""

    def __init__(self, param_name: str, value: Any, expected: str) -> None:
        super().__init__(
            f"Invalid parameter '{param_name}': {value!r} (expected {expected})",
            context=ErrorContext(input_value=value, suggestion=f"Expected {expected}"),
        )
        self.param_name = param_name


class InvalidQueryError(ValidationError):
    """Raised when a search name is unusable."""

    def __init__(self, query: str | None, reason: str = "Query cannot be empty") -> None:
        super().__init__(
            f"Invalid query: {reason}",
            context=ErrorContext(input_value=query, suggestion="Provide a scientific name such as 'Fistularia petimba'"),
        )


# =============================================================================
# Security Rejections (PDF intake)
# =============================================================================

class SecurityRejection(FirstRecordError):
    """Fatal rejection of a single upload. Never downgraded."""

    code = "security_rejection"
    http_status: int = 400

    def __init__(self, message: str, *, context: ErrorContext | None = None) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.SECURITY,
            retryable=False,
        )


class UnsupportedTypeError(SecurityRejection):
    code = "unsupported_type"


class TooLargeError(SecurityRejection):
    code = "too_large"
    http_status = 413


class InvalidSignatureError(SecurityRejection):
    code = "invalid_signature"


class PathEscapeError(SecurityRejection):
    code = "path_escape"


# =============================================================================
# Data Errors
# =============================================================================

class DataError(FirstRecordError):
    """Base class for data-related errors."""

    code = "data_error"

    def __init__(self, message: str, *, context: ErrorContext | None = None) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.ERROR,
            category=ErrorCategory.DATA,
            retryable=False,
        )


class NotFoundError(DataError):
    """Raised when requested data is not found."""

    code = "not_found"

    def __init__(self, resource: str, identifier: str | None = None) -> None:
        msg = f"{resource} not found"
        if identifier:
            msg = f"{resource} not found: {identifier}"
        super().__init__(msg, context=ErrorContext(input_value=identifier))


class ParseError(DataError):
    """Raised when an upstream payload cannot be parsed."""

    code = "parse_error"

    def __init__(self, message: str, *, source: str | None = None) -> None:
        full_msg = f"Parse error: {message}"
        if source:
            full_msg = f"Parse error ({source}): {message}"
        super().__init__(full_msg)


# =============================================================================
# State / Permission Errors
# =============================================================================

class AnalysisInProgressError(FirstRecordError):
    """A second analysis trigger arrived while the document is analyzing."""

    code = "analysis_in_progress"

    def __init__(self, pdf_id: str) -> None:
        super().__init__(
            f"Analysis already in progress for {pdf_id}",
            context=ErrorContext(input_value=pdf_id, suggestion="Wait for the running analysis to finish"),
            severity=ErrorSeverity.WARNING,
            category=ErrorCategory.STATE,
        )
        self.pdf_id = pdf_id


class OperationNotAllowedError(FirstRecordError):
    """Administrative operation disabled in this environment."""

    code = "not_allowed"

    def __init__(self, message: str) -> None:
        super().__init__(message, severity=ErrorSeverity.WARNING, category=ErrorCategory.STATE)


class ConfigurationError(FirstRecordError):
    """Raised for configuration-related errors (e.g. missing credentials)."""

    code = "configuration_error"

    def __init__(self, message: str, *, context: ErrorContext | None = None) -> None:
        super().__init__(
            message,
            context=context,
            severity=ErrorSeverity.CRITICAL,
            category=ErrorCategory.CONFIGURATION,
            retryable=False,
        )


class InternalError(FirstRecordError):
    """Unexpected failure. The public message never carries details."""

    code = "internal"
    public_message = "Internal server error"

    def __init__(self, message: str = public_message) -> None:
        super().__init__(message, severity=ErrorSeverity.CRITICAL, category=ErrorCategory.INTERNAL)


# =============================================================================
# Utilities
# =============================================================================

def is_retryable_error(error: Exception) -> bool:
    """Check if an error should be retried."""
    if isinstance(error, FirstRecordError):
        return error.retryable

    error_str = str(error).lower()
    transient_patterns = [
        "rate limit",
        "too many requests",
        "temporarily unavailable",
        "service unavailable",
        "connection reset",
        "timeout",
        "timed out",
    ]
    return any(pattern in error_str for pattern in transient_patterns)


def get_retry_delay(error: Exception, attempt: int, base_delay: float = 1.0) -> float:
    """
    Calculate retry delay with exponential backoff.

    Args:
        error: The exception that occurred
        attempt: Current attempt number (0-based)
        base_delay: Delay for the first retry in seconds

    Returns:
        Delay in seconds before next retry
    """
    if isinstance(error, FirstRecordError) and error.context.retry_after:
        base_delay = error.context.retry_after

    delay = base_delay * (2 ** attempt)
    jitter = random.uniform(0, 0.1 * delay)

    # Cap at 30 seconds
    return min(delay + jitter, 30.0)
