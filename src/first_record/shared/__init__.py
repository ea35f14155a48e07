"""
Shared building blocks for First Record Finder.

Provides:
- Unified exception hierarchy
- Async utilities for resilient external calls
"""

from .async_utils import (
    # Fault tolerance
    CircuitBreaker,
    # Retry
    async_retry,
)
from .exceptions import (
    AnalysisInProgressError,
    # API errors
    APIError,
    # Configuration errors
    ConfigurationError,
    # Data errors
    DataError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
    # Base
    FirstRecordError,
    InternalError,
    InvalidParameterError,
    InvalidQueryError,
    InvalidSignatureError,
    NotFoundError,
    OperationNotAllowedError,
    ParseError,
    PathEscapeError,
    QuotaExceededError,
    RateLimitError,
    # Security rejections
    SecurityRejection,
    TooLargeError,
    UnsupportedTypeError,
    UpstreamUnavailableError,
    # Validation errors
    ValidationError,
    get_retry_delay,
    # Utilities
    is_retryable_error,
)

__all__ = [
    "APIError",
    "AnalysisInProgressError",
    "CircuitBreaker",
    "ConfigurationError",
    "DataError",
    "ErrorCategory",
    "ErrorContext",
    "ErrorSeverity",
    "FirstRecordError",
    "InternalError",
    "InvalidParameterError",
    "InvalidQueryError",
    "InvalidSignatureError",
    "NotFoundError",
    "OperationNotAllowedError",
    "ParseError",
    "PathEscapeError",
    "QuotaExceededError",
    "RateLimitError",
    "SecurityRejection",
    "TooLargeError",
    "UnsupportedTypeError",
    "UpstreamUnavailableError",
    "ValidationError",
    "async_retry",
    "get_retry_delay",
    "is_retryable_error",
]
