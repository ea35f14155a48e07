"""Tests for the exception hierarchy, error codes, serialization and retry helpers."""

from datetime import UTC, datetime

import pytest

from first_record.application.quota import QuotaStatus
from first_record.shared.exceptions import (
    AnalysisInProgressError,
    APIError,
    ConfigurationError,
    DataError,
    ErrorCategory,
    ErrorContext,
    ErrorSeverity,
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
    SecurityRejection,
    TooLargeError,
    UnsupportedTypeError,
    UpstreamUnavailableError,
    ValidationError,
    get_retry_delay,
    is_retryable_error,
)


class TestFirstRecordError:
    def test_basic_creation(self):
        e = FirstRecordError("test error")
        assert str(e) == "test error"
        assert e.severity == ErrorSeverity.ERROR
        assert e.category == ErrorCategory.API
        assert e.code == "error"

    def test_to_dict(self):
        ctx = ErrorContext(suggestion="try again", retry_after=5.0)
        d = FirstRecordError("fail", context=ctx, retryable=True).to_dict()
        assert d == {
            "error": "fail",
            "code": "error",
            "category": "api",
            "retryable": True,
            "suggestion": "try again",
            "retry_after_seconds": 5.0,
        }

    def test_to_dict_minimal(self):
        d = FirstRecordError("fail").to_dict()
        assert "suggestion" not in d
        assert "retry_after_seconds" not in d


class TestAPIErrors:
    def test_api_error_retryable_by_default(self):
        e = APIError("upstream fail")
        assert e.retryable is True
        assert e.code == "upstream_error"

    def test_upstream_unavailable(self):
        e = UpstreamUnavailableError("BHL", "timeout")
        assert str(e) == "BHL: timeout"
        assert e.service == "BHL"
        assert e.severity == ErrorSeverity.TRANSIENT
        assert isinstance(e, APIError)

    def test_upstream_unavailable_permanent(self):
        e = UpstreamUnavailableError("Docling", "bad document", retryable=False)
        assert e.retryable is False
        assert e.severity == ErrorSeverity.ERROR

    def test_rate_limit(self):
        e = RateLimitError("too fast", retry_after=5.0)
        assert e.context.retry_after == 5.0
        assert e.severity == ErrorSeverity.TRANSIENT


class TestQuotaExceededError:
    def test_carries_status(self):
        status = QuotaStatus(used=1000, limit=1000, resets_at=datetime(2024, 5, 2, tzinfo=UTC), warning_ratio=0.9)
        e = QuotaExceededError(status)

        assert e.status is status
        assert e.code == "quota_exceeded"
        assert e.retryable is False
        assert e.category == ErrorCategory.QUOTA
        assert "1000/1000" in str(e)
        assert "2024-05-02T00:00:00+00:00" in str(e)


class TestValidationErrors:
    def test_not_retryable(self):
        e = ValidationError("bad input")
        assert e.retryable is False
        assert e.category == ErrorCategory.VALIDATION

    def test_invalid_parameter(self):
        e = InvalidParameterError("max_results", 0, "1-100")
        assert "max_results" in str(e)
        assert e.param_name == "max_results"
        assert e.context.suggestion == "Expected 1-100"

    def test_invalid_query_default(self):
        assert "empty" in str(InvalidQueryError(None)).lower()

    def test_invalid_query_reason(self):
        e = InvalidQueryError("  ", reason="primary name cannot be blank")
        assert "primary name cannot be blank" in str(e)


class TestSecurityRejections:
    @pytest.mark.parametrize(
        ("cls", "code", "status"),
        [
            (UnsupportedTypeError, "unsupported_type", 400),
            (TooLargeError, "too_large", 413),
            (InvalidSignatureError, "invalid_signature", 400),
            (PathEscapeError, "path_escape", 400),
        ],
    )
    def test_kinds(self, cls, code, status):
        e = cls("rejected")
        assert isinstance(e, SecurityRejection)
        assert e.code == code
        assert e.http_status == status
        assert e.severity == ErrorSeverity.CRITICAL
        assert e.retryable is False


class TestDataErrors:
    def test_not_found(self):
        e = NotFoundError("PDF", "123_paper")
        assert str(e) == "PDF not found: 123_paper"
        assert isinstance(e, DataError)

    def test_not_found_without_id(self):
        assert str(NotFoundError("Species")) == "Species not found"

    def test_parse_error_source(self):
        e = ParseError("bad XML", source="ScienceON")
        assert str(e) == "Parse error (ScienceON): bad XML"


class TestStateErrors:
    def test_in_progress(self):
        e = AnalysisInProgressError("abc")
        assert e.pdf_id == "abc"
        assert e.category == ErrorCategory.STATE

    def test_not_allowed(self):
        assert OperationNotAllowedError("no").code == "not_allowed"

    def test_configuration(self):
        e = ConfigurationError("no API key")
        assert e.severity == ErrorSeverity.CRITICAL
        assert e.retryable is False

    def test_internal_hides_details(self):
        assert InternalError().to_dict()["error"] == "Internal server error"


class TestIsRetryableError:
    def test_domain_error_flag(self):
        assert is_retryable_error(UpstreamUnavailableError("OpenAlex")) is True
        assert is_retryable_error(ValidationError("bad")) is False

    @pytest.mark.parametrize("message", ["rate limit exceeded", "connection timeout", "Service Unavailable"])
    def test_transient_patterns(self, message):
        assert is_retryable_error(RuntimeError(message)) is True

    def test_other_error(self):
        assert is_retryable_error(ValueError("something else")) is False


class TestGetRetryDelay:
    def test_exponential_backoff(self):
        e = RuntimeError("fail")
        assert get_retry_delay(e, 0) < get_retry_delay(e, 1) < get_retry_delay(e, 2)

    def test_capped_at_30(self):
        assert get_retry_delay(RuntimeError("fail"), 10) <= 30.0

    def test_uses_retry_after(self):
        e = RateLimitError(retry_after=5.0)
        assert get_retry_delay(e, 0) >= 5.0
