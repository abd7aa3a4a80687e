"""Tests for the exception hierarchy and classification helpers."""

import pytest

from core.errors import (
    AuthError,
    ConnectionError,
    CursorExpiredError,
    DocumentBuildError,
    ErrorCategory,
    NotFoundError,
    ObjectFetchError,
    PayloadDecodeError,
    PermanentError,
    PipelineError,
    SearchStoreError,
    StreamInitializationError,
    StreamReadError,
    ThrottlingError,
    TimeoutError,
    TransientError,
    classify_exception,
    classify_http_status,
    wrap_exception,
)


class TestCategories:
    def test_cursor_expired_is_transient_but_distinct_from_read_error(self):
        error = CursorExpiredError()

        assert error.category == ErrorCategory.TRANSIENT
        assert isinstance(error, TransientError)
        assert not isinstance(error, StreamReadError)
        assert "expired" in str(error)

    def test_stream_initialization_is_permanent(self):
        error = StreamInitializationError("no shards")
        assert error.category == ErrorCategory.PERMANENT
        assert not error.is_retryable

    @pytest.mark.parametrize("cls", [PayloadDecodeError, DocumentBuildError])
    def test_record_errors_are_permanent(self, cls):
        assert cls("bad").category == ErrorCategory.PERMANENT

    def test_categorized_errors_take_category_per_instance(self):
        fetch = ObjectFetchError("gone", category=ErrorCategory.PERMANENT)
        search = SearchStoreError("busy", status=503, category=ErrorCategory.TRANSIENT)

        assert fetch.category == ErrorCategory.PERMANENT
        assert search.category == ErrorCategory.TRANSIENT
        assert search.status == 503
        assert ObjectFetchError("x").category == ErrorCategory.UNKNOWN

    def test_str_includes_cause(self):
        error = PipelineError("outer", cause=ValueError("inner"))
        assert str(error) == "outer | Caused by: inner"

    def test_throttling_retry_after(self):
        assert ThrottlingError("slow down", retry_after=2.5).retry_after == 2.5


class TestClassifyHttpStatus:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (401, ErrorCategory.AUTH),
            (408, ErrorCategory.TRANSIENT),
            (429, ErrorCategory.TRANSIENT),
            (400, ErrorCategory.PERMANENT),
            (404, ErrorCategory.PERMANENT),
            (500, ErrorCategory.TRANSIENT),
            (503, ErrorCategory.TRANSIENT),
            (200, ErrorCategory.UNKNOWN),
        ],
    )
    def test_status(self, status, expected):
        assert classify_http_status(status) == expected


class TestClassifyException:
    def test_pipeline_error_keeps_category(self):
        assert classify_exception(NotFoundError("x")) == ErrorCategory.PERMANENT

    def test_connection_markers(self):
        assert classify_exception(OSError("Connection refused")) == ErrorCategory.TRANSIENT

    def test_timeout(self):
        assert classify_exception(RuntimeError("read timeout")) == ErrorCategory.TRANSIENT

    def test_auth(self):
        assert classify_exception(RuntimeError("UnrecognizedClientException")) == ErrorCategory.AUTH

    def test_unknown(self):
        assert classify_exception(RuntimeError("boom")) == ErrorCategory.UNKNOWN


class TestWrapException:
    def test_returns_pipeline_error_unchanged(self):
        error = PermanentError("x")
        wrapped = wrap_exception(error, context={"k": "v"})

        assert wrapped is error
        assert wrapped.context == {"k": "v"}

    def test_wraps_timeout(self):
        wrapped = wrap_exception(RuntimeError("operation timeout"))
        assert isinstance(wrapped, TimeoutError)

    def test_wraps_connection(self):
        assert isinstance(wrap_exception(OSError("connection reset")), ConnectionError)

    def test_wraps_auth(self):
        assert isinstance(wrap_exception(RuntimeError("401 unauthorized")), AuthError)

    def test_wraps_not_found(self):
        assert isinstance(wrap_exception(RuntimeError("404 not found")), NotFoundError)

    def test_unknown_uses_default_class(self):
        wrapped = wrap_exception(RuntimeError("boom"))
        assert type(wrapped) is PipelineError
        assert wrapped.category == ErrorCategory.UNKNOWN
