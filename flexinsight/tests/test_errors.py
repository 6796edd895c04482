"""Tests for the ApiError taxonomy and the classifier."""

from __future__ import annotations

import json
import logging
import socket

import httpx
import pytest
from pydantic import BaseModel, ValidationError

from flexinsight.core.errors import (
    FORMAT_ERROR_MESSAGE,
    ApiError,
    AuthError,
    BadGateway,
    BadRequest,
    ClientError,
    ClientErrorOther,
    Forbidden,
    GatewayTimeout,
    InternalServerError,
    InvalidApiKey,
    NetworkConnectionError,
    NetworkError,
    NoConnection,
    NotFound,
    RateLimited,
    ServerError,
    ServerErrorOther,
    ServiceUnavailable,
    Timeout,
    UnknownError,
    classify,
    classify_exception,
    classify_status,
    log_error,
)


def _request() -> httpx.Request:
    return httpx.Request("GET", "https://api.test/v1/workouts")


# ---------------------------------------------------------------------------
# Status codes
# ---------------------------------------------------------------------------


class TestClassifyStatus:
    @pytest.mark.parametrize(
        "code, expected",
        [
            (400, BadRequest),
            (401, InvalidApiKey),
            (403, Forbidden),
            (404, NotFound),
            (429, RateLimited),
            (500, InternalServerError),
            (502, BadGateway),
            (503, ServiceUnavailable),
            (504, GatewayTimeout),
        ],
    )
    def test_named_codes(self, code: int, expected: type[ApiError]) -> None:
        error = classify_status(code)
        assert type(error) is expected
        assert error.http_code == code

    def test_unlisted_4xx_is_client_error_other(self) -> None:
        error = classify_status(418)
        assert isinstance(error, ClientErrorOther)
        assert error.http_code == 418
        assert not error.is_retryable

    def test_unlisted_5xx_is_server_error_other(self) -> None:
        error = classify_status(599)
        assert isinstance(error, ServerErrorOther)
        assert error.http_code == 599
        assert error.is_retryable

    def test_out_of_range_code_is_unknown(self) -> None:
        error = classify_status(302, "Found")
        assert isinstance(error, UnknownError)
        assert "302" in error.message
        assert error.http_code is None


# ---------------------------------------------------------------------------
# Derived flags
# ---------------------------------------------------------------------------


class TestDerivedFlags:
    def test_network_errors_are_retryable(self) -> None:
        for error in (NoConnection(), Timeout(), NetworkConnectionError()):
            assert error.is_retryable
            assert not error.is_auth_error

    def test_server_errors_are_retryable(self) -> None:
        assert all(classify_status(c).is_retryable for c in (500, 502, 503, 504, 550))

    def test_only_rate_limit_retries_among_client_errors(self) -> None:
        assert RateLimited().is_retryable
        assert not BadRequest().is_retryable
        assert not NotFound().is_retryable
        assert not ClientErrorOther(422).is_retryable

    def test_auth_errors_never_retry(self) -> None:
        for code in (401, 403):
            error = classify_status(code)
            assert error.is_auth_error
            assert not error.is_retryable

    def test_unknown_is_terminal(self) -> None:
        error = UnknownError("boom")
        assert not error.is_retryable
        assert not error.is_auth_error

    def test_families(self) -> None:
        assert isinstance(InvalidApiKey(), AuthError)
        assert isinstance(RateLimited(), ClientError)
        assert isinstance(BadGateway(), ServerError)
        assert isinstance(Timeout(), NetworkError)

    def test_timeout_defaults_to_thirty_seconds(self) -> None:
        assert Timeout().timeout_seconds == 30
        assert "30" in Timeout().message


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TestClassifyException:
    def test_api_error_passes_through(self) -> None:
        original = NotFound()
        assert classify_exception(original) is original

    def test_httpx_timeout(self) -> None:
        error = classify_exception(httpx.ReadTimeout("slow", request=_request()))
        assert isinstance(error, Timeout)
        assert error.timeout_seconds == 30

    def test_builtin_timeout(self) -> None:
        assert isinstance(classify_exception(TimeoutError()), Timeout)

    def test_dns_failure_is_no_connection(self) -> None:
        try:
            try:
                raise socket.gaierror(-2, "Name or service not known")
            except socket.gaierror as dns:
                raise httpx.ConnectError("dns", request=_request()) from dns
        except httpx.ConnectError as exc:
            error = classify_exception(exc)
        assert isinstance(error, NoConnection)

    def test_connect_error_is_connection_error(self) -> None:
        error = classify_exception(httpx.ConnectError("refused", request=_request()))
        assert isinstance(error, NetworkConnectionError)
        assert error.cause is not None

    def test_raw_os_error_is_connection_error(self) -> None:
        assert isinstance(classify_exception(ConnectionResetError()), NetworkConnectionError)

    def test_http_status_error_uses_status(self) -> None:
        response = httpx.Response(503, request=_request())
        exc = httpx.HTTPStatusError("503", request=_request(), response=response)
        assert isinstance(classify_exception(exc), ServiceUnavailable)

    def test_json_decode_error_is_format_error(self) -> None:
        try:
            json.loads("{not json")
        except json.JSONDecodeError as exc:
            error = classify_exception(exc)
        assert isinstance(error, UnknownError)
        assert error.message == FORMAT_ERROR_MESSAGE

    def test_validation_error_is_format_error(self) -> None:
        class Shape(BaseModel):
            id: int

        with pytest.raises(ValidationError) as info:
            Shape.model_validate({"id": "nope"})
        error = classify_exception(info.value)
        assert error.message == FORMAT_ERROR_MESSAGE

    def test_body_decoding_error_is_format_error(self) -> None:
        exc = httpx.DecodingError("bad gzip stream", request=_request())
        error = classify_exception(exc)
        assert isinstance(error, UnknownError)
        assert error.message == FORMAT_ERROR_MESSAGE
        assert not error.is_retryable

    def test_anything_else_is_unknown(self) -> None:
        error = classify_exception(RuntimeError("weird"))
        assert isinstance(error, UnknownError)
        assert error.message == "weird"


class TestClassify:
    def test_response(self) -> None:
        assert isinstance(classify(httpx.Response(401, request=_request())), InvalidApiKey)

    def test_bare_code(self) -> None:
        assert isinstance(classify(429), RateLimited)

    def test_exception(self) -> None:
        assert isinstance(classify(TimeoutError()), Timeout)


class TestLogError:
    def test_server_errors_log_at_error(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="flexinsight.core.errors"):
            log_error(InternalServerError(), "sync")
        assert caplog.records[-1].levelno == logging.ERROR
        assert "[sync]" in caplog.records[-1].getMessage()

    def test_auth_errors_log_at_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.DEBUG, logger="flexinsight.core.errors"):
            log_error(Forbidden())
        assert caplog.records[-1].levelno == logging.WARNING

    def test_logging_does_not_change_classification(self) -> None:
        error = RateLimited()
        log_error(error)
        assert error.is_retryable
        assert error.http_code == 429
