"""Closed error taxonomy for remote workout API failures.

Every failure the sync layer can see (a transport exception, an HTTP status,
a malformed body) is turned into exactly one ``ApiError`` subclass.  The
families decide retry policy:

    NetworkError  — transient, retried
    AuthError     — terminal, never retried
    ServerError   — transient, retried
    ClientError   — terminal, except RateLimited
    UnknownError  — terminal catch-all

``is_retryable`` and ``is_auth_error`` are derived from the class on every
access; nothing about the policy is stored on the instance.
"""

from __future__ import annotations

import json
import logging
import socket

import httpx
import pydantic

logger = logging.getLogger("flexinsight.core.errors")

DEFAULT_TIMEOUT_SECONDS = 30
FORMAT_ERROR_MESSAGE = "Server response format error"


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class ApiError(Exception):
    """Root of the classified error hierarchy.

    Attributes:
        message: Human-readable description.
        cause:   The underlying exception, when one exists.
    """

    default_message = "API error"

    def __init__(self, message: str | None = None, cause: BaseException | None = None) -> None:
        self.message = message or self.default_message
        self.cause = cause
        super().__init__(self.message)

    @property
    def is_retryable(self) -> bool:
        return False

    @property
    def is_auth_error(self) -> bool:
        return False

    @property
    def http_code(self) -> int | None:
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


# ---------------------------------------------------------------------------
# Network family
# ---------------------------------------------------------------------------


class NetworkError(ApiError):
    """Connectivity failures; the request may succeed if repeated."""

    default_message = "Network error"

    @property
    def is_retryable(self) -> bool:
        return True


class NoConnection(NetworkError):
    default_message = "No internet connection available"


class Timeout(NetworkError):
    """Request timed out at the transport boundary."""

    def __init__(
        self, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS, cause: BaseException | None = None
    ) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Request timed out after {timeout_seconds}s", cause)


class NetworkConnectionError(NetworkError):
    default_message = "Unable to connect to server"

    def __init__(self, cause: BaseException | None = None) -> None:
        super().__init__(None, cause)


class NetworkUnknown(NetworkError):
    default_message = "Unknown network error"

    def __init__(self, cause: BaseException | None = None) -> None:
        super().__init__(None, cause)


# ---------------------------------------------------------------------------
# HTTP status families
# ---------------------------------------------------------------------------


class _HttpStatusError(ApiError):
    """Shared plumbing for the families that carry an HTTP status code."""

    status_code: int = 0

    @property
    def http_code(self) -> int:
        return self.status_code


class AuthError(_HttpStatusError):
    """Credential problems; fail fast regardless of retry budget."""

    @property
    def is_auth_error(self) -> bool:
        return True


class InvalidApiKey(AuthError):
    default_message = "Invalid API key"
    status_code = 401


class Forbidden(AuthError):
    default_message = "Access forbidden"
    status_code = 403


class Unauthorized(AuthError):
    default_message = "Unauthorized"
    status_code = 401


class ServerError(_HttpStatusError):
    """5xx responses; transient."""

    @property
    def is_retryable(self) -> bool:
        return True


class InternalServerError(ServerError):
    default_message = "Internal server error"
    status_code = 500


class BadGateway(ServerError):
    default_message = "Bad gateway"
    status_code = 502


class ServiceUnavailable(ServerError):
    default_message = "Service unavailable"
    status_code = 503


class GatewayTimeout(ServerError):
    default_message = "Gateway timeout"
    status_code = 504


class ServerErrorOther(ServerError):
    def __init__(self, code: int, cause: BaseException | None = None) -> None:
        self.status_code = code
        super().__init__(f"Server error: {code}", cause)


class ClientError(_HttpStatusError):
    """4xx responses other than authentication; terminal except rate limits."""

    @property
    def is_retryable(self) -> bool:
        return isinstance(self, RateLimited)


class BadRequest(ClientError):
    default_message = "Bad request"
    status_code = 400


class NotFound(ClientError):
    default_message = "Resource not found"
    status_code = 404


class RateLimited(ClientError):
    default_message = "Rate limit exceeded"
    status_code = 429


class ClientErrorOther(ClientError):
    def __init__(self, code: int, cause: BaseException | None = None) -> None:
        self.status_code = code
        super().__init__(f"Client error: {code}", cause)


class UnknownError(ApiError):
    """Anything the classifier cannot place in a more specific family."""

    default_message = "Unknown error"


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

_NAMED_STATUSES: dict[int, type[_HttpStatusError]] = {
    400: BadRequest,
    401: InvalidApiKey,
    403: Forbidden,
    404: NotFound,
    429: RateLimited,
    500: InternalServerError,
    502: BadGateway,
    503: ServiceUnavailable,
    504: GatewayTimeout,
}


def classify_status(
    code: int, message: str = "", cause: BaseException | None = None
) -> ApiError:
    """Map an HTTP status code to its error kind.

    Args:
        code:    HTTP status code of a non-success response.
        message: Reason phrase or body excerpt, used only for unmapped codes.
        cause:   Optional originating exception (e.g. ``httpx.HTTPStatusError``).

    Returns:
        The classified ApiError.  Never raises.
    """
    named = _NAMED_STATUSES.get(code)
    if named is not None:
        return named(cause=cause)
    if 400 <= code <= 499:
        return ClientErrorOther(code, cause)
    if 500 <= code <= 599:
        return ServerErrorOther(code, cause)

    logger.warning("Unhandled HTTP code: %d", code)
    return UnknownError(f"HTTP {code}: {message}", cause)


def _caused_by_dns_failure(exc: BaseException) -> bool:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, socket.gaierror):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def classify_exception(exc: BaseException) -> ApiError:
    """Map a raised exception to its error kind.

    Order matters: httpx timeouts are also transport errors, and DNS failures
    are also ``OSError``s, so the narrower checks come first.

    Args:
        exc: Any exception raised while sending a request or decoding a body.

    Returns:
        The classified ApiError.  Never raises.
    """
    if isinstance(exc, ApiError):
        return exc
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        return classify_status(response.status_code, response.reason_phrase, exc)
    if isinstance(exc, (httpx.TimeoutException, TimeoutError)):
        return Timeout(DEFAULT_TIMEOUT_SECONDS, exc)
    if _caused_by_dns_failure(exc):
        return NoConnection(cause=exc)
    if isinstance(exc, (httpx.TransportError, OSError)):
        return NetworkConnectionError(exc)
    if isinstance(exc, (httpx.DecodingError, json.JSONDecodeError, pydantic.ValidationError)):
        logger.error("Response body did not match the expected structure: %s", exc)
        return UnknownError(FORMAT_ERROR_MESSAGE, exc)

    logger.error("Unclassified error: %r", exc)
    return UnknownError(str(exc) or "Unknown error", exc)


def classify(failure: BaseException | httpx.Response | int, message: str = "") -> ApiError:
    """Classify any failure into exactly one ApiError.

    Args:
        failure: An exception, a non-success ``httpx.Response``, or a bare
                 HTTP status code.
        message: Reason text to attach when ``failure`` is a bare status code.

    Returns:
        The classified ApiError.
    """
    if isinstance(failure, httpx.Response):
        return classify_status(failure.status_code, failure.reason_phrase)
    if isinstance(failure, int):
        return classify_status(failure, message)
    return classify_exception(failure)


def log_error(error: ApiError, context: str = "") -> None:
    """Log a classified error at the level its family warrants.

    Network and server errors are logged at ERROR; auth, client and unknown
    errors at WARNING.  The error itself is not modified.
    """
    prefix = f"[{context}] " if context else ""
    if isinstance(error, ServerError):
        logger.error("%s%s (HTTP %d)", prefix, error.message, error.http_code)
    elif isinstance(error, NetworkError):
        logger.error("%s%s", prefix, error.message)
    elif isinstance(error, (AuthError, ClientError)):
        logger.warning("%s%s (HTTP %d)", prefix, error.message, error.http_code)
    else:
        logger.warning("%s%s", prefix, error.message, exc_info=error.cause)
