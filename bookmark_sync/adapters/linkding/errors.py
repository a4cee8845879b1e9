"""Exceptions raised by the Linkding adapter.

Hierarchy:

- LinkdingError: base exception with context support
- ConfigurationError: missing base URL / token, raised before any request
- TransportError: the request never produced a response
- RetryExhaustedError: retryable transport failures outlived the retry budget
- APIError: the service answered with a non-success status, one subclass per
  ``ErrorKind``
- ResponseDecodeError: a success response could not be decoded
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, assert_never

SUCCESS_STATUS_CODES = frozenset({200, 201, 204})


class ErrorKind(StrEnum):
    """Closed set of application-level failures reported by the service."""

    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    SERVER = "server"
    UNEXPECTED_STATUS = "unexpected_status"


class LinkdingError(Exception):
    """Base exception for Linkding adapter errors.

    Provides context storage for debugging and logging.
    """

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} (context: {self.context})"
        return self.message


class ConfigurationError(LinkdingError):
    """Raised when the client cannot be configured (missing URL or token)."""

    def __init__(self, message: str, *, parameter: str | None = None) -> None:
        context = {"parameter": parameter} if parameter else None
        super().__init__(message, context=context)
        self.parameter = parameter


class TransportError(LinkdingError):
    """Raised when a request failed without producing an HTTP response."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 1,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.attempts = attempts
        self.cause = cause


class RetryExhaustedError(TransportError):
    """Raised once every attempt failed with a retryable transport error."""


class ResponseDecodeError(LinkdingError):
    """Raised when a success response body is not the expected JSON shape."""


class APIError(LinkdingError):
    """Base for non-success HTTP statuses. Never retried by the client."""

    kind: ErrorKind = ErrorKind.UNEXPECTED_STATUS

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        operation: str,
        body: str | None = None,
    ) -> None:
        context: dict[str, Any] = {"status_code": status_code, "operation": operation}
        if body:
            context["body"] = body[:200]
        super().__init__(message, context=context)
        self.status_code = status_code
        self.operation = operation
        self.body = body


class ValidationError(APIError):
    kind = ErrorKind.VALIDATION


class AuthenticationError(APIError):
    kind = ErrorKind.AUTHENTICATION


class AuthorizationError(APIError):
    kind = ErrorKind.AUTHORIZATION


class NotFoundError(APIError):
    kind = ErrorKind.NOT_FOUND


class RateLimitedError(APIError):
    kind = ErrorKind.RATE_LIMITED


class ServerError(APIError):
    kind = ErrorKind.SERVER


class UnexpectedStatusError(APIError):
    kind = ErrorKind.UNEXPECTED_STATUS


def error_kind_for_status(status_code: int) -> ErrorKind | None:
    """Map an HTTP status to its error kind; ``None`` means success."""
    if status_code in SUCCESS_STATUS_CODES:
        return None
    match status_code:
        case 400:
            return ErrorKind.VALIDATION
        case 401:
            return ErrorKind.AUTHENTICATION
        case 403:
            return ErrorKind.AUTHORIZATION
        case 404:
            return ErrorKind.NOT_FOUND
        case 429:
            return ErrorKind.RATE_LIMITED
        case 500:
            return ErrorKind.SERVER
        case _:
            return ErrorKind.UNEXPECTED_STATUS


def build_api_error(
    kind: ErrorKind, *, status_code: int, operation: str, body: str | None = None
) -> APIError:
    """Instantiate the exception class for ``kind``."""
    match kind:
        case ErrorKind.VALIDATION:
            return ValidationError(
                "validation error: bad request",
                status_code=status_code,
                operation=operation,
                body=body,
            )
        case ErrorKind.AUTHENTICATION:
            return AuthenticationError(
                "authentication error: invalid API token",
                status_code=status_code,
                operation=operation,
                body=body,
            )
        case ErrorKind.AUTHORIZATION:
            return AuthorizationError(
                "authorization error: insufficient permissions",
                status_code=status_code,
                operation=operation,
                body=body,
            )
        case ErrorKind.NOT_FOUND:
            return NotFoundError(
                "bookmark not found", status_code=status_code, operation=operation, body=body
            )
        case ErrorKind.RATE_LIMITED:
            return RateLimitedError(
                "rate limited: too many requests",
                status_code=status_code,
                operation=operation,
                body=body,
            )
        case ErrorKind.SERVER:
            return ServerError(
                "server error: internal server error",
                status_code=status_code,
                operation=operation,
                body=body,
            )
        case ErrorKind.UNEXPECTED_STATUS:
            return UnexpectedStatusError(
                f"unexpected status code: {status_code}",
                status_code=status_code,
                operation=operation,
                body=body,
            )
        case _:
            assert_never(kind)


def raise_for_status(status_code: int, *, operation: str, body: str | None = None) -> None:
    """Raise the typed ``APIError`` for a non-success status."""
    kind = error_kind_for_status(status_code)
    if kind is None:
        return
    raise build_api_error(kind, status_code=status_code, operation=operation, body=body)
