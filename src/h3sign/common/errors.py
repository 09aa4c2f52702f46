"""Shared error types and helpers."""

from __future__ import annotations

from typing import Any

from starlette.responses import JSONResponse


class ErrorCode:
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    INVALID_JSON = "invalid_json"
    SERVER_MISCONFIGURED = "server_misconfigured"


class H3Error(Exception):
    """Base class for all h3sign errors."""


class ConfigurationError(H3Error):
    """Raised when client configuration is missing or invalid."""


class SerializationError(H3Error):
    """Body could not be encoded (marshal) or decoded (unmarshal)."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"failed to {operation} {message}")
        self.operation = operation


class TransportError(H3Error):
    """Connection-level failure. Retryable."""


class ResponseReadError(TransportError):
    """Response arrived but its body could not be read. Retryable."""


class ServerError(H3Error):
    """5xx response. Retryable."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"server error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


class HTTPError(H3Error):
    """4xx response from the API. Terminal."""

    def __init__(
        self,
        status_code: int,
        method: str,
        url: str,
        body: str,
        raw_body: bytes | None = None,
    ) -> None:
        super().__init__(f"HTTP {status_code}: {method} {url} - {body}")
        self.status_code = status_code
        self.method = method
        self.url = url
        # Text form replaces undecodable bytes; raw_body is the response as received.
        self.body = body
        self.raw_body = body.encode("utf-8") if raw_body is None else raw_body

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class RetriesExhaustedError(H3Error):
    """All attempts failed with retryable errors."""

    def __init__(self, retries: int, last_error: Exception | None) -> None:
        super().__init__(f"request failed after {retries} retries: {last_error}")
        self.retries = retries
        self.last_error = last_error


class MissingHeadersError(H3Error):
    """Inbound request lacks one of the required HMAC headers."""


class KeyNotFoundError(H3Error):
    """No secret is registered for the given key id."""

    def __init__(self, key_id: str) -> None:
        super().__init__(f"unknown key id: {key_id}")
        self.key_id = key_id


class AuthError(H3Error):
    """Authentication error with HTTP status."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def error_response(
    code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    payload: dict[str, Any] = {
        "error": {
            "code": code,
            "message": message,
        }
    }
    if details:
        payload["error"]["details"] = details
    return JSONResponse(payload, status_code=status_code)
