"""HMAC-authenticated client for the H3 Cloud API."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import quote

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from h3sign.client.signer import Clock, Credentials, SignedRequest, Signer
from h3sign.client.transport import AiohttpTransport, Transport, TransportResponse
from h3sign.common.errors import (
    ConfigurationError,
    HTTPError,
    RetriesExhaustedError,
    SerializationError,
    ServerError,
    TransportError,
)
from h3sign.common.logging import get_logger
from h3sign.common.metrics import record_attempt, record_client_request
from h3sign.common.settings import Settings
from h3sign.common.tracing import set_span_attribute, traced_execute

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3

Sleep = Callable[[float], Awaitable[None]]

_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


class AttemptOutcome(Enum):
    """Classification of a single attempt."""

    SUCCESS = "success"
    RETRYABLE = "retryable"  # 5xx, connection error, read error
    TERMINAL = "terminal"  # 4xx


def classify_status(status: int) -> AttemptOutcome:
    """Classify a response status code."""
    if status >= 500:
        return AttemptOutcome.RETRYABLE
    if status >= 400:
        return AttemptOutcome.TERMINAL
    return AttemptOutcome.SUCCESS


def backoff_delay(attempt: int) -> float:
    """Seconds to wait before ``attempt`` (1s, 2s, 4s, ...). Zero for the first attempt."""
    if attempt <= 0:
        return 0.0
    return float(2 ** (attempt - 1))


@dataclass
class RetryState:
    """Per-call retry bookkeeping."""

    attempt: int = 0
    last_error: Exception | None = None


def encode_body(body: Any) -> bytes:
    """Serialize a request body to compact JSON. ``None`` encodes to ``b""``."""
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    try:
        return _ANY_ADAPTER.dump_json(body)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise SerializationError("marshal", f"request body: {e}") from e


def build_url(base_url: str, path: str, query: Mapping[str, str] | None) -> str:
    """
    Join base URL and path, appending sorted ``key=value`` pairs.

    Keys and values are percent-encoded so the query is legal on the wire;
    the encoded string is what gets signed and sent.
    """
    url = base_url + path
    if query:
        pairs = sorted(
            f"{quote(key, safe='')}={quote(value, safe='')}" for key, value in query.items()
        )
        url += "?" + "&".join(pairs)
    return url


class H3Client:
    """
    HTTP client signing every request with HMAC-SHA256.

    Each ``execute`` call signs its request once, then retries transient
    failures (connection errors, 5xx) with exponential backoff. 4xx responses
    are raised immediately as HTTPError.
    """

    def __init__(
        self,
        base_url: str,
        key_id: str,
        secret_key: str,
        timeout: float | None = None,
        max_retries: int | None = None,
        transport: Transport | None = None,
        sleep: Sleep | None = None,
        clock: Clock | None = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API endpoint, e.g. ``http://127.0.0.1:4001``
            key_id: API key id
            secret_key: API secret key
            timeout: Per-attempt timeout in seconds (default 30)
            max_retries: Retries after the first attempt (default 3)
            transport: Optional transport; defaults to aiohttp
            sleep: Optional backoff sleep; defaults to asyncio.sleep
            clock: Optional clock for the signing timestamp

        Raises:
            ConfigurationError: If the endpoint or credentials are missing
        """
        if not base_url:
            raise ConfigurationError("base URL is required")
        if not key_id or not secret_key:
            raise ConfigurationError("HMAC credentials (key_id and secret_key) are required")

        timeout = DEFAULT_TIMEOUT if timeout is None else timeout
        max_retries = DEFAULT_MAX_RETRIES if max_retries is None else max_retries
        if timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        if max_retries < 0:
            raise ConfigurationError("max_retries cannot be negative")

        self._base_url = base_url.rstrip("/")
        self._signer = Signer(Credentials(key_id=key_id, secret_key=secret_key), clock=clock)
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport: Transport = transport or AiohttpTransport(timeout=timeout)
        self._sleep: Sleep = sleep or asyncio.sleep

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "H3Client":
        """Build a client from settings."""
        secret = settings.secret_key.get_secret_value() if settings.secret_key else ""
        return cls(
            base_url=settings.api_endpoint,
            key_id=settings.key_id or "",
            secret_key=secret,
            timeout=settings.timeout,
            max_retries=settings.max_retries,
            **kwargs,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def __aenter__(self) -> "H3Client":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying transport."""
        await self._transport.close()

    @traced_execute
    async def execute(
        self,
        method: str,
        path: str,
        query: Mapping[str, str] | None = None,
        body: Any = None,
        result_type: Any = None,
    ) -> Any:
        """
        Execute a signed request.

        Args:
            method: HTTP method
            path: API path, appended to the base URL
            query: Optional query parameters
            body: JSON-serializable body (dict, list, pydantic model) or None
            result_type: Optional type to validate the response body into

        Returns:
            Response body validated into ``result_type``; without one, parsed
            JSON or the raw bytes when the body is not JSON. None when empty

        Raises:
            SerializationError: If the body cannot be encoded or the response decoded
            HTTPError: On a 4xx response
            RetriesExhaustedError: If every attempt failed transiently
        """
        started = time.perf_counter()
        try:
            result = await self._execute(method, path, query, body, result_type)
        except HTTPError:
            record_client_request(method, "client_error", time.perf_counter() - started)
            raise
        except RetriesExhaustedError:
            record_client_request(method, "exhausted", time.perf_counter() - started)
            raise
        except SerializationError:
            record_client_request(method, "serialization_error", time.perf_counter() - started)
            raise
        record_client_request(method, "success", time.perf_counter() - started)
        return result

    async def _execute(
        self,
        method: str,
        path: str,
        query: Mapping[str, str] | None,
        body: Any,
        result_type: Any,
    ) -> Any:
        payload = encode_body(body)
        url = build_url(self._base_url, path, query)
        request = self._signer.sign(method, url, payload)

        state = RetryState()
        for attempt in range(self._max_retries + 1):
            state.attempt = attempt
            if attempt > 0:
                delay = backoff_delay(attempt)
                logger.warning(
                    "Retrying request",
                    method=method,
                    url=url,
                    attempt=attempt,
                    delay=delay,
                    error=str(state.last_error),
                )
                await self._sleep(delay)

            outcome, response = await self._attempt(request, state)
            record_attempt(method, outcome.value)
            set_span_attribute("h3.attempts", attempt + 1)

            if outcome is AttemptOutcome.RETRYABLE or response is None:
                continue
            if outcome is AttemptOutcome.TERMINAL:
                raise HTTPError(
                    response.status, method, url, response.text, raw_body=response.body
                )
            return self._decode(response.body, result_type)

        raise RetriesExhaustedError(self._max_retries, state.last_error) from state.last_error

    async def _attempt(
        self,
        request: SignedRequest,
        state: RetryState,
    ) -> tuple[AttemptOutcome, TransportResponse | None]:
        logger.debug(
            "Sending request",
            method=request.method,
            url=request.url,
            attempt=state.attempt,
        )
        try:
            response = await self._transport.send(
                request.method,
                request.url,
                request.headers,
                request.body,
            )
        except TransportError as e:
            state.last_error = e
            return AttemptOutcome.RETRYABLE, None

        outcome = classify_status(response.status)
        if outcome is AttemptOutcome.RETRYABLE:
            state.last_error = ServerError(response.status, response.text)
        return outcome, response

    @staticmethod
    def _decode(payload: bytes, result_type: Any) -> Any:
        if not payload:
            return None
        if result_type is None:
            # No result sink: hand back JSON when it parses, raw bytes otherwise.
            try:
                return _ANY_ADAPTER.validate_json(payload)
            except ValidationError:
                return payload
        try:
            return TypeAdapter(result_type).validate_json(payload)
        except ValidationError as e:
            raise SerializationError("unmarshal", f"response: {e}") from e
