"""Pytest configuration and fixtures."""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

import pytest

from h3sign.client.signer import Credentials
from h3sign.client.transport import TransportResponse
from h3sign.common.settings import Settings

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeTransport:
    """Transport returning scripted responses or raising scripted errors."""

    def __init__(self, *responses: Any) -> None:
        self._responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes,
    ) -> TransportResponse:
        self.calls.append({"method": method, "url": url, "headers": dict(headers), "body": body})
        # The last scripted item repeats forever.
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Backoff sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def response(status: int, body: bytes | str = b"") -> TransportResponse:
    if isinstance(body, str):
        body = body.encode("utf-8")
    return TransportResponse(status=status, body=body)


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        api_endpoint="http://testserver",
        key_id="test-key",
        secret_key="test-secret",
        server_keys={"test-key": "test-secret"},
    )


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(key_id="test-key", secret_key="test-secret")


@pytest.fixture
def fixed_clock():
    """Clock pinned to 2024-05-01T12:00:00Z."""
    return lambda: FIXED_NOW


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
