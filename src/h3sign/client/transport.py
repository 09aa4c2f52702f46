"""Wire transport for signed requests."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

import aiohttp
from yarl import URL

from h3sign.common.errors import ResponseReadError, TransportError
from h3sign.common.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    """Status code and fully-read body of a response."""

    status: int
    body: bytes

    @property
    def text(self) -> str:
        """Body as UTF-8, undecodable bytes replaced. Use ``body`` for the exact bytes."""
        return self.body.decode("utf-8", errors="replace")


class Transport(Protocol):
    """Sends one request and returns the complete response."""

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes,
    ) -> TransportResponse:
        """
        Raises:
            TransportError: On connection failure or timeout
            ResponseReadError: If the response body cannot be read
        """
        ...

    async def close(self) -> None: ...


class AiohttpTransport:
    """Transport backed by a shared aiohttp session."""

    def __init__(
        self,
        timeout: float = 30.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure session exists."""
        if not self._session:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes,
    ) -> TransportResponse:
        session = self._ensure_session()
        # encoded=True keeps the query byte-for-byte as it was signed.
        target = URL(url, encoded=True)

        try:
            response = await session.request(
                method,
                target,
                headers=dict(headers),
                data=body or None,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"request failed: {e!r}") from e

        async with response:
            try:
                payload = await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise ResponseReadError(f"failed to read response: {e!r}") from e
            return TransportResponse(status=response.status, body=payload)

    async def close(self) -> None:
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None
