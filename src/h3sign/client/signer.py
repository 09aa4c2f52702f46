"""Request signing for the H3 API."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import urlsplit

from h3sign.common.hmac import (
    HEADER_DATE,
    HEADER_KEY_ID,
    HEADER_SIGNATURE,
    build_canonical_request,
    compute_signature,
)

Clock = Callable[[], datetime]


@dataclass(frozen=True)
class Credentials:
    """HMAC key pair. The secret is never included in repr."""

    key_id: str
    secret_key: str = field(repr=False)


@dataclass(frozen=True)
class SignedRequest:
    """A request signed once and resent verbatim on every retry."""

    method: str
    url: str
    path: str
    raw_query: str
    headers: dict[str, str]
    body: bytes
    timestamp: str
    signature: str = field(repr=False)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as UTC RFC3339 with second precision, e.g. 2024-05-01T12:00:00Z."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class Signer:
    """Signs outbound requests with a fixed set of credentials."""

    def __init__(self, credentials: Credentials, clock: Clock | None = None) -> None:
        self._credentials = credentials
        self._clock = clock or _utc_now

    @property
    def key_id(self) -> str:
        return self._credentials.key_id

    def sign(self, method: str, url: str, body: bytes) -> SignedRequest:
        """
        Sign a request.

        The path and raw query are taken from ``url`` so the signature covers
        exactly what the server receives.

        Args:
            method: HTTP method
            url: Absolute request URL, query included
            body: Serialized body (``b""`` for none)

        Returns:
            SignedRequest carrying the four authentication headers
        """
        parts = urlsplit(url)
        path = parts.path or "/"
        date = format_timestamp(self._clock())

        canonical = build_canonical_request(
            method,
            path,
            parts.query,
            date,
            self._credentials.key_id,
            body,
        )
        signature = compute_signature(self._credentials.secret_key, canonical)

        headers = {
            "Content-Type": "application/json",
            HEADER_KEY_ID: self._credentials.key_id,
            HEADER_DATE: date,
            HEADER_SIGNATURE: signature,
        }
        return SignedRequest(
            method=method,
            url=url,
            path=path,
            raw_query=parts.query,
            headers=headers,
            body=body,
            timestamp=date,
            signature=signature,
        )


def sign_request(
    credentials: Credentials,
    method: str,
    url: str,
    body: bytes = b"",
    clock: Clock | None = None,
) -> SignedRequest:
    """Sign a single request without keeping a Signer around."""
    return Signer(credentials, clock=clock).sign(method, url, body)
