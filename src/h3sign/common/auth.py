"""Server-side HMAC verification and middleware."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from h3sign.common.errors import (
    AuthError,
    ErrorCode,
    KeyNotFoundError,
    MissingHeadersError,
    error_response,
)
from h3sign.common.hmac import (
    HEADER_DATE,
    HEADER_KEY_ID,
    HEADER_SIGNATURE,
    build_canonical_request,
    compute_signature,
    signatures_match,
)
from h3sign.common.http import bind_key_id
from h3sign.common.logging import get_logger
from h3sign.common.metrics import record_verification

logger = get_logger(__name__)


@dataclass(frozen=True)
class SignatureHeaders:
    """HMAC headers extracted from an inbound request."""

    key_id: str
    date: str
    signature: str


@dataclass(frozen=True)
class AuthContext:
    """Verified request context."""

    key_id: str
    date: str


class KeyStore(Protocol):
    """Resolves a key id to its shared secret."""

    def resolve_secret(self, key_id: str) -> str:
        """Return the secret for ``key_id`` or raise KeyNotFoundError."""
        ...


class StaticKeyStore:
    """In-memory key store backed by a mapping."""

    def __init__(self, secrets: Mapping[str, str]) -> None:
        self._secrets = dict(secrets)

    def resolve_secret(self, key_id: str) -> str:
        secret = self._secrets.get(key_id)
        if not secret:
            raise KeyNotFoundError(key_id)
        return secret

    def __len__(self) -> int:
        return len(self._secrets)


def _get_header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    return value or ""


def extract_signature_headers(headers: Mapping[str, str]) -> SignatureHeaders:
    """
    Read the three HMAC headers, case-insensitively.

    Raises:
        MissingHeadersError: If any header is absent or empty
    """
    key_id = _get_header(headers, HEADER_KEY_ID)
    date = _get_header(headers, HEADER_DATE)
    signature = _get_header(headers, HEADER_SIGNATURE)

    if not key_id or not date or not signature:
        raise MissingHeadersError("missing required HMAC headers")

    return SignatureHeaders(key_id=key_id, date=date, signature=signature)


def verify_request(
    method: str,
    path: str,
    raw_query: str,
    headers: Mapping[str, str],
    body: bytes,
    secret_key: str,
) -> bool:
    """
    Verify an inbound request signature.

    The canonical string is rebuilt from the request as received, using the
    echoed ``X-H3-Date`` and ``X-H3-Key-Id`` values. No timestamp freshness
    check is applied.

    Args:
        method: HTTP method of the request
        path: URL path of the request
        raw_query: Raw query string of the request
        headers: Request headers
        body: Raw request body
        secret_key: Already-resolved secret for the request's key id

    Returns:
        True if the signature matches

    Raises:
        MissingHeadersError: If an HMAC header is absent or empty
    """
    extracted = extract_signature_headers(headers)
    canonical = build_canonical_request(
        method,
        path,
        raw_query,
        extracted.date,
        extracted.key_id,
        body,
    )
    expected = compute_signature(secret_key, canonical)
    return signatures_match(expected, extracted.signature)


class Verifier:
    """Resolves the caller's secret and checks the request signature."""

    def __init__(self, key_store: KeyStore) -> None:
        self._key_store = key_store

    def verify(
        self,
        method: str,
        path: str,
        raw_query: str,
        headers: Mapping[str, str],
        body: bytes,
    ) -> AuthContext:
        """
        Authenticate a request.

        Returns:
            AuthContext for the verified key id

        Raises:
            AuthError: 401 on missing headers, unknown key or bad signature
        """
        try:
            extracted = extract_signature_headers(headers)
        except MissingHeadersError as exc:
            record_verification("missing_headers")
            raise AuthError(401, "Missing HMAC headers") from exc

        try:
            secret = self._key_store.resolve_secret(extracted.key_id)
        except KeyNotFoundError as exc:
            record_verification("unknown_key")
            logger.warning("Rejected request with unknown key id", key_id=extracted.key_id)
            raise AuthError(401, "Unknown key id") from exc

        if not verify_request(method, path, raw_query, headers, body, secret):
            record_verification("mismatch")
            logger.warning(
                "Rejected request with invalid signature",
                key_id=extracted.key_id,
                method=method,
                path=path,
            )
            raise AuthError(401, "Invalid HMAC signature")

        record_verification("valid")
        return AuthContext(key_id=extracted.key_id, date=extracted.date)


class HmacAuthMiddleware(BaseHTTPMiddleware):
    """HMAC auth middleware for requests signed by H3Client."""

    def __init__(
        self,
        app: ASGIApp,
        key_store: KeyStore,
        exempt_paths: tuple[str, ...] = (),
    ) -> None:
        super().__init__(app)
        self._verifier = Verifier(key_store)
        self._exempt_paths = set(exempt_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exempt_paths:
            return await call_next(request)

        body = await request.body()
        try:
            auth = self._verifier.verify(
                request.method,
                request.url.path,
                request.url.query,
                request.headers,
                body,
            )
        except AuthError as exc:
            return error_response(ErrorCode.UNAUTHORIZED, exc.message, exc.status_code)

        request.state.auth = auth
        bind_key_id(auth.key_id)
        return await call_next(request)
