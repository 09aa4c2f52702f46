"""HMAC signing utilities for H3 API request authentication."""

from __future__ import annotations

import hashlib
import hmac

HEADER_KEY_ID = "X-H3-Key-Id"
HEADER_DATE = "X-H3-Date"
HEADER_SIGNATURE = "X-H3-Signature"

# Only these two headers participate in the signature.
SIGNED_HEADER_DATE = "x-h3-date"
SIGNED_HEADER_KEY_ID = "x-h3-key-id"


def canonical_query(raw_query: str) -> str:
    """
    Canonicalize a raw query string.

    The query is split on ``&`` and each segment is kept exactly as it
    arrived, percent-escapes and ``+`` included. A segment without ``=``
    becomes ``key=``. Segments are sorted as whole strings and joined
    with ``&``.
    """
    return "&".join(sorted(query_pairs(raw_query)))


def query_pairs(raw_query: str) -> list[str]:
    """Split a raw query into literal ``key=value`` segments, dropping empty ones."""
    pairs = []
    for segment in raw_query.lstrip("?").split("&"):
        if not segment:
            continue
        if "=" not in segment:
            segment += "="
        pairs.append(segment)
    return pairs


def canonical_headers(date: str, key_id: str) -> str:
    """Build the sorted signed-header block."""
    lines = [
        f"{SIGNED_HEADER_DATE}:{date}",
        f"{SIGNED_HEADER_KEY_ID}:{key_id}",
    ]
    return "\n".join(sorted(lines))


def body_digest(body: bytes) -> str:
    """Hex-encoded SHA-256 of the raw request body."""
    return hashlib.sha256(body).hexdigest()


def build_canonical_request(
    method: str,
    path: str,
    raw_query: str,
    date: str,
    key_id: str,
    body: bytes,
) -> str:
    """
    Build the canonical request string shared by signer and verifier.

    Format::

        METHOD
        PATH
        SORTED_QUERY
        x-h3-date:<date>
        x-h3-key-id:<key_id>
        HEX_SHA256(BODY)

    Args:
        method: HTTP method as sent on the wire
        path: URL path (without query)
        raw_query: Raw query string, with or without leading ``?``
        date: Value of the ``X-H3-Date`` header
        key_id: Value of the ``X-H3-Key-Id`` header
        body: Raw body bytes (``b""`` when there is no body)

    Returns:
        Newline-joined canonical string
    """
    return "\n".join(
        [
            method,
            path,
            canonical_query(raw_query),
            canonical_headers(date, key_id),
            body_digest(body),
        ]
    )


def compute_signature(secret_key: str, canonical: str) -> str:
    """Create a hex-encoded HMAC-SHA256 signature."""
    return hmac.new(
        secret_key.encode("utf-8"),
        canonical.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def signatures_match(expected: str, provided: str) -> bool:
    """Compare two hex signatures in constant time."""
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))
