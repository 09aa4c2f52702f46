"""Tests for canonical request building and signature primitives."""

import hashlib
import hmac

import pytest

from h3sign.common.hmac import (
    body_digest,
    build_canonical_request,
    canonical_headers,
    canonical_query,
    compute_signature,
    signatures_match,
)

EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class TestCanonicalQuery:
    """Query canonicalization."""

    def test_empty_query(self):
        assert canonical_query("") == ""
        assert canonical_query("?") == ""

    def test_pairs_sorted_as_whole_strings(self):
        assert canonical_query("zone=b&limit=10&name=vm1") == "limit=10&name=vm1&zone=b"

    def test_repeated_keys_produce_separate_pairs(self):
        assert canonical_query("tag=z&tag=a&id=1") == "id=1&tag=a&tag=z"

    def test_sort_uses_full_pair_not_key_only(self):
        # A key-only stable sort would keep "a=2" first.
        assert canonical_query("a=2&a=10") == "a=10&a=2"

    def test_leading_question_mark_ignored(self):
        assert canonical_query("?b=2&a=1") == "a=1&b=2"

    def test_blank_values_kept(self):
        assert canonical_query("flag=&a=1") == "a=1&flag="

    def test_order_independent(self):
        assert canonical_query("a=1&b=2&c=3") == canonical_query("c=3&a=1&b=2")

    def test_bare_key_gets_equals_sign(self):
        assert canonical_query("verbose&a=1") == "a=1&verbose="

    def test_escapes_not_decoded(self):
        assert canonical_query("q=a%20b&name=caf%C3%A9") == "name=caf%C3%A9&q=a%20b"
        assert canonical_query("q=a+b") == "q=a+b"

    def test_encoded_separator_is_distinct(self):
        assert canonical_query("a=1%26b%3D2") != canonical_query("a=1&b=2")
        assert canonical_query("q=a%20b") != canonical_query("q=a+b")


class TestCanonicalHeaders:
    """Signed header block."""

    def test_sorted_and_lowercased(self):
        block = canonical_headers("2024-05-01T12:00:00Z", "key-1")
        assert block == "x-h3-date:2024-05-01T12:00:00Z\nx-h3-key-id:key-1"


class TestBodyDigest:
    """Body hashing."""

    def test_empty_body(self):
        assert body_digest(b"") == EMPTY_SHA256

    def test_json_body(self):
        body = b'{"name":"vm1"}'
        assert body_digest(body) == hashlib.sha256(body).hexdigest()


class TestBuildCanonicalRequest:
    """Full canonical string."""

    def test_layout(self):
        canonical = build_canonical_request(
            "GET",
            "/api/v1/vms",
            "zone=b&limit=10",
            "2024-05-01T12:00:00Z",
            "key-1",
            b"",
        )
        assert canonical == "\n".join(
            [
                "GET",
                "/api/v1/vms",
                "limit=10&zone=b",
                "x-h3-date:2024-05-01T12:00:00Z",
                "x-h3-key-id:key-1",
                EMPTY_SHA256,
            ]
        )

    def test_empty_query_keeps_blank_line(self):
        canonical = build_canonical_request("DELETE", "/vms/1", "", "d", "k", b"")
        assert canonical.split("\n")[2] == ""

    def test_deterministic(self):
        args = ("POST", "/vms", "a=1", "d", "k", b'{"x":1}')
        assert build_canonical_request(*args) == build_canonical_request(*args)


class TestSignature:
    """HMAC computation and comparison."""

    def test_compute_signature_matches_hmac_sha256(self):
        canonical = "GET\n/\n\nx-h3-date:d\nx-h3-key-id:k\n" + EMPTY_SHA256
        expected = hmac.new(b"secret", canonical.encode(), hashlib.sha256).hexdigest()
        assert compute_signature("secret", canonical) == expected

    def test_signature_is_lowercase_hex(self):
        signature = compute_signature("secret", "data")
        assert len(signature) == 64
        assert signature == signature.lower()
        int(signature, 16)

    def test_different_secret_different_signature(self):
        assert compute_signature("a", "data") != compute_signature("b", "data")

    @pytest.mark.parametrize(
        ("expected", "provided", "result"),
        [
            ("abc", "abc", True),
            ("abc", "abd", False),
            ("abc", "", False),
        ],
    )
    def test_signatures_match(self, expected, provided, result):
        assert signatures_match(expected, provided) is result
