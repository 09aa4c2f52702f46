"""
h3sign: HMAC request signing for the H3 Cloud API.

An outbound client that signs every request with HMAC-SHA256 and retries
transient failures, plus the matching server-side verifier.
"""

__version__ = "1.0.0"
