"""Signing client for the H3 Cloud API."""

from h3sign.client.client import AttemptOutcome, H3Client, RetryState, backoff_delay, classify_status
from h3sign.client.signer import Credentials, SignedRequest, Signer, sign_request
from h3sign.client.transport import AiohttpTransport, Transport, TransportResponse

__all__ = [
    "AiohttpTransport",
    "AttemptOutcome",
    "Credentials",
    "H3Client",
    "RetryState",
    "SignedRequest",
    "Signer",
    "Transport",
    "TransportResponse",
    "backoff_delay",
    "classify_status",
    "sign_request",
]
