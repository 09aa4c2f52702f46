"""Tests for the verifying echo server."""

from starlette.testclient import TestClient

from h3sign.client.client import build_url, encode_body
from h3sign.client.signer import Credentials, sign_request
from h3sign.common.auth import StaticKeyStore
from h3sign.server.main import create_app


def _signed(credentials, method, path, query=None, body=None):
    payload = encode_body(body)
    url = build_url("http://testserver", path, query)
    return sign_request(credentials, method, url, payload), payload


def test_echoes_verified_request(settings, credentials) -> None:
    app = create_app(settings)
    signed, payload = _signed(credentials, "POST", "/v1/vms", {"zone": "a"}, {"name": "vm1"})

    with TestClient(app) as client:
        resp = client.post(signed.url, content=payload, headers=signed.headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["key_id"] == "test-key"
    assert data["method"] == "POST"
    assert data["path"] == "/v1/vms"
    assert data["query"] == ["zone=a"]
    assert data["body"] == {"name": "vm1"}
    assert resp.headers["X-Request-ID"]


def test_rejects_unknown_key(settings) -> None:
    app = create_app(settings)
    signed, _ = _signed(Credentials("intruder", "guess"), "GET", "/v1/vms")

    with TestClient(app) as client:
        resp = client.get(signed.url, headers=signed.headers)

    assert resp.status_code == 401
    assert resp.json()["error"]["message"] == "Unknown key id"


def test_explicit_key_store(settings) -> None:
    app = create_app(settings, key_store=StaticKeyStore({"other": "other-secret"}))
    signed, _ = _signed(Credentials("other", "other-secret"), "DELETE", "/v1/vms/1")

    with TestClient(app) as client:
        resp = client.delete(signed.url, headers=signed.headers)

    assert resp.status_code == 200
    assert resp.json()["key_id"] == "other"


def test_invalid_json_body(settings, credentials) -> None:
    app = create_app(settings)
    signed = sign_request(credentials, "PUT", "http://testserver/v1/vms/1", b"not json")

    with TestClient(app) as client:
        resp = client.put(signed.url, content=b"not json", headers=signed.headers)

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_json"


def test_health_and_metrics_exempt(settings) -> None:
    app = create_app(settings)
    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok"}
        metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "h3sign_verifications_total" in metrics.text
