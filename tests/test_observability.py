"""Tests for request tracing and per-request server context."""

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from starlette.testclient import TestClient

from conftest import FakeTransport, RecordingSleep, response
from h3sign.client.client import H3Client, build_url
from h3sign.client.signer import sign_request
from h3sign.common import tracing
from h3sign.common.errors import HTTPError
from h3sign.server.main import create_app


@pytest.fixture
def exporter(monkeypatch) -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    monkeypatch.setattr(tracing, "_tracer", provider.get_tracer("test"))
    return exporter


def _client(transport) -> H3Client:
    return H3Client(
        "http://api.test",
        "test-key",
        "test-secret",
        transport=transport,
        sleep=RecordingSleep(),
    )


@pytest.mark.asyncio
async def test_execute_span_records_attempts(exporter):
    client = _client(FakeTransport(response(503), response(200, '{"id":"abc"}')))

    await client.execute("GET", "/vms/abc")

    (finished,) = exporter.get_finished_spans()
    assert finished.name == "h3.execute"
    assert finished.attributes["http.request.method"] == "GET"
    assert finished.attributes["url.path"] == "/vms/abc"
    assert finished.attributes["h3.attempts"] == 2
    assert "h3.error" not in finished.attributes


@pytest.mark.asyncio
async def test_execute_span_records_http_error(exporter):
    client = _client(FakeTransport(response(404, "missing")))

    with pytest.raises(HTTPError):
        await client.execute("DELETE", "/vms/gone")

    (finished,) = exporter.get_finished_spans()
    assert finished.attributes["h3.error"] == "HTTPError"
    assert finished.attributes["http.response.status_code"] == 404
    assert not finished.status.is_ok


def test_request_id_echoed_from_caller(settings, credentials):
    app = create_app(settings)
    signed = sign_request(credentials, "GET", build_url("http://testserver", "/v1/vms", None))

    with TestClient(app) as client:
        resp = client.get(signed.url, headers={**signed.headers, "X-Request-ID": "req-123"})

    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "req-123"


def test_request_id_generated_for_rejected_request(settings):
    app = create_app(settings)
    with TestClient(app) as client:
        resp = client.get("/v1/vms")

    assert resp.status_code == 401
    assert len(resp.headers["X-Request-ID"]) == 32
