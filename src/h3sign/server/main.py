"""Verifying server - echoes authenticated H3 requests back to the caller."""

import json

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from h3sign.common.auth import HmacAuthMiddleware, KeyStore, StaticKeyStore
from h3sign.common.errors import ErrorCode, error_response
from h3sign.common.hmac import query_pairs
from h3sign.common.http import RequestContextMiddleware
from h3sign.common.logging import get_logger, setup_logging
from h3sign.common.metrics import MetricsMiddleware, metrics_endpoint
from h3sign.common.settings import Settings, get_settings
from h3sign.common.tracing import setup_tracing

logger = get_logger(__name__)

ECHO_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


async def handle_health(_request: Request) -> JSONResponse:
    """Liveness probe."""
    return JSONResponse({"status": "ok"})


async def handle_echo(request: Request) -> JSONResponse:
    """Return what the verified caller sent."""
    raw = await request.body()
    body = None
    if raw:
        try:
            body = json.loads(raw)
        except json.JSONDecodeError:
            return error_response(ErrorCode.INVALID_JSON, "Request body is not valid JSON", 400)

    auth = request.state.auth
    query = sorted(query_pairs(request.url.query))

    logger.info("Echoing verified request", method=request.method, path=request.url.path)
    return JSONResponse(
        {
            "key_id": auth.key_id,
            "date": auth.date,
            "method": request.method,
            "path": request.url.path,
            "query": query,
            "body": body,
        }
    )


def create_app(settings: Settings | None = None, key_store: KeyStore | None = None) -> Starlette:
    """
    Create the verifying server application.

    Args:
        settings: Settings; defaults to environment
        key_store: Key store; defaults to ``settings.server_keys``
    """
    settings = settings or get_settings()
    if key_store is None:
        static_store = StaticKeyStore(settings.server_secrets)
        if not len(static_store):
            logger.warning("No server keys configured; every signed request will be rejected")
        key_store = static_store

    routes = [
        Route("/health", handle_health, methods=["GET"]),
        Route("/metrics", metrics_endpoint, methods=["GET"]),
        Route("/{path:path}", handle_echo, methods=ECHO_METHODS),
    ]

    app = Starlette(routes=routes)

    app.add_middleware(
        HmacAuthMiddleware,
        key_store=key_store,
        exempt_paths=settings.auth_exempt_paths,
    )
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        MetricsMiddleware,
        exclude_paths=["/health", "/metrics"],
    )

    return app


def main() -> None:
    """Entry point for the verifying server."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    if settings.tracing_enabled or settings.tracing_otlp_endpoint or settings.tracing_console:
        setup_tracing(
            service_name=settings.tracing_service_name or "h3sign-server",
            otlp_endpoint=settings.tracing_otlp_endpoint,
            enable_console=settings.tracing_console,
        )
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
