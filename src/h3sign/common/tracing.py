"""OpenTelemetry tracing for signed requests."""

from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode

from h3sign import __version__
from h3sign.common.logging import get_logger

logger = get_logger(__name__)

_DEFAULT_TRACER = "h3sign"

F = TypeVar("F", bound=Callable[..., Any])

_tracer: trace.Tracer | None = None


def setup_tracing(
    service_name: str = "h3sign-client",
    otlp_endpoint: str | None = None,
    enable_console: bool = False,
) -> trace.Tracer:
    """
    Configure OpenTelemetry tracing.

    Args:
        service_name: Name of the service for traces
        otlp_endpoint: OTLP collector endpoint (e.g., "localhost:4317")
        enable_console: Enable console span exporter for debugging

    Returns:
        Configured tracer instance
    """
    global _tracer

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.version": __version__,
        }
    )
    provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
        logger.info("OTLP tracing enabled", endpoint=otlp_endpoint)

    if enable_console:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("Console tracing enabled")

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(service_name)
    return _tracer


def get_tracer() -> trace.Tracer:
    """Get the configured tracer, or a no-op tracer if not configured."""
    if _tracer is None:
        return trace.get_tracer(_DEFAULT_TRACER)
    return _tracer


def traced_execute(func: F) -> F:
    """
    Decorator tracing one signed ``execute`` call.

    The wrapped coroutine takes ``(self, method, path, ...)``. The span carries
    the method and path, and on failure the error class plus the HTTP status
    when the error has one. Cancellation is not recorded as an error.
    """

    @wraps(func)
    async def wrapper(self: Any, method: str, path: str, *args: Any, **kwargs: Any) -> Any:
        tracer = get_tracer()
        with tracer.start_as_current_span("h3.execute") as current_span:
            current_span.set_attribute("http.request.method", method)
            current_span.set_attribute("url.path", path)
            try:
                return await func(self, method, path, *args, **kwargs)
            except Exception as e:
                current_span.set_attribute("h3.error", type(e).__name__)
                status_code = getattr(e, "status_code", None)
                if status_code is not None:
                    current_span.set_attribute("http.response.status_code", status_code)
                current_span.set_status(Status(StatusCode.ERROR, str(e)))
                current_span.record_exception(e)
                raise

    return wrapper  # type: ignore[return-value]


def set_span_attribute(key: str, value: Any) -> None:
    """Set an attribute on the current span if it is recording."""
    current_span = trace.get_current_span()
    if current_span and current_span.is_recording():
        current_span.set_attribute(key, value)
