"""OpenTelemetry setup and configuration."""

import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter

from idp_registrar import __version__
from idp_registrar.config import get_settings

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None


def _create_exporter(exporter_type: str, otlp_endpoint: str, otlp_http_endpoint: str) -> SpanExporter:
    """Create the span exporter selected in settings."""
    if exporter_type == "otlp":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter(endpoint=otlp_endpoint)

    if exporter_type == "otlp-http":
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter as OTLPHTTPSpanExporter,
        )

        return OTLPHTTPSpanExporter(endpoint=f"{otlp_http_endpoint}/v1/traces")

    if exporter_type != "console":
        logger.warning("Unknown exporter type '%s', using console", exporter_type)
    return ConsoleSpanExporter()


def setup_telemetry() -> None:
    """Initialize OpenTelemetry tracing when enabled in settings.

    Spans opened by the registration client and the admission validator are
    no-ops until this has run.
    """
    global _tracer_provider

    settings = get_settings()
    if not settings.otel_enabled:
        logger.debug("OpenTelemetry tracing is disabled")
        return

    logger.info(
        "Initializing OpenTelemetry tracing (service=%s, exporter=%s)",
        settings.otel_service_name,
        settings.otel_exporter_type,
    )

    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": __version__,
        }
    )
    _tracer_provider = TracerProvider(resource=resource)
    exporter = _create_exporter(
        settings.otel_exporter_type,
        settings.otel_exporter_otlp_endpoint,
        settings.otel_exporter_otlp_http_endpoint,
    )
    _tracer_provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(_tracer_provider)

    _instrument_httpx()


def _instrument_httpx() -> None:
    """Trace outgoing requests to Keycloak."""
    try:
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
    except ImportError:
        logger.warning(
            "HTTPX instrumentation not available. "
            "Install with: pip install opentelemetry-instrumentation-httpx"
        )
        return

    HTTPXClientInstrumentor().instrument()
    logger.debug("HTTPX instrumentation enabled")


def shutdown_telemetry() -> None:
    """Flush pending spans and shut tracing down."""
    global _tracer_provider

    if _tracer_provider is not None:
        logger.info("Shutting down OpenTelemetry tracing")
        _tracer_provider.shutdown()
        _tracer_provider = None
