"""OpenTelemetry integration for distributed tracing."""

from idp_registrar.telemetry.setup import setup_telemetry, shutdown_telemetry

__all__ = ["setup_telemetry", "shutdown_telemetry"]
