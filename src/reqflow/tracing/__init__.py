"""OpenTelemetry setup for the trace decorator."""

from ._provider import setup_tracing, shutdown_on_signal, shutdown_tracing

__all__ = [
    "setup_tracing",
    "shutdown_tracing",
    "shutdown_on_signal",
]
