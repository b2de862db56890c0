import logging
import signal
from typing import Any, Optional, Sequence

from opentelemetry import propagate, trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from .._config import Config

logger = logging.getLogger(__name__)


def setup_tracing(
    config: Optional[Config] = None,
    *,
    exporter: Optional[SpanExporter] = None,
    set_global: bool = True,
) -> TracerProvider:
    """Create the tracer provider used by trace decorators.

    Every span is sampled and tagged with the configured service name. Spans
    are exported in batches to ``exporter`` when given, otherwise to the OTLP
    gRPC collector at ``config.trace_endpoint``. Without either, spans are
    still created but never leave the process.

    Args:
        config: Settings to use. Read from the environment when omitted.
        exporter: Span exporter overriding the OTLP endpoint.
        set_global: Install the provider and the W3C trace-context propagator
            as process-wide defaults.

    Returns:
        TracerProvider: The provider. Its shutdown is owned by the caller.
    """
    config = config or Config.from_env()
    provider = TracerProvider(
        sampler=ALWAYS_ON,
        resource=Resource.create({SERVICE_NAME: config.service_name}),
    )

    if exporter is None and config.trace_endpoint:
        logger.debug(f"Exporting spans to {config.trace_endpoint}")
        exporter = OTLPSpanExporter(endpoint=config.trace_endpoint, insecure=True)
    if exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(exporter))

    if set_global:
        trace.set_tracer_provider(provider)
        propagate.set_global_textmap(TraceContextTextMapPropagator())
    return provider


def shutdown_tracing(provider: TracerProvider) -> None:
    """Flush pending spans and shut the provider down."""
    try:
        provider.shutdown()
    except Exception as e:
        logger.warning(f"Failed to shut down tracer provider: {e}")


def shutdown_on_signal(
    provider: TracerProvider,
    signals: Sequence[signal.Signals] = (signal.SIGINT, signal.SIGTERM),
) -> None:
    """Shut ``provider`` down when one of ``signals`` is received.

    Handlers installed before this call still run afterwards. Must be called
    from the main thread.
    """
    previous: dict[int, Any] = {}

    def handler(signum: int, frame: Any) -> None:
        shutdown_tracing(provider)
        prev = previous.get(signum)
        if callable(prev):
            prev(signum, frame)
        elif prev == signal.SIG_DFL:
            signal.signal(signum, signal.SIG_DFL)
            signal.raise_signal(signum)

    for sig in signals:
        previous[sig] = signal.signal(sig, handler)
