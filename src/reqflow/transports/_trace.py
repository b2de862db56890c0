import logging
from typing import Optional

import httpx
from opentelemetry import propagate, trace
from opentelemetry.propagators.textmap import TextMapPropagator
from opentelemetry.trace import SpanKind, Status, StatusCode, format_trace_id

from ..models.context import ExecutionContext, bind_context, context_of
from ._base import Decorator

logger = logging.getLogger(__name__)

SPAN_NAME = "client_request"


class _TraceIdKey:
    """Private key type for the trace id stored on the execution context."""


_TRACE_ID_KEY = _TraceIdKey()


def trace_id_from_context(context: ExecutionContext) -> str:
    """Return the trace id bound by :class:`TraceTransport`, or ``""``."""
    trace_id = context.value(_TRACE_ID_KEY)
    return trace_id if isinstance(trace_id, str) else ""


def _redact_url(url: httpx.URL) -> str:
    """Keep scheme, host and path; query strings may carry credentials."""
    return f"{url.scheme}://{url.netloc.decode('ascii')}{url.path}"


class TraceTransport(httpx.BaseTransport):
    """Wraps each call in a client span and propagates its trace context.

    The span is started under the current OpenTelemetry context, its
    propagation headers are injected into the outgoing request, and its trace
    id is bound to the execution context for inner transports. Tracing is
    best-effort: a span that cannot be started or headers that cannot be
    injected never fail the request.
    """

    def __init__(
        self,
        inner: httpx.BaseTransport,
        name: str,
        *,
        tracer_provider: Optional[trace.TracerProvider] = None,
        propagator: Optional[TextMapPropagator] = None,
    ) -> None:
        self._inner = inner
        self.name = name
        self._tracer = trace.get_tracer(name, tracer_provider=tracer_provider)
        self._propagator = propagator

    @property
    def propagator(self) -> TextMapPropagator:
        return self._propagator or propagate.get_global_textmap()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        try:
            span = self._tracer.start_span(
                SPAN_NAME,
                kind=SpanKind.CLIENT,
                attributes={
                    "http.request.method": request.method,
                    "url.full": _redact_url(request.url),
                    "server.address": request.url.host,
                },
            )
        except Exception:
            logger.debug("Failed to start span for %s", request.url, exc_info=True)
            return self._inner.handle_request(request)

        with trace.use_span(span, end_on_exit=True):
            try:
                self.propagator.inject(request.headers)
            except Exception:
                logger.debug("Failed to inject trace headers", exc_info=True)

            span_context = span.get_span_context()
            trace_id = (
                format_trace_id(span_context.trace_id) if span_context.is_valid else ""
            )
            context = context_of(request).with_value(_TRACE_ID_KEY, trace_id)

            with bind_context(request, context):
                response = self._inner.handle_request(request)

            span.set_attribute("http.response.status_code", response.status_code)
            if response.status_code >= 400:
                span.set_status(Status(StatusCode.ERROR))
            return response

    def close(self) -> None:
        self._inner.close()


def trace_transport(
    name: str,
    *,
    tracer_provider: Optional[trace.TracerProvider] = None,
    propagator: Optional[TextMapPropagator] = None,
) -> Decorator:
    """Return a decorator wrapping a transport in :class:`TraceTransport`."""

    def decorator(inner: httpx.BaseTransport) -> httpx.BaseTransport:
        return TraceTransport(
            inner, name, tracer_provider=tracer_provider, propagator=propagator
        )

    return decorator
