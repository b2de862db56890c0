from unittest.mock import MagicMock

import httpx
import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)
from opentelemetry.trace import SpanKind, StatusCode, format_span_id, format_trace_id
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from reqflow import (
    Builder,
    TraceTransport,
    TransportError,
    trace_id_from_context,
    trace_transport,
)
from reqflow.models import ExecutionContext, context_of
from reqflow.models.context import CONTEXT_EXTENSION
from tests.utils.transports import RecordingTransport


def make_request() -> httpx.Request:
    return httpx.Request(
        "GET",
        "http://api.example.com/items?token=secret",
        extensions={CONTEXT_EXTENSION: ExecutionContext.background()},
    )


@pytest.fixture
def traced(tracer_provider: TracerProvider):
    def wrap(inner: httpx.BaseTransport) -> TraceTransport:
        return TraceTransport(
            inner,
            "demo",
            tracer_provider=tracer_provider,
            propagator=TraceContextTextMapPropagator(),
        )

    return wrap


class TestTraceTransport:
    def test_creates_client_span(self, traced, span_exporter: InMemorySpanExporter):
        traced(RecordingTransport()).handle_request(make_request())

        spans = span_exporter.get_finished_spans()
        assert len(spans) == 1
        span = spans[0]
        assert span.name == "client_request"
        assert span.kind == SpanKind.CLIENT
        assert span.instrumentation_scope.name == "demo"
        assert span.attributes["http.request.method"] == "GET"
        assert span.attributes["url.full"] == "http://api.example.com/items"
        assert span.attributes["http.response.status_code"] == 200

    def test_injects_traceparent_header(
        self, traced, span_exporter: InMemorySpanExporter
    ):
        inner = RecordingTransport()
        traced(inner).handle_request(make_request())

        span = span_exporter.get_finished_spans()[0]
        expected = (
            f"00-{format_trace_id(span.context.trace_id)}"
            f"-{format_span_id(span.context.span_id)}-01"
        )
        assert inner.requests[0].headers["traceparent"] == expected

    def test_binds_trace_id_for_inner_transports(
        self, traced, span_exporter: InMemorySpanExporter
    ):
        inner = RecordingTransport()
        request = make_request()

        traced(inner).handle_request(request)

        span = span_exporter.get_finished_spans()[0]
        assert trace_id_from_context(inner.contexts[0]) == format_trace_id(
            span.context.trace_id
        )
        assert trace_id_from_context(context_of(request)) == ""

    def test_error_status_for_server_errors(
        self, traced, span_exporter: InMemorySpanExporter
    ):
        inner = RecordingTransport(lambda request: httpx.Response(500))

        response = traced(inner).handle_request(make_request())

        assert response.status_code == 500
        span = span_exporter.get_finished_spans()[0]
        assert span.status.status_code == StatusCode.ERROR

    def test_failure_is_recorded_and_propagated(
        self, traced, span_exporter: InMemorySpanExporter
    ):
        error = TransportError("connection reset")

        def fail(request: httpx.Request) -> httpx.Response:
            raise error

        with pytest.raises(TransportError) as exc_info:
            traced(RecordingTransport(fail)).handle_request(make_request())

        assert exc_info.value is error
        span = span_exporter.get_finished_spans()[0]
        assert span.status.status_code == StatusCode.ERROR
        assert any(event.name == "exception" for event in span.events)

    def test_span_start_failure_does_not_abort_request(self):
        provider = MagicMock()
        provider.get_tracer.return_value.start_span.side_effect = RuntimeError(
            "tracer unavailable"
        )
        inner = RecordingTransport()

        response = TraceTransport(inner, "demo", tracer_provider=provider).handle_request(
            make_request()
        )

        assert response.status_code == 200
        assert len(inner.requests) == 1

    def test_injection_failure_does_not_abort_request(
        self, tracer_provider: TracerProvider, span_exporter: InMemorySpanExporter
    ):
        propagator = MagicMock()
        propagator.inject.side_effect = RuntimeError("bad carrier")
        inner = RecordingTransport()

        TraceTransport(
            inner, "demo", tracer_provider=tracer_provider, propagator=propagator
        ).handle_request(make_request())

        assert len(inner.requests) == 1
        assert len(span_exporter.get_finished_spans()) == 1

    def test_works_inside_builder(
        self, tracer_provider: TracerProvider, span_exporter: InMemorySpanExporter
    ):
        inner = RecordingTransport()

        Builder(inner).url("http://x/").wrap_transport(
            trace_transport(
                "demo",
                tracer_provider=tracer_provider,
                propagator=TraceContextTextMapPropagator(),
            )
        ).do()

        assert "traceparent" in inner.requests[0].headers
        assert len(span_exporter.get_finished_spans()) == 1
