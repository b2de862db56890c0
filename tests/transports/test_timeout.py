import time

import httpx
import pytest

from reqflow import ExecutionContext, TimeoutTransport, TransportError, timeout_transport
from reqflow.models import context_of
from reqflow.models.context import CONTEXT_EXTENSION
from reqflow.transports import DEFAULT_TIMEOUT
from tests.utils.transports import RecordingTransport


def make_request(context: ExecutionContext) -> httpx.Request:
    return httpx.Request("GET", "http://x/", extensions={CONTEXT_EXTENSION: context})


class TestTimeoutTransport:
    @pytest.mark.parametrize("timeout", [0, -1, None])
    def test_non_positive_timeout_uses_default(self, timeout):
        transport = TimeoutTransport(RecordingTransport(), timeout)
        assert transport.timeout == DEFAULT_TIMEOUT == 5.0

    def test_sets_deadline_when_context_has_none(self):
        inner = RecordingTransport()
        before = time.monotonic()

        TimeoutTransport(inner, 1.0).handle_request(
            make_request(ExecutionContext.background())
        )

        deadline = inner.contexts[0].deadline
        assert deadline is not None
        assert before + 1.0 <= deadline <= time.monotonic() + 1.0

    def test_tightens_a_later_deadline(self):
        inner = RecordingTransport()
        context = ExecutionContext.background().with_timeout(60)

        TimeoutTransport(inner, 1.0).handle_request(make_request(context))

        assert inner.contexts[0].deadline < context.deadline

    def test_never_loosens_an_earlier_deadline(self):
        inner = RecordingTransport()
        start = time.monotonic()
        context = ExecutionContext.background().with_timeout(0.05)

        TimeoutTransport(inner, 10.0).handle_request(make_request(context))

        assert inner.contexts[0].deadline == context.deadline
        assert inner.contexts[0].deadline <= start + 0.05 + 0.01

    def test_keeps_cancellation_and_values(self):
        inner = RecordingTransport()
        context = ExecutionContext.background().with_value("key", "value")

        TimeoutTransport(inner, 1.0).handle_request(make_request(context))

        derived = inner.contexts[0]
        assert derived.value("key") == "value"
        context.cancel()
        assert derived.cancelled

    def test_derived_context_released_after_success(self):
        context = ExecutionContext.background()
        request = make_request(context)

        TimeoutTransport(RecordingTransport(), 1.0).handle_request(request)

        assert context_of(request) is context

    def test_derived_context_released_after_failure(self):
        error = TransportError("boom")

        def fail(request: httpx.Request) -> httpx.Response:
            raise error

        context = ExecutionContext.background()
        request = make_request(context)

        with pytest.raises(TransportError) as exc_info:
            TimeoutTransport(RecordingTransport(fail), 1.0).handle_request(request)

        assert exc_info.value is error
        assert context_of(request) is context

    def test_factory_returns_decorator(self):
        inner = RecordingTransport()
        transport = timeout_transport(2.5)(inner)
        assert isinstance(transport, TimeoutTransport)
        assert transport.timeout == 2.5
