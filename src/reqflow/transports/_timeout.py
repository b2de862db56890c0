import time
from typing import Optional

import httpx

from ..models.context import bind_context, context_of
from ._base import Decorator

DEFAULT_TIMEOUT = 5.0


class TimeoutTransport(httpx.BaseTransport):
    """Tightens the request deadline to at most ``timeout`` seconds from now.

    A deadline already present on the execution context is kept when it is
    earlier. The deadline is enforced by the base transport; this decorator
    never races a timer against the inner call.
    """

    def __init__(
        self, inner: httpx.BaseTransport, timeout: Optional[float] = DEFAULT_TIMEOUT
    ) -> None:
        if timeout is None or timeout <= 0:
            timeout = DEFAULT_TIMEOUT
        self._inner = inner
        self.timeout = timeout

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        context = context_of(request)
        deadline = time.monotonic() + self.timeout
        if context.deadline is not None and context.deadline <= deadline:
            return self._inner.handle_request(request)

        with bind_context(request, context.with_deadline(deadline)):
            return self._inner.handle_request(request)

    def close(self) -> None:
        self._inner.close()


def timeout_transport(timeout: Optional[float] = DEFAULT_TIMEOUT) -> Decorator:
    """Return a decorator wrapping a transport in :class:`TimeoutTransport`.

    Args:
        timeout: Seconds allowed for the call. Non-positive values fall back
            to 5 seconds.
    """

    def decorator(inner: httpx.BaseTransport) -> httpx.BaseTransport:
        return TimeoutTransport(inner, timeout)

    return decorator
