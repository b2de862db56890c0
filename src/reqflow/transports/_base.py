"""Base network transport and decorator composition."""

import logging
import queue
import threading
from concurrent.futures import Future, wait
from typing import Any, Callable, Iterator, Optional, Sequence

import httpx

from ..models.context import ExecutionContext, context_of
from ..models.errors import DeadlineExceededError, TransportError

logger = logging.getLogger(__name__)

Decorator = Callable[[httpx.BaseTransport], httpx.BaseTransport]

_TIMEOUT_PHASES = ("connect", "read", "write", "pool")

# how often a waiting caller re-checks cancellation
_POLL_INTERVAL = 0.05

_default_transport: httpx.HTTPTransport | None = None
_default_transport_lock = threading.Lock()


def get_default_transport() -> httpx.HTTPTransport:
    """Get or create the process-wide HTTP transport.

    The transport owns the connection pool shared by every builder that does
    not supply its own base transport.
    """
    global _default_transport

    if _default_transport is not None:
        return _default_transport

    with _default_transport_lock:
        if _default_transport is None:
            _default_transport = httpx.HTTPTransport()
            logger.debug("Default HTTP transport initialized")
        return _default_transport


def close_default_transport() -> None:
    """Close the shared transport. Safe to call when none was created."""
    global _default_transport

    with _default_transport_lock:
        if _default_transport is None:
            return
        try:
            _default_transport.close()
        finally:
            _default_transport = None


class NetworkTransport(httpx.BaseTransport):
    """Innermost transport of every chain.

    Honors the request's execution context: a cancelled or expired context
    fails before any I/O, and the remaining time caps every httpx timeout
    phase. The blocking send and every body read run on a worker thread, so
    cancellation or the deadline aborts them while they are in flight; the
    abandoned connection is released once the worker finishes. httpx
    transport failures are surfaced as :class:`TransportError`.
    """

    def __init__(self, inner: Optional[httpx.BaseTransport] = None) -> None:
        self._inner = inner

    @property
    def inner(self) -> httpx.BaseTransport:
        return self._inner if self._inner is not None else get_default_transport()

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        context = context_of(request)
        error = context.error()
        if error is not None:
            raise error

        remaining = context.remaining()
        if remaining is not None:
            request.extensions = {
                **request.extensions,
                "timeout": _cap_timeouts(request.extensions.get("timeout"), remaining),
            }

        future = _run_in_thread(self.inner.handle_request, request)
        try:
            response = _await(future, context)
        except httpx.TransportError as e:
            raise as_transport_error(e) from e
        except TransportError:
            future.add_done_callback(_close_abandoned)
            raise

        response.stream = ContextByteStream(response.stream, context)
        return response

    def close(self) -> None:
        if self._inner is not None:
            self._inner.close()


class ContextByteStream(httpx.SyncByteStream):
    """Response body stream that stops when its execution context is done.

    Chunks are read from ``stream`` by a worker thread and handed over
    through a queue. Before each chunk is yielded the context is checked, and
    a read that blocks past cancellation or the deadline is abandoned with
    :class:`RequestCancelledError` or :class:`DeadlineExceededError`.
    """

    def __init__(self, stream: httpx.SyncByteStream, context: ExecutionContext) -> None:
        self._stream = stream
        self._context = context
        self._chunks: "queue.Queue[Any]" = queue.Queue()
        self._lock = threading.Lock()
        self._started = False
        self._stopped = threading.Event()

    def __iter__(self) -> Iterator[bytes]:
        with self._lock:
            if self._started:
                raise httpx.StreamConsumed()
            self._started = True
        threading.Thread(
            target=self._produce, name="reqflow-body", daemon=True
        ).start()

        while True:
            try:
                item = self._chunks.get(timeout=_poll_timeout(self._context))
            except queue.Empty:
                item = None
            error = self._context.error()
            if error is not None:
                self._stopped.set()
                raise error
            if item is None:
                continue
            if item is _END_OF_STREAM:
                return
            if isinstance(item, httpx.TransportError):
                raise as_transport_error(item) from item
            if isinstance(item, BaseException):
                raise item
            yield item

    def _produce(self) -> None:
        outcome: Any = _END_OF_STREAM
        try:
            for chunk in self._stream:
                if self._stopped.is_set():
                    break
                self._chunks.put(chunk)
        except BaseException as e:
            outcome = e
        finally:
            # the producer owns the inner stream once iteration started
            try:
                self._stream.close()
            except Exception:
                logger.debug("Failed to close response stream", exc_info=True)
            self._chunks.put(outcome)

    def close(self) -> None:
        with self._lock:
            started = self._started
            self._started = True
        if started:
            self._stopped.set()
        else:
            self._stream.close()


_END_OF_STREAM = object()


def _run_in_thread(fn: Callable[..., Any], *args: Any) -> "Future[Any]":
    future: "Future[Any]" = Future()

    def run() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn(*args))
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(target=run, name="reqflow-send", daemon=True).start()
    return future


def _poll_timeout(context: ExecutionContext) -> float:
    remaining = context.remaining()
    if remaining is None:
        return _POLL_INTERVAL
    return max(0.0, min(_POLL_INTERVAL, remaining))


def _await(future: "Future[Any]", context: ExecutionContext) -> Any:
    """Wait for ``future`` unless ``context`` is cancelled or expires first."""
    while True:
        done, _ = wait([future], timeout=_poll_timeout(context))
        if done:
            return future.result()
        error = context.error()
        if error is not None:
            raise error


def _close_abandoned(future: "Future[Any]") -> None:
    if future.cancelled() or future.exception() is not None:
        return
    try:
        future.result().close()
    except Exception:
        logger.debug("Failed to close abandoned response", exc_info=True)


def as_transport_error(exc: httpx.RequestError) -> TransportError:
    """Map an httpx request failure onto the reqflow error taxonomy.

    httpx timeouts only fire through the caps derived from a deadline, so they
    are reported as :class:`DeadlineExceededError`.
    """
    if isinstance(exc, httpx.TimeoutException):
        return DeadlineExceededError(f"context deadline exceeded: {exc}")
    return TransportError(str(exc) or type(exc).__name__)


def _cap_timeouts(timeouts: Optional[dict], remaining: float) -> dict:
    timeouts = timeouts or {}
    capped = {}
    for phase in _TIMEOUT_PHASES:
        current = timeouts.get(phase)
        capped[phase] = remaining if current is None else min(current, remaining)
    return capped


def compose(
    base: httpx.BaseTransport, decorators: Sequence[Decorator]
) -> httpx.BaseTransport:
    """Fold ``decorators`` over ``base``.

    The first decorator ends up outermost, so for ``[d1, d2, d3]`` a request
    flows ``d1 -> d2 -> d3 -> base`` and the response flows back in reverse.
    """
    transport = base
    for decorator in reversed(decorators):
        transport = decorator(transport)
    return transport
