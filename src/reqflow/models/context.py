"""Execution context carried by every outgoing request.

An :class:`ExecutionContext` bundles the deadline, the cancellation signal and
out-of-band values (such as the trace id) that accompany a single request.
Contexts are immutable: deriving one returns a new instance and leaves the
parent untouched. Cancellation is shared, so cancelling a context also
cancels everything derived from it.
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Generator, Mapping, Optional

import httpx

from .errors import DeadlineExceededError, RequestCancelledError, TransportError

CONTEXT_EXTENSION = "reqflow.context"


@dataclass(frozen=True)
class ExecutionContext:
    """Deadline, cancellation signal and request-scoped values.

    Attributes:
        deadline: Absolute deadline on the ``time.monotonic()`` clock, or
            ``None`` when the request may run indefinitely.
        cancel_event: Event set once the context is cancelled. Shared with
            every context derived from this one.
        values: Read-only mapping of request-scoped values. Keys are private
            objects owned by the component that stores the value.
    """

    deadline: Optional[float] = None
    cancel_event: threading.Event = field(
        default_factory=threading.Event, compare=False, repr=False
    )
    values: Mapping[Any, Any] = field(
        default_factory=lambda: MappingProxyType({}), compare=False, repr=False
    )

    @classmethod
    def background(cls) -> "ExecutionContext":
        """Return an empty context with no deadline and no values."""
        return cls()

    def with_deadline(self, deadline: float) -> "ExecutionContext":
        """Derive a context with ``deadline``, keeping an earlier one if present."""
        if self.deadline is not None and self.deadline <= deadline:
            return self
        return replace(self, deadline=deadline)

    def with_timeout(self, seconds: float) -> "ExecutionContext":
        return self.with_deadline(time.monotonic() + seconds)

    def with_value(self, key: Any, value: Any) -> "ExecutionContext":
        values = dict(self.values)
        values[key] = value
        return replace(self, values=MappingProxyType(values))

    def value(self, key: Any, default: Any = None) -> Any:
        return self.values.get(key, default)

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, ``None`` without a deadline."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def cancel(self) -> None:
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def error(self) -> Optional[TransportError]:
        """Return the error explaining why the context is done, if it is."""
        if self.cancelled:
            return RequestCancelledError()
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            return DeadlineExceededError()
        return None


def context_of(request: httpx.Request) -> ExecutionContext:
    """Return the execution context attached to ``request``."""
    context = request.extensions.get(CONTEXT_EXTENSION)
    if isinstance(context, ExecutionContext):
        return context
    return ExecutionContext.background()


@contextmanager
def bind_context(
    request: httpx.Request, context: ExecutionContext
) -> Generator[httpx.Request, None, None]:
    """Attach ``context`` to ``request`` for the duration of the block.

    The previous extensions are restored on exit, so callers further out in
    the transport chain keep observing their own context.
    """
    previous = request.extensions
    request.extensions = {**previous, CONTEXT_EXTENSION: context}
    try:
        yield request
    finally:
        request.extensions = previous
