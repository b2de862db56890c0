"""Transport decorators and the base network transport.

Every transport is an ``httpx.BaseTransport``. A decorator is a callable that
takes a transport and returns a new one, so behaviors nest freely::

    transport = compose(
        NetworkTransport(),
        [trace_transport("billing"), logging_transport("billing"), timeout_transport(2)],
    )
"""

from ._base import (
    Decorator,
    NetworkTransport,
    close_default_transport,
    compose,
    get_default_transport,
)
from ._logging import LoggingTransport, logging_transport
from ._standard import standard_decorators
from ._timeout import DEFAULT_TIMEOUT, TimeoutTransport, timeout_transport
from ._trace import TraceTransport, trace_id_from_context, trace_transport

__all__ = [
    "Decorator",
    "NetworkTransport",
    "compose",
    "get_default_transport",
    "close_default_transport",
    "LoggingTransport",
    "logging_transport",
    "TimeoutTransport",
    "timeout_transport",
    "DEFAULT_TIMEOUT",
    "TraceTransport",
    "trace_transport",
    "trace_id_from_context",
    "standard_decorators",
]
