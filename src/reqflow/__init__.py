"""Fluent HTTP request builder with composable transport decorators.

Example:
    >>> import reqflow
    >>> out = {}
    >>> reqflow.url("https://api.example.com/items").method("POST").req(
    ...     {"name": "item"}
    ... ).resp(out).wrap_transport(
    ...     reqflow.trace_transport("catalog"),
    ...     reqflow.logging_transport("catalog"),
    ...     reqflow.timeout_transport(2),
    ... ).do()
"""

from ._builder import (
    Builder,
    base_url,
    header,
    method,
    new,
    query_string,
    req,
    resp,
    url,
    wrap_transport,
)
from ._codec import Codec, JsonCodec, default_codec
from ._config import Config
from ._logging import JSONFormatter, JSONStreamHandler, configure_logging
from .models import (
    DeadlineExceededError,
    DecodingError,
    EncodingError,
    ExecutionContext,
    ReqflowError,
    RequestCancelledError,
    RequestConstructionError,
    TransportError,
)
from .transports import (
    Decorator,
    LoggingTransport,
    NetworkTransport,
    TimeoutTransport,
    TraceTransport,
    close_default_transport,
    compose,
    logging_transport,
    standard_decorators,
    timeout_transport,
    trace_id_from_context,
    trace_transport,
)

__all__ = [
    "Builder",
    "new",
    "url",
    "base_url",
    "method",
    "req",
    "resp",
    "query_string",
    "header",
    "wrap_transport",
    "Codec",
    "JsonCodec",
    "default_codec",
    "Config",
    "JSONFormatter",
    "JSONStreamHandler",
    "configure_logging",
    "ExecutionContext",
    "ReqflowError",
    "EncodingError",
    "DecodingError",
    "RequestConstructionError",
    "TransportError",
    "DeadlineExceededError",
    "RequestCancelledError",
    "Decorator",
    "NetworkTransport",
    "compose",
    "close_default_transport",
    "TraceTransport",
    "trace_transport",
    "trace_id_from_context",
    "LoggingTransport",
    "logging_transport",
    "TimeoutTransport",
    "timeout_transport",
    "standard_decorators",
]
