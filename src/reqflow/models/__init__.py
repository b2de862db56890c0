from .context import ExecutionContext, bind_context, context_of
from .errors import (
    DeadlineExceededError,
    DecodingError,
    EncodingError,
    ReqflowError,
    RequestCancelledError,
    RequestConstructionError,
    TransportError,
)

__all__ = [
    "ExecutionContext",
    "bind_context",
    "context_of",
    "ReqflowError",
    "EncodingError",
    "DecodingError",
    "RequestConstructionError",
    "TransportError",
    "DeadlineExceededError",
    "RequestCancelledError",
]
