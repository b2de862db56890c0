from typing import Optional

from .._config import Config
from ._base import Decorator
from ._logging import logging_transport
from ._timeout import timeout_transport
from ._trace import trace_transport


def standard_decorators(config: Optional[Config] = None) -> list[Decorator]:
    """Trace, logging and timeout decorators configured from ``config``.

    Tracing is outermost so the logging decorator inside it records the trace
    id, and the timeout sits closest to the network.
    """
    config = config or Config.from_env()
    return [
        trace_transport(config.service_name),
        logging_transport(config.service_name),
        timeout_transport(config.default_timeout),
    ]
