import logging
import time
from datetime import datetime
from typing import Any, Optional

import httpx

from ..models.context import context_of
from ._base import Decorator
from ._trace import trace_id_from_context

LOGGER_NAME = "reqflow"
START_FORMAT = "%Y-%m-%d %H:%M:%S"


class LoggingTransport(httpx.BaseTransport):
    """Emits one ``client_request`` record per call once the call completes.

    The record is written whether the inner transport succeeded or failed and
    carries ``host``, ``path``, ``service``, ``start``, ``elapsed`` (ms),
    ``trace_id`` and, when a response was obtained, ``status_code``. Fields are
    passed to the logger as ``extra_fields``.
    """

    def __init__(
        self,
        inner: httpx.BaseTransport,
        name: str,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._inner = inner
        self.name = name
        self._logger = logger or logging.getLogger(LOGGER_NAME)

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        start = datetime.now()
        started = time.perf_counter()
        response: Optional[httpx.Response] = None
        error: Optional[BaseException] = None
        try:
            response = self._inner.handle_request(request)
            return response
        except BaseException as e:
            error = e
            raise
        finally:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            self._emit(request, start, elapsed_ms, response, error)

    def _emit(
        self,
        request: httpx.Request,
        start: datetime,
        elapsed_ms: int,
        response: Optional[httpx.Response],
        error: Optional[BaseException],
    ) -> None:
        try:
            fields: dict[str, Any] = {
                "host": request.url.netloc.decode("ascii"),
                "path": request.url.path,
                "service": self.name,
                "start": start.strftime(START_FORMAT),
                "elapsed": elapsed_ms,
                "trace_id": trace_id_from_context(context_of(request)),
            }
            if response is not None:
                fields["status_code"] = response.status_code
            if error is not None:
                fields["error"] = str(error) or type(error).__name__
            self._logger.info("client_request", extra={"extra_fields": fields})
        except Exception:
            # Never fail the request because of logging
            pass

    def close(self) -> None:
        self._inner.close()


def logging_transport(
    name: str, *, logger: Optional[logging.Logger] = None
) -> Decorator:
    """Return a decorator wrapping a transport in :class:`LoggingTransport`.

    Args:
        name: Logical service name recorded with every request.
        logger: Logger receiving the records. Defaults to ``reqflow``.
    """

    def decorator(inner: httpx.BaseTransport) -> httpx.BaseTransport:
        return LoggingTransport(inner, name, logger=logger)

    return decorator
