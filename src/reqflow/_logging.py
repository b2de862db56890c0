import json
import logging
import sys
from datetime import datetime
from typing import IO, Optional

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class JSONFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record.

    Structured fields passed as ``extra={"extra_fields": {...}}`` are merged
    into the top-level object.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created).strftime(TIME_FORMAT),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            payload.update(extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class JSONStreamHandler(logging.StreamHandler):
    """Stream handler installed by :func:`configure_logging`."""

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        super().__init__(stream)
        self.setFormatter(JSONFormatter())


def configure_logging(
    level: str = "INFO",
    stream: Optional[IO[str]] = None,
    logger_name: str = "reqflow",
) -> logging.Logger:
    """Attach a JSON stream handler to ``logger_name``.

    Calling this again replaces the handler installed by the previous call
    instead of stacking a second one.

    Args:
        level: Minimum level name, e.g. ``"INFO"``.
        stream: Destination stream. Defaults to ``sys.stdout``.
        logger_name: Logger to configure.

    Returns:
        logging.Logger: The configured logger.
    """
    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        if isinstance(handler, JSONStreamHandler):
            logger.removeHandler(handler)
            handler.close()

    logger.addHandler(JSONStreamHandler(stream or sys.stdout))
    logger.setLevel(level.upper())
    return logger
