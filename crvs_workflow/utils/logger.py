"""
Logging for the workflow service.

loguru is configured once at import time from ``settings``. Every record
carries a ``correlation_id`` extra ("-" outside a request); the API binds it
from the ``x-correlation-id`` header so that one declaration can be followed
through the workflow, Hearth and the event pipeline.
"""

import inspect
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from uuid import uuid4

from loguru import logger as _logger

from ..settings import settings

CORRELATION_HEADER = "x-correlation-id"

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>{extra[correlation_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Standard library loggers routed through loguru
BRIDGED_LOGGERS = ("uvicorn", "uvicorn.error", "fastapi", "httpx")


class StdlibBridge(logging.Handler):
    """Forward standard library records (uvicorn, httpx) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so loguru reports the real caller
        frame, depth = inspect.currentframe(), 0
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(
    level: str = "INFO",
    fmt: str | None = None,
    log_file: str | Path | None = None,
    rotation: str = "20 MB",
    retention: str = "1 week",
    serialize: bool = False,
) -> None:
    """
    (Re)configure the loguru sinks.

    Args:
        level: Minimum log level
        fmt: Message format; must not drop ``{extra[correlation_id]}`` if
            records are expected to be traceable
        log_file: Also write to this file when set
        rotation: When to rotate the log file (size or time)
        retention: How long rotated files are kept
        serialize: Write the file sink as JSON lines
    """
    fmt = fmt or DEFAULT_FORMAT

    _logger.remove()
    _logger.configure(extra={"correlation_id": "-"})
    _logger.add(sys.stderr, level=level, format=fmt, colorize=True, backtrace=True, diagnose=False)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _logger.add(
            str(log_path),
            level=level,
            format=fmt,
            rotation=rotation,
            retention=retention,
            compression="zip",
            serialize=serialize,
            backtrace=True,
            diagnose=False,
        )

    logging.basicConfig(handlers=[StdlibBridge()], level=0, force=True)
    for name in BRIDGED_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [StdlibBridge()]
        stdlib_logger.propagate = False


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Tag every record logged inside the block, including from awaited tasks.

    Args:
        correlation_id: Id received from the caller; a new one is generated when empty

    Yields:
        The correlation id in effect
    """
    correlation_id = correlation_id or uuid4().hex
    with _logger.contextualize(correlation_id=correlation_id):
        yield correlation_id


configure_logging(
    level=settings.log_level,
    fmt=settings.log_format,
    log_file=settings.get_log_dir() / "crvs_workflow.log" if settings.log_to_file else None,
    rotation=settings.log_rotation,
    retention=settings.log_retention,
    serialize=settings.log_serialize,
)

logger = _logger
