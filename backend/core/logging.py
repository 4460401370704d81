"""
Logging Configuration
loguru sinks carrying permission context, with standard logging routed through them

Every record has ``permission_id`` and ``viewer_id`` extras (``-`` when
unbound), so verification logs can be filtered per grant in both the
console format and the JSON output.
"""

import logging
import sys
from typing import Any

from loguru import logger as loguru_logger

from backend.core.config import settings

CONTEXT_DEFAULTS = {"name": "app", "permission_id": "-", "viewer_id": "-"}

# Routed through loguru
INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "fastapi")

# Raised to WARNING
QUIET_LOGGERS = ("sqlalchemy", "aiosqlite", "asyncpg", "redis")

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> | "
    "<magenta>permission={extra[permission_id]} viewer={extra[viewer_id]}</magenta> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Intercept standard logging and redirect to loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames inside the logging module
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        loguru_logger.bind(name=record.name).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def setup_logging() -> None:
    """
    Configure loguru for the service

    DEBUG gives colored console lines with permission context; otherwise
    records are serialized to JSON (extras included). ``LOG_FILE`` adds a
    rotating JSON file sink.
    """
    loguru_logger.remove()
    loguru_logger.configure(extra=CONTEXT_DEFAULTS)

    if settings.DEBUG:
        loguru_logger.add(sys.stdout, format=CONSOLE_FORMAT, level="DEBUG", colorize=True)
    else:
        loguru_logger.add(sys.stdout, level=settings.LOG_LEVEL, serialize=True)

    if settings.LOG_FILE:
        loguru_logger.add(
            settings.LOG_FILE,
            rotation="100 MB",
            retention="7 days",
            compression="zip",
            level=settings.LOG_LEVEL,
            serialize=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for name in INTERCEPTED_LOGGERS:
        logging.getLogger(name).handlers = [InterceptHandler()]
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    get_logger(__name__).debug(
        f"Logging configured (level={settings.LOG_LEVEL}, file={settings.LOG_FILE})"
    )


def get_logger(name: str, **context: Any) -> Any:
    """
    Get a logger bound to a module name

    Args:
        name: Module name, shown as ``extra[name]``
        **context: Extra fields to bind, e.g. ``permission_id``

    Returns:
        Bound loguru logger
    """
    return loguru_logger.bind(name=name, **context)
