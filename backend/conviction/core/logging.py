"""
Logging configuration

Everything logs through loguru. Records emitted by libraries on the stdlib
``logging`` module (uvicorn, fastapi, httpx, sqlalchemy) are forwarded to
loguru by ``InterceptHandler``.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, TextIO

from loguru import logger
from conviction.core.config import settings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"

INTERCEPTED_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error", "fastapi", "sqlalchemy.engine")

# httpx logs every request at INFO; provider clients already log retries
QUIET_LOGGERS = {"httpx": logging.WARNING, "httpcore": logging.WARNING}


class InterceptHandler(logging.Handler):
    """Forward a stdlib logging record to loguru"""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so loguru reports the real caller
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(level: Optional[str] = None, sink: TextIO = sys.stdout):
    """
    Configure loguru sinks and stdlib interception.

    Args:
        level: Minimum level; defaults to ``settings.LOG_LEVEL``
        sink: Console stream. The CLI passes stderr so stdout stays
            clean for JSON output.

    File sinks (``app.log`` and ``error.log``) are added only when
    ``LOG_DIR`` is set.
    """
    level = (level or settings.LOG_LEVEL).upper()

    logger.remove()
    logger.add(sink, format=CONSOLE_FORMAT, level=level, colorize=sink.isatty())

    if settings.LOG_DIR:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_dir / "error.log",
            format=FILE_FORMAT,
            level="ERROR",
            rotation="500 MB",
            retention="10 days",
            compression="zip",
        )
        logger.add(
            log_dir / "app.log",
            format=FILE_FORMAT,
            level=level,
            rotation="1 day",
            retention="7 days",
            compression="zip",
        )

    for name in INTERCEPTED_LOGGERS:
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).propagate = False
    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    logger.debug(f"Logging initialized - Level: {level}")
