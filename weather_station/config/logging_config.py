"""
Loguru configuration.

Usage:
    from weather_station.config.logging_config import setup_logging

    setup_logging(log_level="INFO", log_dir="logs", json_logs=False)

Every module then logs through ``from loguru import logger``. Records
emitted through the stdlib ``logging`` module (uvicorn, httpx) are
forwarded to loguru so all output shares one format and sink set.
"""

import inspect
import logging
import sys
from pathlib import Path

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Route stdlib logging records into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside the logging module
        frame, depth = inspect.currentframe(), 0
        while frame and (
            depth == 0 or frame.f_code.co_filename == logging.__file__
        ):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(
    log_level: str = "INFO",
    log_dir: str | None = "logs",
    json_logs: bool = False,
) -> None:
    """
    Configure loguru sinks.

    Args:
        log_level: Minimum level for every sink
        log_dir: Directory for the rotating file sink (None disables it)
        json_logs: Serialize records as JSON instead of text
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level,
        format=LOG_FORMAT,
        serialize=json_logs,
        colorize=not json_logs,
    )

    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        logger.add(
            Path(log_dir) / "weather_station_{time:YYYY-MM-DD}.log",
            level=log_level,
            rotation="00:00",
            retention="14 days",
            compression="zip",
            serialize=json_logs,
            enqueue=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "httpx"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    logger.debug(f"Logging configured | level={log_level} json={json_logs}")