"""Loguru sink configuration shared by the CLI, the API and the worker."""

import sys

from loguru import logger

from intel_archive.config import get_settings

CONSOLE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(level: str | None = None) -> None:
    """
    Replace the default loguru sink with a console sink and a rotating file sink.

    Args:
        level: Optional level override (defaults to LOG_LEVEL)
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()

    logger.remove()
    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=level,
        colorize=True,
    )

    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(settings.log_file),
            format=FILE_FORMAT,
            level=level,
            rotation=settings.log_rotation,
            retention=f"{settings.log_retention_days} days",
            compression="zip",
        )
