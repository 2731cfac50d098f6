"""
Logging setup.

Every module imports the shared loguru ``logger`` from here::

    from src.core.logger import logger

    logger.info("Pool: key {} selected", key_id[:8])
"""

from __future__ import annotations

import sys

from loguru import logger

from src.config import config

_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def setup_logging(level: str | None = None, json_format: bool | None = None) -> None:
    """(Re)configure the stderr sink.

    Args:
        level: log level, defaults to ``LOG_LEVEL``
        json_format: serialise records as JSON, defaults to ``LOG_FORMAT == "json"``
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or config.log_level).upper(),
        format=_LOG_FORMAT,
        serialize=config.log_format == "json" if json_format is None else json_format,
        backtrace=False,
        diagnose=config.environment != "production",
        enqueue=False,
    )


def mask_secret(secret: str | None) -> str:
    """Return a printable form of *secret* that never reveals it in full."""
    if not secret:
        return "<empty>"
    if len(secret) <= 8:
        return "***"
    return f"{secret[:4]}…{secret[-2:]}"


setup_logging()

__all__ = ["logger", "mask_secret", "setup_logging"]
