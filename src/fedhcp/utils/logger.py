"""
Logging setup for FeDHCP.

All modules obtain their logger through :func:`get_logger`, which binds the
module name onto the shared loguru logger so records can be traced back to
the plugin or service that emitted them.

Usage:
    from fedhcp.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Loaded oob plugin for DHCPv6")
"""

import sys
import traceback

from loguru import logger as _logger

from fedhcp.models.enums import LogLevel

# =============================================================================
# Formatting
# =============================================================================

_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

_LEVEL_MAP = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

_logger.configure(extra={"name": "fedhcp"})


# =============================================================================
# Public API
# =============================================================================


def get_logger(name: str):
    """Return the shared logger bound to a module name."""
    return _logger.bind(name=name)


def configure_logging(level: LogLevel | str = LogLevel.INFO, log_file: str = "") -> None:
    """
    Replace the default sink with the FeDHCP format.

    Args:
        level: Verbosity, either a LogLevel or its string value.
        log_file: Optional file path receiving the same records.
    """
    level = LogLevel(level)
    loguru_level = _LEVEL_MAP[level]

    _logger.remove()
    _logger.add(
        sys.stderr,
        level=loguru_level,
        format=_LOG_FORMAT,
        backtrace=level == LogLevel.FULL,
        diagnose=level == LogLevel.FULL,
    )
    if log_file:
        _logger.add(log_file, level=loguru_level, format=_LOG_FORMAT, rotation="10 MB")


def format_traceback(exc: BaseException) -> str:
    """Render an exception with its traceback as a single string."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
