"""
Logging configuration helpers.

Owns process logging setup for the CLI and embedding hosts: a stderr stream
handler, an optional file handler, and a format carrying the package version.
"""

from __future__ import annotations

import logging

from canvascore import __version__
from canvascore.common.config import LoggingConfig

__all__ = [
    "logFormatWithVersion_get",
    "logging_setup",
    "loggingFromConfig_setup",
]


def logging_setup(level: str, log_format: str, log_file: str | None) -> None:
    """
    Configure root logging handlers and the version-tagged format.

    Args:
        level:
            Log level name (for example `INFO` or `DEBUG`).
        log_format:
            Base formatter string.
        log_file:
            Optional log file path.

    Raises:
        ValueError: If the level name is unknown.
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level '{level}'")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=numeric_level,
        format=logFormatWithVersion_get(log_format),
        handlers=handlers,
        force=True,
    )


def loggingFromConfig_setup(config: LoggingConfig) -> None:
    """Apply the `logging` config section."""
    logging_setup(config.level, config.format, config.file)


def logFormatWithVersion_get(log_format: str) -> str:
    """
    Inject the package version after the timestamp token.

    Args:
        log_format:
            Base formatter string.

    Returns:
        Formatter string with embedded version token.
    """
    return log_format.replace("%(asctime)s", f"%(asctime)s [v{__version__}]")
