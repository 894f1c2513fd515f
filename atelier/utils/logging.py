"""
Logging for Atelier.

Everything logs under the ``atelier`` namespace. Console output is always on;
a log file in the data directory is added when ``log_to_file`` is set in the
configuration.
"""

from __future__ import annotations

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

LOG_NAMESPACE = "atelier"
LOG_FILENAME = "atelier.log"

_LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
_RESET = "\033[0m"


class AtelierFormatter(logging.Formatter):
    """One line per record: UTC time, level, component and message."""

    def __init__(self, use_colors: bool = False):
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, UTC).strftime("%H:%M:%S")
        level = f"{record.levelname:8}"
        if self.use_colors and record.levelname in _LEVEL_COLORS:
            level = f"{_LEVEL_COLORS[record.levelname]}{level}{_RESET}"

        component = record.name.removeprefix(f"{LOG_NAMESPACE}.")
        line = f"{stamp} {level} {component}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    log_dir: str | Path | None = None,
    console_output: bool = True,
    file_output: bool = True,
) -> None:
    """(Re)configure the ``atelier`` logger.

    Existing handlers are replaced, so calling this again after the
    configuration is loaded is safe.

    Args:
        level: Minimum level to emit
        log_dir: Directory for ``atelier.log``; ignored unless ``file_output``
        console_output: Log to stdout
        file_output: Log to a file in ``log_dir``
    """
    package_logger = logging.getLogger(LOG_NAMESPACE)
    package_logger.setLevel(level)

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    if console_output:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(AtelierFormatter(use_colors=sys.stdout.isatty()))
        package_logger.addHandler(console)

    if file_output and log_dir is not None:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(directory / LOG_FILENAME, encoding="utf-8")
        file_handler.setFormatter(AtelierFormatter())
        package_logger.addHandler(file_handler)

    package_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Logger for an Atelier component, e.g. ``get_logger("folders.registry")``."""
    if name == LOG_NAMESPACE or name.startswith(f"{LOG_NAMESPACE}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOG_NAMESPACE}.{name}")


def _describe(details: dict) -> str:
    return ", ".join(f"{key}={value}" for key, value in details.items())


def log_operation(logger: logging.Logger, operation: str, details: dict | None = None) -> None:
    """Log a completed mutation at info level."""
    if details:
        logger.info(f"{operation}: {_describe(details)}")
    else:
        logger.info(operation)


def log_error(
    logger: logging.Logger,
    operation: str,
    error: Exception,
    context: dict | None = None,
) -> None:
    """Log a failed operation together with the error that stopped it."""
    message = f"{operation} failed: {type(error).__name__}: {error}"
    if context:
        message = f"{message} ({_describe(context)})"
    logger.error(message, exc_info=error)


setup_logging(file_output=False)
