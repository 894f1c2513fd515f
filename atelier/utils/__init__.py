"""
Atelier Utils - Helper functions and utilities.

Logging and debouncing.
"""

from atelier.utils.logging import setup_logging, get_logger
from atelier.utils.debounce import Debouncer

__all__ = [
    "setup_logging",
    "get_logger",
    "Debouncer",
]
