"""
Atelier App - configuration and service wiring.
"""

from atelier.app.config import AtelierConfig, SkeletonConfig, get_default_data_dir
from atelier.app.state import AtelierState

__all__ = [
    # Config
    "AtelierConfig",
    "SkeletonConfig",
    "get_default_data_dir",
    # State
    "AtelierState",
]
