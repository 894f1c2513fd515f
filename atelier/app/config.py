"""
Atelier Configuration.

Central configuration for the project store: where its files live, the
project folder skeleton and the discovery heuristic.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv

from atelier.systems.storage.file_io import (
    DEFAULT_REQUIRED_SUBFOLDERS,
    DEFAULT_SUBFOLDERS,
    METADATA_FILENAME,
)


# ============================================================================
# Default Paths
# ============================================================================


def get_default_data_dir() -> Path:
    """Get the default data directory for Atelier."""
    load_dotenv()

    # Check for environment override
    if env_path := os.environ.get("ATELIER_DATA_DIR"):
        return Path(env_path).expanduser()

    if appdata := os.environ.get("APPDATA"):
        return Path(appdata) / "atelier"
    return Path.home() / ".config" / "atelier"


# ============================================================================
# Configuration Classes
# ============================================================================


@dataclass
class SkeletonConfig:
    """Configuration for the project folder skeleton."""

    subfolders: list[str] = field(default_factory=lambda: list(DEFAULT_SUBFOLDERS))
    required_subfolders: list[str] = field(default_factory=lambda: list(DEFAULT_REQUIRED_SUBFOLDERS))
    discovery_threshold: int = 3  # Required subfolders needed to count as a project
    ae_subfolder: str = "05 AEP"
    assets_subfolder: str = "01 ASSETS"
    outputs_subfolder: str = "07 OUTPUTS"
    project_file_extension: str = "aep"

    def __post_init__(self):
        if self.discovery_threshold < 1:
            raise ValueError(f"discovery_threshold must be >= 1, got {self.discovery_threshold}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SkeletonConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def to_dict(self) -> dict[str, Any]:
        return {
            "subfolders": list(self.subfolders),
            "required_subfolders": list(self.required_subfolders),
            "discovery_threshold": self.discovery_threshold,
            "ae_subfolder": self.ae_subfolder,
            "assets_subfolder": self.assets_subfolder,
            "outputs_subfolder": self.outputs_subfolder,
            "project_file_extension": self.project_file_extension,
        }


@dataclass
class AtelierConfig:
    """Main configuration for Atelier.

    Built once at startup and handed to ``AtelierState.create``.
    """

    # Paths
    data_dir: Path = field(default_factory=get_default_data_dir)
    registry_filename: str = "projects.json"
    preferences_filename: str = "preferences.json"
    metadata_filename: str = METADATA_FILENAME

    # Sub-configs
    skeleton: SkeletonConfig = field(default_factory=SkeletonConfig)

    # Behaviour
    notes_debounce_seconds: float = 0.8
    keep_backup: bool = True

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_to_file: bool = False

    def __post_init__(self):
        # Ensure paths are Path objects
        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)

    @property
    def registry_path(self) -> Path:
        return self.data_dir / self.registry_filename

    @property
    def preferences_path(self) -> Path:
        return self.data_dir / self.preferences_filename

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "AtelierConfig":
        """Load configuration from a JSON file.

        Args:
            config_path: Path to config file. If None, uses default location.

        Returns:
            AtelierConfig instance (defaults when the file does not exist)
        """
        if config_path is None:
            config_path = get_default_data_dir() / "atelier_config.json"

        config_path = Path(config_path)

        if not config_path.exists():
            return cls()

        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AtelierConfig":
        """Create config from dictionary."""
        return cls(
            data_dir=Path(data.get("data_dir", get_default_data_dir())),
            registry_filename=data.get("registry_filename", "projects.json"),
            preferences_filename=data.get("preferences_filename", "preferences.json"),
            metadata_filename=data.get("metadata_filename", METADATA_FILENAME),
            skeleton=SkeletonConfig.from_dict(data.get("skeleton", {})),
            notes_debounce_seconds=data.get("notes_debounce_seconds", 0.8),
            keep_backup=data.get("keep_backup", True),
            log_level=data.get("log_level", "INFO"),
            log_to_file=data.get("log_to_file", False),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "data_dir": str(self.data_dir),
            "registry_filename": self.registry_filename,
            "preferences_filename": self.preferences_filename,
            "metadata_filename": self.metadata_filename,
            "skeleton": self.skeleton.to_dict(),
            "notes_debounce_seconds": self.notes_debounce_seconds,
            "keep_backup": self.keep_backup,
            "log_level": self.log_level,
            "log_to_file": self.log_to_file,
        }

    def save(self, config_path: str | Path | None = None) -> Path:
        """Save configuration to a JSON file.

        Returns:
            Path to saved file
        """
        if config_path is None:
            config_path = self.data_dir / "atelier_config.json"

        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

        return config_path

    def ensure_directories(self) -> None:
        """Ensure the data directory exists."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
