"""
Configuration - how the companion ages and where it keeps its memory.

Covers:
- Decay difficulty (easy / normal / hard) or custom decay rates
- Debounce window for writes
- Database location

Files are YAML (or JSON by extension). An unreadable or invalid file never
stops the companion from starting: defaults are used and a warning logged.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from .decay import DecayConfig, Difficulty, get_decay_config

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("companion_config.yaml")
DEFAULT_DB_PATH = "companion.db"
DEFAULT_DEBOUNCE_SECONDS = 5.0


@dataclass
class CompanionConfig:
    """Complete configuration for the companion core."""
    difficulty: str = Difficulty.NORMAL.value
    custom_decay: Optional[DecayConfig] = None  # Overrides difficulty when set
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    db_path: str = DEFAULT_DB_PATH

    def decay_config(self) -> DecayConfig:
        """Effective decay rates."""
        if self.custom_decay is not None:
            return self.custom_decay
        return get_decay_config(self.difficulty)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "difficulty": self.difficulty,
            "custom_decay": self.custom_decay.to_dict() if self.custom_decay else None,
            "debounce_seconds": self.debounce_seconds,
            "db_path": self.db_path,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CompanionConfig":
        """Create from dictionary. Missing keys take defaults."""
        data = data or {}
        custom = data.get("custom_decay")
        return cls(
            difficulty=data.get("difficulty", Difficulty.NORMAL.value),
            custom_decay=DecayConfig.from_dict(custom) if custom else None,
            debounce_seconds=float(data.get("debounce_seconds", DEFAULT_DEBOUNCE_SECONDS)),
            db_path=str(data.get("db_path", DEFAULT_DB_PATH)),
        )

    def validate(self) -> Tuple[bool, Optional[str]]:
        """Validate entire configuration."""
        if self.difficulty not in {d.value for d in Difficulty}:
            return False, f"difficulty must be one of: {', '.join(d.value for d in Difficulty)}"

        if self.custom_decay is not None:
            valid, error = self.custom_decay.validate()
            if not valid:
                return False, f"Custom decay: {error}"

        if self.debounce_seconds < 0:
            return False, "debounce_seconds must be >= 0"

        if not self.db_path:
            return False, "db_path must not be empty"

        return True, None


class ConfigManager:
    """Manages configuration loading and saving."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize config manager.

        Args:
            config_path: Path to config file (default: companion_config.yaml in current dir)
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH
        self.config_path = Path(config_path)
        self._config: Optional[CompanionConfig] = None

    def _is_yaml(self) -> bool:
        return self.config_path.suffix in (".yaml", ".yml")

    def load(self, force_reload: bool = False) -> CompanionConfig:
        """Load configuration from file or return defaults."""
        if self._config is not None and not force_reload:
            return self._config

        if not self.config_path.exists():
            self._config = CompanionConfig()
            return self._config

        try:
            with open(self.config_path, "r") as f:
                data = yaml.safe_load(f) if self._is_yaml() else json.load(f)
            if data is not None and not isinstance(data, dict):
                raise ValueError(f"expected a mapping, got {type(data).__name__}")

            self._config = CompanionConfig.from_dict(data)

            valid, error = self._config.validate()
            if not valid:
                logger.warning("Invalid config %s, using defaults: %s", self.config_path, error)
                self._config = CompanionConfig()
        except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
            logger.warning("Error loading config %s, using defaults: %s", self.config_path, e)
            self._config = CompanionConfig()

        return self._config

    def save(self, config: Optional[CompanionConfig] = None) -> bool:
        """
        Save configuration to file.

        Returns:
            True if saved successfully
        """
        if config is None:
            config = self._config or self.load()

        valid, error = config.validate()
        if not valid:
            logger.warning("Cannot save invalid config: %s", error)
            return False

        try:
            data = config.to_dict()
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, "w") as f:
                if self._is_yaml():
                    yaml.dump(data, f, default_flow_style=False, sort_keys=False)
                else:
                    json.dump(data, f, indent=2)
            self._config = config
            return True
        except OSError as e:
            logger.error("Error saving config %s: %s", self.config_path, e)
            return False

    def reload(self) -> CompanionConfig:
        """Force reload configuration from file."""
        self._config = None
        return self.load()

