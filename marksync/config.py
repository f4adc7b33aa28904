"""
Configuration management for marksync.

Application settings live here; the sync record itself (endpoint, secret,
selection) lives in the durable store at ``store_path``. Supports both
global (~/.config/marksync/config.toml) and local (marksync.toml)
configuration files.
"""
import os
import tomli
import tomli_w
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict

from marksync.coalescer import DEFAULT_WINDOW_SECONDS


@dataclass
class MarksyncConfig:
    """
    marksync configuration with sensible defaults.

    Configuration hierarchy (highest to lowest priority):
    1. Command-line arguments
    2. Environment variables (MARKSYNC_*)
    3. Local config file (./marksync.toml or ./.marksyncrc)
    4. User config file (~/.config/marksync/config.toml)
    5. System defaults
    """

    # Durable sync record (endpoint, secret, selection)
    store_path: str = field(default="~/.config/marksync/state.json")

    # Bookmark source; empty means auto-detect the Chromium profile
    bookmarks_file: str = field(default="")
    browser_profile: str = field(default="Default")

    # Scheduling
    window_seconds: float = field(default=DEFAULT_WINDOW_SECONDS)
    poll_interval: float = field(default=2.0)  # Bookmark file polling in watch mode

    # Network settings
    timeout_seconds: float = field(default=0.0)  # 0 leaves the transport default
    user_agent: str = field(default="")  # Empty uses marksync/<version>

    # Display settings
    color_output: bool = field(default=True)
    log_level: str = field(default="INFO")

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "MarksyncConfig":
        """
        Load configuration from files and environment.

        Args:
            config_file: Specific config file to load (overrides search)

        Returns:
            Merged configuration object
        """
        config = cls()

        user_config_path = Path.home() / ".config" / "marksync" / "config.toml"
        if user_config_path.exists():
            config._merge(cls._load_toml(user_config_path))

        local_paths = [
            Path.cwd() / "marksync.toml",
            Path.cwd() / ".marksyncrc",
        ]

        for path in local_paths:
            if path.exists():
                config._merge(cls._load_toml(path))
                break

        if config_file and config_file.exists():
            config._merge(cls._load_toml(config_file))

        config._apply_env_vars()
        config._expand_paths()

        return config

    @staticmethod
    def _load_toml(path: Path) -> Dict[str, Any]:
        """Load TOML configuration file."""
        with open(path, "rb") as f:
            return tomli.load(f)

    def _merge(self, data: Dict[str, Any]):
        """Merge configuration data into this instance."""
        for key, value in data.items():
            if hasattr(self, key):
                setattr(self, key, value)

    def _apply_env_vars(self):
        """Apply environment variables with MARKSYNC_ prefix."""
        prefix = "MARKSYNC_"
        for key, value in os.environ.items():
            if key.startswith(prefix):
                config_key = key[len(prefix):].lower()
                if hasattr(self, config_key):
                    current_value = getattr(self, config_key)
                    if isinstance(current_value, bool):
                        setattr(self, config_key, value.lower() in ("true", "1", "yes"))
                    elif isinstance(current_value, (int, float)):
                        setattr(self, config_key, float(value))
                    else:
                        setattr(self, config_key, value)

    def _expand_paths(self):
        """Expand ~ and environment variables in paths."""
        for field_name in ["store_path", "bookmarks_file"]:
            value = getattr(self, field_name)
            if value:
                expanded = os.path.expanduser(os.path.expandvars(value))
                setattr(self, field_name, expanded)

    def save(self, path: Optional[Path] = None):
        """
        Save current configuration to TOML file.

        Args:
            path: Path to save to (defaults to user config)
        """
        if path is None:
            path = Path.home() / ".config" / "marksync" / "config.toml"

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "wb") as f:
            tomli_w.dump(asdict(self), f)

    def get_store_path(self) -> Path:
        return Path(os.path.expanduser(self.store_path))

    def get_timeout(self) -> Optional[float]:
        return self.timeout_seconds or None


# Global configuration instance
_config: Optional[MarksyncConfig] = None


def get_config(reload: bool = False, config_file: Optional[Path] = None) -> MarksyncConfig:
    """
    Get the global configuration instance.

    Args:
        reload: Force reload configuration from files
        config_file: Specific config file to load

    Returns:
        Global configuration instance
    """
    global _config
    if _config is None or reload:
        _config = MarksyncConfig.load(config_file)
    return _config


def init_config(config_file: Optional[Path] = None, **kwargs) -> MarksyncConfig:
    """
    Initialize configuration with command-line overrides.

    Args:
        config_file: Specific config file to load
        **kwargs: Configuration overrides (None values are ignored)

    Returns:
        Configured instance
    """
    config = get_config(reload=config_file is not None, config_file=config_file)

    for key, value in kwargs.items():
        if hasattr(config, key) and value is not None:
            setattr(config, key, value)

    return config
