"""Configuration loader for frontcli

Values are resolved with the following priority:
1. Environment variables (highest priority)
2. ``.env`` in the working directory
3. ``~/.config/frontcli/frontcli.env`` (per-user settings)
4. Hardcoded defaults (lowest priority)

Dotenv files never override variables that are already set, so loading the
project file before the user file gives the order above.
"""

import logging
import os
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

USER_ENV_FILE = Path.home() / ".config" / "frontcli" / "frontcli.env"

_TRUE_VALUES = ("true", "1", "yes", "on")


def _coerce(env_var: str, raw: str, default: Any) -> Any:
    """Convert ``raw`` to the type of ``default``; bad numbers fall back to it"""
    # bool is a subclass of int, so it goes first
    if isinstance(default, bool):
        return raw.strip().lower() in _TRUE_VALUES
    for kind in (int, float):
        if isinstance(default, kind):
            try:
                return kind(raw)
            except ValueError:
                logger.warning(f"Ignoring {env_var}={raw!r}: not a valid {kind.__name__}, using {default}")
                return default
    return raw


class ConfigLoader:
    """Reads settings from the environment and dotenv files"""

    def __init__(self, env_path: Optional[str] = None, user_env_path: Optional[str] = None):
        """
        Args:
            env_path: Project dotenv file (default: ``.env`` in the working directory)
            user_env_path: Per-user dotenv file (default: ``USER_ENV_FILE``)
        """
        self.env_paths: List[Path] = [
            Path(env_path) if env_path else Path(".env"),
            Path(user_env_path) if user_env_path else USER_ENV_FILE,
        ]
        self.loaded_files: List[Path] = []
        self._load_env_files()

    def _load_env_files(self):
        for path in self.env_paths:
            if not path.is_file():
                logger.debug(f"No dotenv file at {path}")
                continue
            load_dotenv(dotenv_path=path, override=False)
            self.loaded_files.append(path)
            logger.debug(f"Loaded environment variables from {path}")

    def get(self, env_var: str, default: Any) -> Any:
        """Get a configuration value, coerced to the type of ``default``

        String values starting with ``~/`` are expanded to the home directory.

        Args:
            env_var: Environment variable name to check
            default: Value used when the variable is unset

        Returns:
            The configuration value from environment or default
        """
        raw = os.getenv(env_var)
        value = default if raw is None else _coerce(env_var, raw, default)

        if isinstance(value, str) and value.startswith("~/"):
            return str(Path(value).expanduser())
        return value


_config_loader = None


def get_config_loader() -> ConfigLoader:
    """Get or create the global ConfigLoader instance"""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader
