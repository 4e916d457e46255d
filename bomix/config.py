"""Application configuration stored as JSON in the user's config directory."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from .errors import MissingRequiredField

logger = logging.getLogger(__name__)

# Pick up BOMIX_* variables from a .env file in the working directory
load_dotenv()

CONFIG_DIR_ENV = "BOMIX_CONFIG_DIR"
CONFIG_FILENAME = "config.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "default_path": "",
    "default_database_path": "",
    "autocompact_minutes": 5,
    "import_workers": 4,
}


def default_config_dir() -> Path:
    """Config directory: $BOMIX_CONFIG_DIR, else ~/.bomix."""
    env_dir = os.getenv(CONFIG_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    return Path.home() / ".bomix"


class ConfigManager:
    """Loads, validates and saves the JSON config file.

    A missing file is created with the defaults. A file that cannot be read
    or parsed is logged and the defaults are used instead.
    """

    def __init__(self, config_dir: Optional[os.PathLike] = None):
        directory = Path(config_dir) if config_dir else default_config_dir()
        self.config_path = directory / CONFIG_FILENAME
        self._default_config = dict(DEFAULT_CONFIG)
        logger.debug(f"ConfigManager: config path {self.config_path}")
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            self._config = dict(self._default_config)
            try:
                self._save_config()
                logger.info(f"Default config created: {self.config_path}")
            except OSError as e:
                logger.error(f"Cannot create default config: {e}")
            return self._config

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config root must be a JSON object")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load config {self.config_path}: {e}")
            return dict(self._default_config)

        logger.info(f"Config loaded: {self.config_path}")
        return {**self._default_config, **data}

    def _save_config(self) -> None:
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)

    def get_config(self) -> Dict[str, Any]:
        return dict(self._config)

    def get(self, key: str, default: Any = None) -> Any:
        return self._config.get(key, default)

    def get_default_config(self) -> Dict[str, Any]:
        return dict(self._default_config)

    def update_config(self, new_config: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the config and save it.

        Raises:
            TypeError: If ``new_config`` is not a dict
            MissingRequiredField: If a default key is missing from ``new_config``
            OSError: If the file cannot be written
        """
        if not isinstance(new_config, dict):
            raise TypeError("Config must be a dict")

        missing = [key for key in self._default_config if key not in new_config]
        if missing:
            raise MissingRequiredField(missing, "config")

        previous = self._config
        self._config = {**self._default_config, **new_config}
        try:
            self._save_config()
        except OSError as e:
            self._config = previous
            logger.error(f"Failed to save config {self.config_path}: {e}")
            raise
        return self.get_config()
