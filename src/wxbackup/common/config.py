"""Configuration loader with multi-source support."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Generic, Optional, Type, TypeVar

import platformdirs
import toml
from pydantic import BaseModel, ValidationError

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


class ConfigLoader(Generic[T]):
    """Loads configuration from several sources, later ones winning.

    Order: shipped defaults, system config, user config, environment.
    Environment variables use the form ``WXBACKUP_<SECTION>__<KEY>`` where
    a double underscore separates nesting levels, so keys may contain
    single underscores (``WXBACKUP_EXPORT__OUTPUT_DIR``).
    """

    def __init__(self, app_name: str = "wxbackup", config_class: Optional[Type[T]] = None) -> None:
        self.app_name = app_name
        self.config_class = config_class
        self._config: Optional[T] = None

    @property
    def env_prefix(self) -> str:
        return f"{self.app_name.upper().replace('-', '_')}_"

    def load(self, defaults_path: Optional[Path] = None, overrides: Optional[Dict[str, Any]] = None) -> T:
        """Load configuration from all sources.

        Args:
            defaults_path: Optional explicit path to a defaults.toml file
            overrides: Values applied last (e.g. from command-line flags)

        Returns:
            Validated configuration object

        Raises:
            ConfigurationError: If a file cannot be parsed or validation fails
        """
        config_dict = self._load_defaults(defaults_path)

        for extra in (self._load_system_config(), self._load_user_config()):
            if extra:
                config_dict = self._deep_merge(config_dict, extra)

        config_dict = self._apply_env_overrides(config_dict)

        if overrides:
            config_dict = self._deep_merge(config_dict, overrides)

        if self.config_class is None:
            self._config = config_dict
            return self._config

        try:
            self._config = self.config_class(**config_dict)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}", app=self.app_name) from e
        return self._config

    def _read_toml(self, path: Path) -> Dict[str, Any]:
        try:
            return toml.load(path)
        except (OSError, toml.TomlDecodeError) as e:
            raise ConfigurationError(f"Cannot read config file: {e}", path=str(path)) from e

    def _load_defaults(self, defaults_path: Optional[Path] = None) -> Dict[str, Any]:
        """Load defaults shipped with the app (empty if none are found)."""
        if defaults_path is not None:
            if not defaults_path.exists():
                raise ConfigurationError("Config file not found", path=str(defaults_path))
            return self._read_toml(defaults_path)

        for path in (Path.cwd() / "config" / "defaults.toml",):
            if path.exists():
                logger.debug(f"Loading defaults: {{'path': {str(path)!r}}}")
                return self._read_toml(path)
        return {}

    def _load_system_config(self) -> Optional[Dict[str, Any]]:
        if os.name == "nt":
            system_path = (
                Path(os.environ.get("PROGRAMDATA", "C:\\ProgramData"))
                / self.app_name
                / "config.toml"
            )
        else:
            system_path = Path(f"/etc/{self.app_name}/config.toml")

        if system_path.exists():
            return self._read_toml(system_path)
        return None

    def _load_user_config(self) -> Optional[Dict[str, Any]]:
        user_config_path = Path(platformdirs.user_config_dir(appname=self.app_name, appauthor=False)) / "config.toml"
        if user_config_path.exists():
            logger.debug(f"Loading user config: {{'path': {str(user_config_path)!r}}}")
            return self._read_toml(user_config_path)
        return None

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        prefix = self.env_prefix
        for env_key, env_value in os.environ.items():
            if not env_key.startswith(prefix):
                continue
            key_path = [part for part in env_key[len(prefix):].lower().split("__") if part]
            if not key_path:
                continue

            current = config
            for part in key_path[:-1]:
                if not isinstance(current.get(part), dict):
                    current[part] = {}
                current = current[part]
            current[key_path[-1]] = self._convert_env_value(env_value)
        return config

    def _convert_env_value(self, value: str) -> Any:
        """Convert an environment string to bool, number, list or str."""
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False
        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass
        if "," in value:
            return [v.strip() for v in value.split(",")]
        return value

    @property
    def config(self) -> T:
        """Loaded configuration (loads on first access)."""
        if self._config is None:
            self._config = self.load()
        return self._config
