"""Configuration management for keyrotate."""

import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import yaml
from jinja2 import Environment, FileSystemLoader

from keyrotate.utils.errors import ConfigurationError

from .validator import ConfigValidationError, ConfigValidator

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "keyrotate.yml"
CONFIG_ENV_VAR = "KEYROTATE_CONFIG"
EXPOSURE_ENV_VAR = "KEYROTATE_ALLOW_KEYS_EXPOSURE"
TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Effective store settings."""

    data_root: str = "~/.local/share/keyrotate"
    secrets_file: str = "secrets.json"
    allow_keys_exposure: bool = False
    lock_timeout: float = 10.0
    default_user: str = "default-user"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigManager:
    """Locates, loads and writes the keyrotate configuration file."""

    def __init__(self, path: Optional[str] = None):
        """
        Initialize configuration manager.

        Args:
            path: Optional explicit configuration file path
        """
        self.path = path
        self.validator = ConfigValidator()
        self._settings_cache: Dict[Optional[str], Settings] = {}

        templates_dir = os.path.join(os.path.dirname(__file__), "..", "templates")
        self.jinja_env = Environment(loader=FileSystemLoader(templates_dir), trim_blocks=True, lstrip_blocks=True)

    def get_config_path(self) -> Optional[str]:
        """
        Get path to the configuration file in effect.

        Lookup order: explicit path, ``KEYROTATE_CONFIG``, ``./keyrotate.yml``.

        Returns:
            Optional[str]: Path, or None if no configuration file is used
        """
        if self.path:
            return self.path

        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            return env_path

        local_path = os.path.join(os.getcwd(), CONFIG_FILENAME)
        if os.path.exists(local_path):
            return local_path

        return None

    def load_settings(self) -> Settings:
        """
        Load settings from the configuration file and environment.

        Returns:
            Settings: Effective settings (defaults when no file is used)

        Raises:
            ConfigurationError: If an explicitly requested file is missing
            ConfigValidationError: If the file is invalid
        """
        config_path = self.get_config_path()

        if config_path in self._settings_cache:
            return self._apply_environment(self._settings_cache[config_path])

        if config_path is None:
            settings = Settings()
        else:
            settings = self._load_file(config_path)

        self._settings_cache[config_path] = settings
        return self._apply_environment(settings)

    def _load_file(self, config_path: str) -> Settings:
        if not os.path.exists(config_path):
            raise ConfigurationError(
                f"Configuration file not found: {config_path}",
                suggestions=["Run 'keyrotate config init' to create one"],
            )

        try:
            with open(config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError([f"Invalid YAML in {config_path}: {e}"]) from e

        errors = self.validator.validate_config(config)
        if errors:
            raise ConfigValidationError(errors)

        logger.debug(f"Loaded configuration from {config_path}")
        return Settings(**config["keyrotate"])

    def _apply_environment(self, settings: Settings) -> Settings:
        exposure = os.environ.get(EXPOSURE_ENV_VAR)
        if exposure is None:
            return settings
        values = settings.to_dict()
        values["allow_keys_exposure"] = exposure.strip().lower() in TRUE_VALUES
        return Settings(**values)

    def render_default_config(self, **overrides: Any) -> str:
        """
        Render the default configuration file.

        Args:
            **overrides: Values replacing the defaults of ``Settings``

        Returns:
            str: YAML text
        """
        template_vars = Settings().to_dict()
        template_vars.update(overrides)
        template = self.jinja_env.get_template(f"{CONFIG_FILENAME}.j2")
        return template.render(**template_vars)

    def initialize_config(self, config_path: Optional[str] = None, force: bool = False, **overrides: Any) -> str:
        """
        Write a default configuration file.

        Args:
            config_path: Destination (defaults to ./keyrotate.yml)
            force: Overwrite an existing file
            **overrides: Values replacing the defaults

        Returns:
            str: Path to created configuration file
        """
        config_path = config_path or self.path or os.path.join(os.getcwd(), CONFIG_FILENAME)

        if os.path.exists(config_path) and not force:
            raise ConfigurationError(
                f"Configuration file already exists: {config_path}",
                suggestions=["Use --force to overwrite it"],
            )

        content = self.render_default_config(**overrides)
        errors = self.validator.validate_config(yaml.safe_load(content))
        if errors:
            raise ConfigValidationError(errors)

        directory = os.path.dirname(os.path.abspath(config_path))
        os.makedirs(directory, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(content)

        self.clear_cache()
        return config_path

    def clear_cache(self) -> None:
        """Clear configuration cache."""
        self._settings_cache.clear()
