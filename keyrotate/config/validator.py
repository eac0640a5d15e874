"""Configuration validation for keyrotate."""

from typing import Any, Dict, List

import jsonschema
import yaml

from keyrotate.utils.errors import ConfigurationError, create_error_suggestions, format_validation_errors

from .schemas import CONFIG_SCHEMA


class ConfigValidationError(ConfigurationError):
    """Raised when configuration validation fails."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(
            "Configuration validation failed",
            details=format_validation_errors(errors),
            suggestions=create_error_suggestions("configuration_invalid"),
        )


class ConfigValidator:
    """Validates keyrotate configuration files."""

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """
        Validate keyrotate configuration.

        Args:
            config: Configuration dictionary to validate

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        errors = []

        validator = jsonschema.Draft7Validator(CONFIG_SCHEMA)
        for error in sorted(validator.iter_errors(config), key=lambda e: list(e.path)):
            location = ".".join(str(part) for part in error.path)
            prefix = f"{location}: " if location else ""
            errors.append(f"Schema validation failed: {prefix}{error.message}")

        if errors:
            return errors

        settings = config["keyrotate"]
        if "data_root" in settings and not settings["data_root"].strip():
            errors.append("data_root cannot be blank")

        if settings.get("secrets_file", "").endswith(".lock"):
            errors.append(f"secrets_file cannot end with .lock: {settings['secrets_file']}")

        return errors

    def validate_config_file(self, file_path: str) -> List[str]:
        """
        Validate configuration file.

        Args:
            file_path: Path to configuration file

        Returns:
            List[str]: List of validation errors (empty if valid)
        """
        try:
            with open(file_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except FileNotFoundError:
            return [f"Configuration file not found: {file_path}"]
        except yaml.YAMLError as e:
            return [f"YAML parsing error: {e}"]
        except OSError as e:
            return [f"Error reading configuration file: {e}"]

        if config is None:
            return ["Configuration file is empty"]

        return self.validate_config(config)
