"""Configuration loader for the PR attribution system."""

import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import ValidationError as PydanticValidationError

from src.models.config import AppConfig

log = structlog.stdlib.get_logger()


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""

    pass


class ConfigLoader:
    """Loads and validates application configuration from YAML files and environment variables."""

    def __init__(self) -> None:
        self.env_var_pattern = re.compile(r"\$\{([^}]+)\}")

    def load_config(self, config_path: Optional[str] = None) -> AppConfig:
        """Load configuration from YAML file with environment variable overrides.

        Args:
            config_path: Path to the configuration YAML file. If None, uses
                config/<APP_ENV>.yaml, falling back to config/default.yaml

        Returns:
            AppConfig: Validated application configuration

        Raises:
            ConfigurationError: If the file is missing, unparsable, or invalid
        """
        if config_path is None:
            config_path = self._get_default_config_path()

        log.info("loading_configuration", config_path=config_path)

        config_dict = self._load_yaml_file(config_path)
        config_dict = self._substitute_env_vars(config_dict)

        try:
            app_config = AppConfig(**config_dict)
        except PydanticValidationError as e:
            log.error("configuration_validation_failed", error=str(e))
            raise ConfigurationError(f"Configuration validation failed: {e}") from e

        log.info("configuration_loaded_successfully")
        return app_config

    def _get_default_config_path(self) -> str:
        env = os.getenv("APP_ENV", "default")
        config_dir = Path(__file__).parent.parent.parent / "config"
        config_file = config_dir / f"{env}.yaml"

        if not config_file.exists():
            config_file = config_dir / "default.yaml"

        if not config_file.exists():
            raise ConfigurationError(
                f"Configuration file not found: {config_file}. "
                f"Please create config/default.yaml or set APP_ENV to a valid environment."
            )

        return str(config_file)

    def _load_yaml_file(self, config_path: str) -> Dict[str, Any]:
        """Load YAML configuration file.

        Raises:
            ConfigurationError: If file cannot be read or parsed
        """
        try:
            with open(config_path, "r") as f:
                config_dict = yaml.safe_load(f)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file not found: {config_path}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML file {config_path}: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration file {config_path}: {e}") from e

        if config_dict is None:
            raise ConfigurationError(f"Configuration file is empty: {config_path}")
        if not isinstance(config_dict, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

        log.debug("yaml_file_loaded", config_path=config_path)
        return config_dict

    def _substitute_env_vars(self, config: Any) -> Any:
        """Recursively substitute ${VAR_NAME} references in configuration values."""
        if isinstance(config, dict):
            return {key: self._substitute_env_vars(value) for key, value in config.items()}
        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            return self._substitute_env_var_in_string(config)
        else:
            return config

    def _substitute_env_var_in_string(self, value: str) -> str:
        """Substitute environment variables in a string.

        ``${NAME:-fallback}`` uses ``fallback`` when NAME is unset.

        Raises:
            ConfigurationError: If a referenced environment variable without a fallback is not set
        """
        for reference in self.env_var_pattern.findall(value):
            var_name, has_fallback, fallback = reference.partition(":-")
            env_value = os.getenv(var_name)
            if env_value is None:
                if not has_fallback:
                    raise ConfigurationError(
                        f"Required environment variable not set: {var_name}. "
                        f"Please set {var_name} in your environment or .env file."
                    )
                env_value = fallback
            value = value.replace(f"${{{reference}}}", env_value)

        return value

    def validate_config(self, config: AppConfig) -> list[str]:
        """Return warnings for settings that are valid but probably unintended.

        Pydantic already enforces ranges; this covers cross-field concerns.
        """
        warnings = []

        if not config.github.token:
            warnings.append(
                "github.token is not set; unauthenticated requests are limited to 60 per hour"
            )

        # Worst case for a single page: every retry waits its full linear delay
        retry_budget = sum(
            config.sync.retry_base_delay * n for n in range(1, config.sync.max_retries + 1)
        )
        if retry_budget >= config.sync.timeout_seconds:
            warnings.append(
                f"sync.timeout_seconds ({config.sync.timeout_seconds}) is shorter than the "
                f"retry backoff for a single page ({retry_budget}s)"
            )

        if config.storage.database_url in ("sqlite://", "sqlite:///:memory:"):
            warnings.append("storage.database_url is in-memory; synced data will not persist")

        if warnings:
            log.warning("configuration_validation_warnings", warnings=warnings)

        return warnings
