"""
Configuration manager for loading and validating YAML configuration files.
"""

import yaml
import logging
from pathlib import Path
from typing import Optional, Dict, Any

from pydantic import ValidationError

from ..errors import ConfigurationError
from .models import AppConfig, StrategyConfig


logger = logging.getLogger(__name__)


class ConfigurationManager:
    """Manages loading and validation of YAML configuration files."""

    DEFAULT_CONFIG_FILENAME = "config.yaml"

    def load_config(self, config_path: Optional[str] = None, strict: bool = False) -> AppConfig:
        """
        Load and validate configuration from YAML file.

        Args:
            config_path: Path to configuration file. If None, uses default.
            strict: Raise ConfigurationError instead of falling back to defaults.

        Returns:
            Validated AppConfig instance.
        """
        if config_path is None:
            config_path = self.get_default_config_path()

        try:
            config_dict = self._load_yaml_file(config_path)
            return self.validate_config(config_dict, strict=True)
        except (OSError, yaml.YAMLError, ConfigurationError) as e:
            if strict:
                raise ConfigurationError(f"Failed to load config from {config_path}: {e}") from e
            logger.warning(f"Failed to load config from {config_path}: {e}")
            logger.info("Using default configuration")
            return AppConfig()

    def validate_config(self, config: Dict[str, Any], strict: bool = False) -> AppConfig:
        """
        Validate configuration dictionary using Pydantic.

        Args:
            config: Configuration dictionary to validate.
            strict: Raise ConfigurationError instead of falling back to defaults.

        Returns:
            Validated AppConfig instance.
        """
        try:
            return AppConfig(**config)
        except (ValidationError, TypeError) as e:
            if strict:
                raise ConfigurationError(f"Configuration validation failed: {e}") from e
            logger.warning(f"Configuration validation failed: {e}")
            logger.info("Using default configuration")
            return AppConfig()

    def validate_strategy(self, strategy: Dict[str, Any]) -> StrategyConfig:
        """
        Validate a single strategy definition.

        Raises:
            ConfigurationError: If the definition is invalid.
        """
        try:
            return StrategyConfig(**strategy)
        except (ValidationError, TypeError) as e:
            raise ConfigurationError(f"Invalid strategy definition: {e}") from e

    def get_default_config_path(self) -> str:
        """Get the default configuration file path."""
        return self.DEFAULT_CONFIG_FILENAME

    def _load_yaml_file(self, file_path: str) -> Dict[str, Any]:
        """Load YAML file and return as dictionary."""
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r', encoding='utf-8') as file:
            data = yaml.safe_load(file) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Top level of {file_path} must be a mapping")
        return data
