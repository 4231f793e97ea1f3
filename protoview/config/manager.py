#!/usr/bin/env python3
"""
Configuration manager for ProtoView
Handles loading and accessing configuration from various sources.
"""
import copy
import os
import yaml
import json
import logging
from typing import Dict, Any, Optional, List

from protoview.exceptions import ConfigurationError
from .schema import ConfigSchema
from .defaults import DEFAULT_CONFIG


class ConfigManager:
    """Layered configuration: defaults, config file, local override, environment"""

    ENV_PREFIX = "PROTOVIEW_"

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to a YAML or JSON configuration file (optional)

        Raises:
            ConfigurationError: If config_path is given but cannot be parsed
        """
        self.logger = logging.getLogger("protoview.config")
        self.config_path = config_path
        self.config: Dict[str, Any] = copy.deepcopy(DEFAULT_CONFIG)
        self.validation_errors: List[str] = []

        if config_path:
            if not os.path.exists(config_path):
                raise ConfigurationError(f"Configuration file not found: {config_path}",
                                         {"config_path": config_path})
            self._load_from_file(config_path)

            local_config_path = self._get_local_config_path(config_path)
            if os.path.exists(local_config_path):
                self._load_from_file(local_config_path)
                self.logger.info(f"Merged local configuration from {local_config_path}")

        self._load_from_env()
        self._validate_config()

    def _get_local_config_path(self, config_path: str) -> str:
        """Local override lives next to the main file as <name>.local.<ext>"""
        config_dir = os.path.dirname(config_path)
        name, ext = os.path.splitext(os.path.basename(config_path))
        local_path = os.path.join(config_dir, f"{name}.local{ext}")
        self.logger.debug(f"Looking for local config at: {local_path}")
        return local_path

    def _load_from_file(self, config_path: str) -> None:
        """Merge a YAML or JSON file into the current configuration

        Args:
            config_path: Path to configuration file

        Raises:
            ConfigurationError: If the file cannot be read or parsed
        """
        try:
            with open(config_path, 'r') as f:
                if config_path.endswith('.json'):
                    file_config = json.load(f)
                else:
                    file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Error loading config file {config_path}: {str(e)}",
                                     {"config_path": config_path}) from e

        if not isinstance(file_config, dict):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping",
                                     {"config_path": config_path})

        self._deep_update(self.config, file_config)
        self.logger.info(f"Loaded configuration from {config_path}")

    def _load_from_env(self) -> None:
        """Override config with environment variables

        Variables are prefixed with PROTOVIEW_ and use a double underscore
        for nesting, e.g. PROTOVIEW_DATABASE__HOST for database.host.
        """
        for key, value in os.environ.items():
            if not key.startswith(self.ENV_PREFIX):
                continue
            config_key = key[len(self.ENV_PREFIX):].lower()
            if "__" in config_key:
                self._set_nested_value(self.config, config_key.split("__"), value)
            else:
                self.config[config_key] = self._convert_value(value)

        self.logger.debug("Applied environment variable overrides")

    def _set_nested_value(self, config: Dict[str, Any],
                          key_parts: List[str], value: str) -> None:
        current = config
        for part in key_parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[key_parts[-1]] = self._convert_value(value)

    def _convert_value(self, value: str) -> Any:
        """Convert an environment string to bool, int or float where it parses"""
        if value.lower() in ('true', 'yes'):
            return True
        if value.lower() in ('false', 'no'):
            return False
        try:
            return int(value)
        except ValueError:
            try:
                return float(value)
            except ValueError:
                return value

    def _deep_update(self, target: Dict[str, Any], source: Dict[str, Any]) -> None:
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._deep_update(target[key], value)
            else:
                target[key] = value

    def _validate_config(self) -> None:
        """Validate the configuration against the schema; errors are logged, not raised"""
        self.validation_errors = ConfigSchema.validate(self.config)

        if self.validation_errors:
            for error in self.validation_errors:
                self.logger.error(f"Configuration error: {error}")
            self.logger.warning("Using configuration with validation errors")
        else:
            self.logger.debug("Configuration validated successfully")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value using dot notation

        Args:
            key: Configuration key, e.g. 'cleanup.dry_run'
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        current: Any = self.config
        for part in key.split('.'):
            if not isinstance(current, dict) or part not in current:
                return default
            current = current[part]
        return current

    def get_section(self, section: str) -> Dict[str, Any]:
        """Get a whole configuration section (empty dict if absent)"""
        return dict(self.config.get(section, {}) or {})

    def get_db_config(self) -> Dict[str, Any]:
        """Connection keyword arguments for psycopg2.connect"""
        return self.get_section('database')

    def get_storage_config(self) -> Dict[str, Any]:
        """Schema and table names used by the repositories"""
        return self.get_section('storage')
