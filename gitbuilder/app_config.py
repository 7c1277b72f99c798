# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Per-application build configuration.

Each application may have `<APP_CONFIG_DIR>/<app>.yaml`:

    env:
      LANG: en_US.UTF-8
    buildpack_url: https://github.com/heroku/heroku-buildpack-python
"""

import logging
from pathlib import Path

import yaml  # type: ignore[import-untyped]  # PyYAML doesn't have complete type stubs
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigurationError
from .models import AppConfig


class AppConfigLoader:
    """Reads application build configuration from YAML files."""

    def __init__(self, config_dir: Path | None, logger: logging.Logger | None = None):
        """
        Initialize the loader.

        Args:
            config_dir: Directory holding <app>.yaml files, or None for empty configs
            logger: Optional logger instance
        """
        self.config_dir = config_dir
        self.logger = logger or logging.getLogger(__name__)

    def load(self, app_name: str) -> AppConfig:
        """
        Load the configuration for an application.

        A missing directory or file yields an empty configuration.

        Raises:
            ConfigurationError: If the file exists but is not valid
        """
        if self.config_dir is None:
            return AppConfig()

        path = self.config_dir / f"{app_name}.yaml"
        if not path.is_file():
            self.logger.debug(f"No build configuration for {app_name} at {path}")
            return AppConfig()

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read build configuration {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Build configuration {path} must be a mapping")

        try:
            app_config = AppConfig(**data)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid build configuration {path}: {e}") from e

        self.logger.debug(f"Loaded build configuration for {app_name}: {sorted(app_config.env)}")
        return app_config
