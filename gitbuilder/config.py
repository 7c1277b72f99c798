# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Configuration module for the builder.
Reads environment variables once, applies defaults and validates them.
The resulting Config is passed explicitly to every component.
"""

import logging
import os
from pathlib import Path

from .constants import (
    DEFAULT_AUTHORIZED_KEY_PATH,
    DEFAULT_BUILD_TIMEOUT,
    DEFAULT_DOCKERBUILDER_IMAGE,
    DEFAULT_GIT_HOME,
    DEFAULT_GIT_SHELL,
    DEFAULT_HOST_KEY_PATTERN,
    DEFAULT_HOST_KEY_TYPES,
    DEFAULT_IMAGE_PULL_POLICY,
    DEFAULT_LOG_TAIL_LINES,
    DEFAULT_NAMESPACE,
    DEFAULT_SLUGBUILDER_IMAGE,
    DEFAULT_SSH_HOST,
    DEFAULT_SSH_PORT,
    DEFAULT_STORAGE_PORT,
    IMAGE_PULL_POLICIES,
)
from .exceptions import ConfigurationError, ValidationError
from .validators import InputValidator


def _env_flag(name: str, default: str = "false") -> bool:
    """Parse a boolean environment variable."""
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


class Config:
    """Builder configuration loaded from the process environment."""

    # Type hints for optional attributes
    REGISTRY: str | None
    REGISTRY_SECRET: str | None
    APP_CONFIG_DIR: Path | None

    def __init__(self):
        """Initialize configuration from environment."""
        self._load_ssh_vars()
        self._load_git_vars()
        self._load_build_vars()
        self._validate()

    def _load_ssh_vars(self) -> None:
        """Load SSH server settings."""
        self.SSH_HOST = os.environ.get("BUILDER_SSH_HOST_IP", DEFAULT_SSH_HOST)

        port_str = os.environ.get("BUILDER_SSH_HOST_PORT", str(DEFAULT_SSH_PORT))
        try:
            self.SSH_PORT = InputValidator.validate_integer(
                port_str, "BUILDER_SSH_HOST_PORT", min_val=1, max_val=65535
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid BUILDER_SSH_HOST_PORT: {e}")

        types_str = os.environ.get("BUILDER_HOST_KEY_TYPES", ",".join(DEFAULT_HOST_KEY_TYPES))
        self.HOST_KEY_TYPES: list[str] = [
            key_type.strip().lower()
            for key_type in types_str.split(",")
            if key_type.strip()
        ]

        self.HOST_KEY_PATTERN = os.environ.get("BUILDER_HOST_KEY_PATTERN", DEFAULT_HOST_KEY_PATTERN)
        self.AUTHORIZED_KEY_PATH = Path(
            os.environ.get("BUILDER_AUTHORIZED_KEY_PATH", DEFAULT_AUTHORIZED_KEY_PATH)
        )

    def _load_git_vars(self) -> None:
        """Load git home and git shell settings."""
        # The pre-receive hook exports GIT_HOME for the build trigger
        git_home = os.environ.get("BUILDER_GIT_HOME") or os.environ.get("GIT_HOME") or DEFAULT_GIT_HOME
        if "\x00" in git_home or "\n" in git_home:
            raise ConfigurationError("Invalid git home: contains null bytes or newlines")
        self.GIT_HOME = Path(git_home)
        self.GIT_SHELL = os.environ.get("BUILDER_GIT_SHELL", DEFAULT_GIT_SHELL)

    def _load_build_vars(self) -> None:
        """Load storage, scheduler and build job settings."""
        self.DEBUG_MODE = _env_flag("BUILDER_DEBUG")

        endpoint = os.environ.get("BUILDER_STORAGE_ENDPOINT")
        if not endpoint:
            service_host = os.environ.get("DEIS_BUILDER_SERVICE_HOST", "localhost")
            endpoint = f"http://{service_host}:{DEFAULT_STORAGE_PORT}"
        self.STORAGE_ENDPOINT = endpoint.rstrip("/")

        self.POD_NAMESPACE = os.environ.get("POD_NAMESPACE") or DEFAULT_NAMESPACE
        self.SLUGBUILDER_IMAGE = os.environ.get("BUILDER_SLUGBUILDER_IMAGE", DEFAULT_SLUGBUILDER_IMAGE)
        self.DOCKERBUILDER_IMAGE = os.environ.get("BUILDER_DOCKERBUILDER_IMAGE", DEFAULT_DOCKERBUILDER_IMAGE)
        self.IMAGE_PULL_POLICY = os.environ.get("BUILDER_IMAGE_PULL_POLICY", DEFAULT_IMAGE_PULL_POLICY)

        self.REGISTRY = os.environ.get("BUILDER_REGISTRY") or None
        self.REGISTRY_SECRET = os.environ.get("BUILDER_REGISTRY_SECRET") or None

        app_config_dir = os.environ.get("BUILDER_APP_CONFIG_DIR")
        self.APP_CONFIG_DIR = Path(app_config_dir) if app_config_dir else None

        timeout_str = os.environ.get("BUILDER_BUILD_TIMEOUT", str(DEFAULT_BUILD_TIMEOUT))
        try:
            self.BUILD_TIMEOUT = InputValidator.validate_integer(
                timeout_str, "BUILDER_BUILD_TIMEOUT", min_val=1
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid BUILDER_BUILD_TIMEOUT: {e}")

        tail_str = os.environ.get("BUILDER_LOG_TAIL_LINES", str(DEFAULT_LOG_TAIL_LINES))
        try:
            self.LOG_TAIL_LINES = InputValidator.validate_integer(
                tail_str, "BUILDER_LOG_TAIL_LINES", min_val=1, max_val=10000
            )
        except ValidationError as e:
            logging.warning(f"Invalid BUILDER_LOG_TAIL_LINES '{tail_str}': {e}, using default {DEFAULT_LOG_TAIL_LINES}")
            self.LOG_TAIL_LINES = DEFAULT_LOG_TAIL_LINES

    @property
    def registry_auth(self) -> bool:
        """Whether builds must mount private registry credentials."""
        return self.REGISTRY_SECRET is not None

    def _validate(self) -> None:
        """Validate configuration consistency."""
        if not self.HOST_KEY_TYPES:
            raise ConfigurationError("BUILDER_HOST_KEY_TYPES must name at least one key type")

        if "{}" not in self.HOST_KEY_PATTERN:
            raise ConfigurationError(
                f"BUILDER_HOST_KEY_PATTERN must contain '{{}}' for the key type: {self.HOST_KEY_PATTERN}"
            )

        if not self.GIT_HOME.is_absolute():
            raise ConfigurationError(f"Git home must be an absolute path: {self.GIT_HOME}")

        if self.IMAGE_PULL_POLICY not in IMAGE_PULL_POLICIES:
            raise ConfigurationError(
                f"Invalid BUILDER_IMAGE_PULL_POLICY: {self.IMAGE_PULL_POLICY} "
                f"(expected one of {', '.join(IMAGE_PULL_POLICIES)})"
            )

        if not self.STORAGE_ENDPOINT.startswith(("http://", "https://")):
            raise ConfigurationError(f"Storage endpoint must be an http(s) URL: {self.STORAGE_ENDPOINT}")


# Global config instance
_config_instance: Config | None = None


def get_config() -> Config:
    """Get or create the global configuration instance."""
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance
