# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Custom exceptions for the builder.
"""


class BuilderError(Exception):
    """Base exception for builder errors."""


class ConfigurationError(BuilderError):
    """Raised when configuration is invalid or missing."""


class ValidationError(BuilderError):
    """Raised when data validation fails."""


class AuthenticationError(BuilderError):
    """Raised when a pusher cannot be authenticated or host keys are unusable."""


class ProtocolError(BuilderError):
    """Raised when a client sends an unsupported command or malformed data."""


class RefParseError(ProtocolError):
    """Raised when a ref update line is malformed."""


class RepositoryIOError(BuilderError):
    """Raised when the bare repository or its hook cannot be created."""


class GitShellError(BuilderError):
    """Raised when the git shell subprocess fails to start, transfer or exit cleanly."""


class StorageError(BuilderError):
    """Raised when object storage operations fail."""


class BuildSubmissionError(BuilderError):
    """Raised when the cluster scheduler rejects a build job."""


class BuildRuntimeError(BuilderError):
    """Raised when a build job reaches a failed terminal state."""
