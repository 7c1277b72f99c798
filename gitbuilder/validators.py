# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Input validation and sanitization utilities.
Provides security checks for repository names, SHAs and configuration inputs.
"""

import re
from pathlib import Path

from .constants import MAX_APP_NAME_LENGTH, MAX_REF_NAME_LENGTH
from .exceptions import ValidationError


class InputValidator:
    """Validates and sanitizes inputs to prevent traversal and injection attacks."""

    # SHA: hexadecimal (40 or 64 chars for SHA-1 or SHA-256, short forms allowed)
    SHA_PATTERN = re.compile(r"^[a-f0-9]{8,64}$", re.IGNORECASE)

    # Application name: DNS-1123 label, since it ends up in pod names
    APP_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

    # Ref name: anything git accepts minus whitespace and control characters
    REF_NAME_PATTERN = re.compile(r"^[^\s\x00-\x1f\x7f~^:?*\[\\]+$")

    @staticmethod
    def clean_repo_name(name: str) -> str:
        """
        Clean a repository name for a git-shell operation.

        Single and double quotes are removed, and leading/trailing slashes and trailing
        ".git" suffixes are stripped until the name is stable, so cleaning
        an already clean name returns it unchanged.

        Args:
            name: Repository path as requested by the client

        Returns:
            Cleaned repository name without the .git suffix

        Raises:
            ValidationError: If the name is empty or tries to change directory
        """
        if not name:
            raise ValidationError("Empty repo name.")

        if ".." in name:
            raise ValidationError("Cannot change directory in file name.")

        cleaned = name.replace("'", "").replace('"', "")
        while True:
            stripped = cleaned.strip("/")
            if stripped.endswith(".git"):
                stripped = stripped[: -len(".git")]
            if stripped == cleaned:
                break
            cleaned = stripped

        if not cleaned:
            raise ValidationError(f"Repo name {name!r} is empty once cleaned.")

        return cleaned

    @staticmethod
    def validate_sha(sha: str, field_name: str = "SHA") -> str:
        """
        Validate a git SHA.

        Args:
            sha: SHA string to validate
            field_name: Name of field for error messages

        Returns:
            Validated SHA string

        Raises:
            ValidationError: If SHA is invalid
        """
        if not sha:
            raise ValidationError(f"{field_name} cannot be empty")

        if not InputValidator.SHA_PATTERN.match(sha):
            raise ValidationError(
                f"{field_name} contains invalid characters. "
                f"Expected hexadecimal string (8-64 chars), got: {sha[:20]}..."
            )

        return sha

    @staticmethod
    def validate_ref_name(ref_name: str, field_name: str = "ref") -> str:
        """
        Validate a git reference name.

        Raises:
            ValidationError: If reference name is invalid
        """
        if not ref_name:
            raise ValidationError(f"{field_name} cannot be empty")

        if not InputValidator.REF_NAME_PATTERN.match(ref_name):
            raise ValidationError(f"{field_name} contains invalid characters: {ref_name[:50]!r}")

        if len(ref_name) > MAX_REF_NAME_LENGTH:
            raise ValidationError(f"{field_name} is too long (max {MAX_REF_NAME_LENGTH} chars)")

        return ref_name

    @staticmethod
    def validate_app_name(app_name: str) -> str:
        """
        Validate an application name derived from a repository name.

        Args:
            app_name: Application name to validate

        Returns:
            Validated application name

        Raises:
            ValidationError: If the name cannot be used in storage keys and pod names
        """
        if not app_name:
            raise ValidationError("Application name cannot be empty")

        if len(app_name) > MAX_APP_NAME_LENGTH:
            raise ValidationError(f"Application name too long (max {MAX_APP_NAME_LENGTH} chars): {app_name}")

        if not InputValidator.APP_NAME_PATTERN.match(app_name):
            raise ValidationError(
                f"Application name must be lowercase alphanumeric with dashes. Got: {app_name}"
            )

        return app_name

    @staticmethod
    def validate_path_within_directory(path: Path, base_dir: Path) -> Path:
        """
        Validate that a path is within a base directory.

        Resolves both paths and ensures the target is within base_dir.

        Args:
            path: Path to validate
            base_dir: Base directory that path must be within

        Returns:
            Resolved path if valid

        Raises:
            ValidationError: If path is outside base_dir
        """
        try:
            resolved_path = path.resolve()
            resolved_base = base_dir.resolve()

            try:
                resolved_path.relative_to(resolved_base)
            except ValueError:
                raise ValidationError(
                    f"Path {path} is outside allowed directory {base_dir}"
                )

            if resolved_path == resolved_base:
                raise ValidationError(f"Path {path} must be below {base_dir}")

            return resolved_path

        except (OSError, RuntimeError) as e:
            raise ValidationError(f"Failed to validate path: {e}")

    @staticmethod
    def validate_integer(value: str, field_name: str = "value",
                        min_val: int | None = None,
                        max_val: int | None = None) -> int:
        """
        Validate and parse an integer value.

        Args:
            value: String value to parse
            field_name: Name of field for error messages
            min_val: Minimum allowed value
            max_val: Maximum allowed value

        Returns:
            Parsed integer

        Raises:
            ValidationError: If value is not a valid integer or out of range
        """
        try:
            int_val = int(value)
        except (ValueError, TypeError):
            raise ValidationError(f"{field_name} must be an integer, got: {value}")

        if min_val is not None and int_val < min_val:
            raise ValidationError(
                f"{field_name} must be >= {min_val}, got: {int_val}"
            )

        if max_val is not None and int_val > max_val:
            raise ValidationError(
                f"{field_name} must be <= {max_val}, got: {int_val}"
            )

        return int_val
