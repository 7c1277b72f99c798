# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
SSH key loading.
Parses host identity keys and the authorized pusher key with paramiko.
"""

import base64
import binascii
import logging
from collections.abc import Iterable
from pathlib import Path

import paramiko
from paramiko.pkey import UnknownKeyType

from .exceptions import AuthenticationError, ConfigurationError

_KEY_ERRORS = (paramiko.SSHException, UnknownKeyType, ValueError, binascii.Error)


def load_host_keys(
    key_types: Iterable[str],
    pattern: str,
    logger: logging.Logger | None = None,
) -> list[paramiko.PKey]:
    """
    Load host keys for each key type.

    A key type whose file is missing or cannot be parsed is skipped with a
    warning.

    Args:
        key_types: Key types to look for, e.g. rsa, ecdsa, ed25519
        pattern: Path pattern with '{}' replaced by the key type
        logger: Optional logger instance

    Returns:
        Parsed host keys

    Raises:
        ConfigurationError: If no host key could be loaded
    """
    logger = logger or logging.getLogger(__name__)
    host_keys = []

    for key_type in key_types:
        path = Path(pattern.format(key_type))
        if not path.is_file():
            logger.warning(f"Host key {path} not found (skipping)")
            continue
        try:
            host_key = paramiko.PKey.from_path(path)
        except (*_KEY_ERRORS, OSError) as e:
            logger.warning(f"Failed to parse host key {path} (skipping): {e}")
            continue
        logger.info(f"Parsed host key {path}")
        host_keys.append(host_key)

    if not host_keys:
        raise ConfigurationError(f"No usable host keys found for types {list(key_types)} at {pattern}")

    return host_keys


def parse_authorized_key(line: str) -> paramiko.PKey:
    """
    Parse a public key in authorized_keys format ("<type> <base64> [comment]").

    Raises:
        AuthenticationError: If the line is not a supported public key
    """
    fields = line.strip().split()
    if len(fields) < 2:
        raise AuthenticationError("Authorized key must have a key type and key data")

    key_type, key_data = fields[0], fields[1]
    try:
        return paramiko.PKey.from_type_string(key_type, base64.b64decode(key_data, validate=True))
    except _KEY_ERRORS as e:
        raise AuthenticationError(f"Cannot parse authorized key of type {key_type}: {e}") from e


def load_authorized_key(path: Path, logger: logging.Logger | None = None) -> paramiko.PKey | None:
    """
    Load the single authorized pusher key.

    An unreadable or unparsable file means nobody can authenticate, so the
    error is logged and None is returned.

    Args:
        path: Path to the authorized key file
        logger: Optional logger instance

    Returns:
        Public key, or None if unusable
    """
    logger = logger or logging.getLogger(__name__)

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Cannot read authorized key {path}: {e}")
        return None

    for line in content.splitlines():
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        try:
            return parse_authorized_key(line)
        except AuthenticationError as e:
            logger.error(f"Invalid authorized key in {path}: {e}")
            return None

    logger.error(f"No authorized key found in {path}")
    return None


def fingerprint(key: paramiko.PKey) -> str:
    """
    Colon-separated MD5 fingerprint of a public key.

    Example: 43:51:43:a1:b5:fc:8b:b7:0a:3a:a9:b1:0f:66:73:a8
    """
    return ":".join(f"{byte:02x}" for byte in key.get_fingerprint())
