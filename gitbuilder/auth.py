# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Public key authentication for pushers.
"""

import hmac
import logging

import paramiko

from .constants import BUILDER_USER
from .keys import fingerprint
from .models import Identity


def compare_keys(a: paramiko.PKey, b: paramiko.PKey) -> bool:
    """
    Compare two public keys.

    The key algorithms must match before the marshaled key bytes are
    compared in constant time.
    """
    if a.get_name() != b.get_name():
        return False
    return hmac.compare_digest(a.asbytes(), b.asbytes())


class AuthGate:
    """Grants a session only to the configured authorized key."""

    def __init__(self, authorized_key: paramiko.PKey | None, logger: logging.Logger | None = None):
        """
        Initialize the gate.

        Args:
            authorized_key: The single authorized key, or None to reject everyone
            logger: Optional logger instance
        """
        self.authorized_key = authorized_key
        self.logger = logger or logging.getLogger(__name__)
        self._fingerprint = fingerprint(authorized_key) if authorized_key else ""

    @property
    def fingerprint(self) -> str:
        """Fingerprint of the authorized key, empty when none is configured."""
        return self._fingerprint

    def check(self, key: paramiko.PKey) -> Identity | None:
        """
        Decide whether a presented key may open a session.

        Args:
            key: Public key offered by the client

        Returns:
            Identity for the session, or None if the key is not authorized
        """
        if self.authorized_key is None:
            self.logger.warning("Rejecting key: no authorized key configured")
            return None

        if not compare_keys(key, self.authorized_key):
            self.logger.info(f"Rejecting {key.get_name()} key {fingerprint(key)}")
            return None

        self.logger.debug(f"Accepted key {self._fingerprint}")
        return Identity(fingerprint=self._fingerprint, extensions={"user": BUILDER_USER})
