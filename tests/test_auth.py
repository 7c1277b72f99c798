# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Tests for public key authentication.
"""

import logging

import paramiko
import pytest

from gitbuilder.auth import AuthGate, compare_keys
from gitbuilder.keys import fingerprint


@pytest.fixture(scope="module")
def authorized_key():
    return paramiko.RSAKey.generate(1024)


@pytest.fixture(scope="module")
def other_key():
    return paramiko.RSAKey.generate(1024)


def flip_bit(key, offset=-10):
    """Return the key with one bit of its public blob flipped."""
    blob = bytearray(key.asbytes())
    blob[offset] ^= 0x01
    return paramiko.RSAKey(data=bytes(blob))


class TestCompareKeys:
    """Tests for key comparison."""

    def test_same_key(self, authorized_key):
        """Test a key matches itself."""
        copy = paramiko.RSAKey(data=authorized_key.asbytes())
        assert compare_keys(copy, authorized_key)

    def test_different_key(self, authorized_key, other_key):
        """Test two different keys do not match."""
        assert not compare_keys(other_key, authorized_key)

    def test_single_bit_mutation(self, authorized_key):
        """Test flipping one bit of the key blob breaks the match."""
        assert not compare_keys(flip_bit(authorized_key), authorized_key)

    def test_algorithm_mismatch(self, authorized_key):
        """Test keys of different algorithms never match."""
        ecdsa = paramiko.ECDSAKey.generate()
        assert not compare_keys(ecdsa, authorized_key)


class TestAuthGate:
    """Tests for the AuthGate."""

    def test_accepts_authorized_key(self, authorized_key):
        """Test the authorized key is granted an identity with its fingerprint."""
        gate = AuthGate(authorized_key)
        presented = paramiko.RSAKey(data=authorized_key.asbytes())

        identity = gate.check(presented)

        assert identity is not None
        assert identity.fingerprint == fingerprint(authorized_key)
        assert identity.user == "builder"
        assert gate.fingerprint == fingerprint(authorized_key)

    def test_rejects_other_key(self, authorized_key, other_key, caplog):
        """Test any other key is refused."""
        caplog.set_level(logging.INFO)
        gate = AuthGate(authorized_key)

        assert gate.check(other_key) is None
        assert "Rejecting ssh-rsa key" in caplog.text

    def test_rejects_mutated_key(self, authorized_key):
        """Test a key differing by one bit is refused."""
        gate = AuthGate(authorized_key)
        assert gate.check(flip_bit(authorized_key)) is None

    def test_rejects_everyone_without_authorized_key(self, authorized_key, caplog):
        """Test every key is refused when no authorized key is configured."""
        gate = AuthGate(None)

        assert gate.check(authorized_key) is None
        assert gate.fingerprint == ""
        assert "no authorized key configured" in caplog.text
