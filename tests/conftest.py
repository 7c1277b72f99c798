# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Shared fixtures and fakes for the builder tests.
"""

import threading
from unittest.mock import Mock

import pytest

from gitbuilder.models import JobHandle, JobStatus
from gitbuilder.scheduler import ClusterScheduler
from gitbuilder.storage import ObjectStorage, storage_url


class FakeChannel:
    """In-memory stand-in for a paramiko Channel."""

    def __init__(self, chunks=(), chanid=0):
        self._chunks = list(chunks)
        self._id = chanid
        self.stdout = bytearray()
        self.stderr = bytearray()
        self.exit_status = None
        self.closed = False
        self._lock = threading.Lock()

    def get_id(self):
        return self._id

    def recv(self, size):
        with self._lock:
            if not self._chunks:
                return b""
            return self._chunks.pop(0)

    def sendall(self, data):
        self.stdout.extend(data)

    def sendall_stderr(self, data):
        self.stderr.extend(data)

    def send_exit_status(self, status):
        self.exit_status = status

    def close(self):
        self.closed = True


class FakeStorage(ObjectStorage):
    """Records uploads instead of sending them."""

    def __init__(self, endpoint="http://storage:3000"):
        self.endpoint = endpoint
        self.objects = {}

    def put(self, key, data):
        self.objects[key] = data

    def url_for(self, key):
        return storage_url(self.endpoint, key)


class FakeScheduler(ClusterScheduler):
    """Records submitted jobs and reports a fixed outcome for each."""

    def __init__(self, phase="Succeeded", exit_code=None, logs=""):
        self.phase = phase
        self.exit_code = exit_code
        self.logs = logs
        self.submitted = []
        self.watched = []

    def submit(self, spec):
        self.submitted.append(spec)
        return JobHandle(name=spec.name, namespace=spec.namespace)

    def watch(self, handle, timeout):
        self.watched.append((handle, timeout))
        return JobStatus(name=handle.name, phase=self.phase, exit_code=self.exit_code)

    def fetch_logs(self, handle, tail_lines=None):
        return self.logs


@pytest.fixture
def mock_config(tmp_path):
    """Configuration object with test defaults."""
    config = Mock()
    config.GIT_HOME = tmp_path / "git"
    config.GIT_SHELL = "git-shell"
    config.DEBUG_MODE = False
    config.STORAGE_ENDPOINT = "http://storage:3000"
    config.POD_NAMESPACE = "deis"
    config.SLUGBUILDER_IMAGE = "deis/slugbuilder:latest"
    config.DOCKERBUILDER_IMAGE = "deis/dockerbuilder:latest"
    config.IMAGE_PULL_POLICY = "IfNotPresent"
    config.REGISTRY = None
    config.REGISTRY_SECRET = None
    config.registry_auth = False
    config.APP_CONFIG_DIR = None
    config.BUILD_TIMEOUT = 60
    config.LOG_TAIL_LINES = 5
    config.SSH_HOST = "127.0.0.1"
    config.SSH_PORT = 2223
    config.GIT_HOME.mkdir()
    return config
