# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Object storage locations and client.

Keys live under `home/`. The push and slug keys carry the short SHA. The
source tarball key is one per application, so builds of one application are
serialized by the orchestrator's build lock.
"""

import logging
from abc import ABC, abstractmethod

import requests

from .constants import STORAGE_KEY_ROOT, STORAGE_URL_PREFIX
from .exceptions import StorageError
from .models import StorageLocations


def storage_url(endpoint: str, key: str) -> str:
    """Join a key to the storage endpoint root."""
    return f"{endpoint.rstrip('/')}/{STORAGE_URL_PREFIX}/{key}"


def locate(app_name: str, short_sha: str, endpoint: str, slug_name: str | None = None) -> StorageLocations:
    """
    Derive the storage keys and URLs for one build.

    Args:
        app_name: Application name
        short_sha: Short commit SHA
        endpoint: Storage endpoint root, e.g. http://builder:3000
        slug_name: Name the source tarball is stored under (defaults to app_name)

    Returns:
        StorageLocations for the tarball, the push location and the slug
    """
    tar_key = f"{STORAGE_KEY_ROOT}/{slug_name or app_name}/tar"
    # The runtime fetches the slug from the push location
    push_key = f"{STORAGE_KEY_ROOT}/{app_name}:git-{short_sha}/push"
    slug_key = f"{STORAGE_KEY_ROOT}/{app_name}:git-{short_sha}/slug"

    return StorageLocations(
        tar_key=tar_key,
        tar_url=storage_url(endpoint, tar_key),
        push_key=push_key,
        push_url=storage_url(endpoint, push_key),
        slug_key=slug_key,
        slug_url=storage_url(endpoint, slug_key),
    )


class ObjectStorage(ABC):
    """Object storage used to hand the source tarball to the build job."""

    @abstractmethod
    def put(self, key: str, data: bytes) -> None:
        """Store data under key."""

    @abstractmethod
    def url_for(self, key: str) -> str:
        """URL a build job can read the key from."""


class HttpObjectStorage(ObjectStorage):
    """Object storage reached over plain HTTP PUT/GET, with context manager support."""

    def __init__(self, endpoint: str, timeout: float = 60.0, logger: logging.Logger | None = None):
        """
        Initialize the storage client.

        Args:
            endpoint: Storage endpoint root
            timeout: Per-request timeout in seconds
            logger: Optional logger instance
        """
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self.session = requests.Session()

    def url_for(self, key: str) -> str:
        return storage_url(self.endpoint, key)

    def put(self, key: str, data: bytes) -> None:
        """
        Upload data to key.

        Raises:
            StorageError: If the upload fails
        """
        url = self.url_for(key)
        self.logger.debug(f"Uploading {len(data)} bytes to {url}")
        try:
            response = self.session.put(
                url,
                data=data,
                headers={"Content-Type": "application/octet-stream"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise StorageError(f"Failed to upload {key}: {e}") from e

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpObjectStorage":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
