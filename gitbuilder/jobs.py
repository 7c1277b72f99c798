# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Build job composition.
Turns a push into a slug build or a docker build job specification.
"""

import hashlib
import logging
import secrets
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .constants import (
    DOCKER_BUILDER_PREFIX,
    ENV_BUILDPACK_URL,
    ENV_DEBUG,
    ENV_IMG_NAME,
    ENV_PUT_URL,
    ENV_TAR_URL,
    JOB_SUFFIX_LENGTH,
    JOB_SUFFIX_RANDOM_BYTES,
    REGISTRY_SECRET_MOUNT_PATH,
    REGISTRY_SECRET_VOLUME,
    SLUG_BUILDER_PREFIX,
)
from .models import BuildJobSpec, SecretVolume

if TYPE_CHECKING:
    from .config import Config

JOB_LABELS = {"heritage": "gitbuilder"}


def job_suffix(app_name: str, short_sha: str) -> str:
    """
    Generate a unique suffix for a job name.

    Scheduler job names are unique keys, and the same commit can be pushed
    twice in quick succession (force push, retry), so the suffix hashes the
    app, the SHA, a UTC timestamp and secure random bytes.

    Returns:
        Lowercase hex suffix of JOB_SUFFIX_LENGTH characters
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    nonce = secrets.token_hex(JOB_SUFFIX_RANDOM_BYTES)
    digest = hashlib.sha256(f"{app_name}:{short_sha}:{timestamp}:{nonce}".encode()).hexdigest()
    return digest[:JOB_SUFFIX_LENGTH]


def slug_builder_job_name(app_name: str, short_sha: str) -> str:
    return f"{SLUG_BUILDER_PREFIX}-{app_name}-{short_sha}-{job_suffix(app_name, short_sha)}"


def docker_builder_job_name(app_name: str, short_sha: str) -> str:
    return f"{DOCKER_BUILDER_PREFIX}-{app_name}-{short_sha}-{job_suffix(app_name, short_sha)}"


def image_name(app_name: str, short_sha: str, registry: str | None = None) -> str:
    """Name of the image a docker build pushes."""
    name = f"{app_name}:git-{short_sha}"
    return f"{registry.rstrip('/')}/{name}" if registry else name


class BuildJobComposer:
    """Builds complete job specifications for the two build strategies."""

    def __init__(self, config: "Config", logger: logging.Logger | None = None):
        """
        Initialize the composer.

        Args:
            config: Configuration object (images, pull policy, debug, registry auth)
            logger: Optional logger instance
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def slug_builder_job(
        self,
        name: str,
        namespace: str,
        env: Mapping[str, str],
        tar_url: str,
        put_url: str,
        buildpack_url: str | None = None,
        debug: bool | None = None,
        with_auth: bool | None = None,
    ) -> BuildJobSpec:
        """
        Compose a slug build job.

        Args:
            name: Job name, see slug_builder_job_name
            namespace: Namespace to run the job in
            env: Application environment, passed through verbatim
            tar_url: URL of the source tarball
            put_url: URL the slug is uploaded to
            buildpack_url: Optional buildpack override
            debug: Enable builder debug output (defaults to config)
            with_auth: Mount registry credentials (defaults to config)

        Returns:
            BuildJobSpec for a slug build
        """
        job_env = self._base_env(env, tar_url, debug)
        job_env[ENV_PUT_URL] = put_url
        if buildpack_url:
            job_env[ENV_BUILDPACK_URL] = buildpack_url

        return self._spec(name, namespace, "slug", self.config.SLUGBUILDER_IMAGE, job_env, with_auth)

    def docker_builder_job(
        self,
        name: str,
        namespace: str,
        env: Mapping[str, str],
        tar_url: str,
        img_name: str,
        debug: bool | None = None,
        with_auth: bool | None = None,
    ) -> BuildJobSpec:
        """
        Compose a docker build job.

        Args:
            name: Job name, see docker_builder_job_name
            namespace: Namespace to run the job in
            env: Application environment, passed through verbatim
            tar_url: URL of the source tarball
            img_name: Image the build pushes
            debug: Enable builder debug output (defaults to config)
            with_auth: Mount registry credentials (defaults to config)

        Returns:
            BuildJobSpec for a docker build
        """
        job_env = self._base_env(env, tar_url, debug)
        job_env[ENV_IMG_NAME] = img_name

        return self._spec(name, namespace, "docker", self.config.DOCKERBUILDER_IMAGE, job_env, with_auth)

    def _base_env(self, env: Mapping[str, str], tar_url: str, debug: bool | None) -> dict[str, str]:
        """Application environment with the fixed entries applied on top."""
        job_env = {str(key): str(value) for key, value in env.items()}
        job_env[ENV_TAR_URL] = tar_url
        if debug is None:
            debug = self.config.DEBUG_MODE
        if debug:
            job_env[ENV_DEBUG] = "1"
        return job_env

    def _spec(
        self,
        name: str,
        namespace: str,
        strategy: str,
        image: str,
        env: dict[str, str],
        with_auth: bool | None,
    ) -> BuildJobSpec:
        if with_auth is None:
            with_auth = self.config.registry_auth

        volumes = []
        if with_auth:
            # Credentials travel as a mounted secret, never as plain env
            volumes.append(SecretVolume(
                name=REGISTRY_SECRET_VOLUME,
                secret_name=self.config.REGISTRY_SECRET or REGISTRY_SECRET_VOLUME,
                mount_path=REGISTRY_SECRET_MOUNT_PATH,
            ))

        spec = BuildJobSpec(
            name=name,
            namespace=namespace,
            strategy=strategy,
            image=image,
            image_pull_policy=self.config.IMAGE_PULL_POLICY,
            env=env,
            volumes=volumes,
            labels={**JOB_LABELS, "strategy": strategy},
        )
        self.logger.debug(f"Composed {strategy} build job {name} in {namespace}")
        return spec
