# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Pydantic models for pushes, storage locations and build jobs.
Provides validation, serialization, and type safety.
"""

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from .constants import (
    BUILDER_USER,
    DOCKER_BUILDER_CONTAINER,
    DOCKER_BUILDER_PREFIX,
    ENV_IMG_NAME,
    ENV_PUT_URL,
    RECEIVE_PACK,
    SHORT_SHA_LENGTH,
    SLUG_BUILDER_CONTAINER,
    SLUG_BUILDER_PREFIX,
    ZERO_SHA,
)
from .exceptions import ValidationError
from .validators import InputValidator


class Identity(BaseModel):
    """Identity granted to an authenticated pusher for the lifetime of a session."""
    model_config = ConfigDict(frozen=True)

    fingerprint: str
    extensions: dict[str, str] = Field(default_factory=lambda: {"user": BUILDER_USER})

    @property
    def user(self) -> str:
        return self.extensions.get("user", BUILDER_USER)


class RefUpdate(BaseModel):
    """One `old-sha new-sha ref-name` line emitted by the pre-receive hook."""
    model_config = ConfigDict(frozen=True)

    old_sha: str = Field(min_length=1)
    new_sha: str = Field(min_length=1)
    ref_name: str = Field(min_length=1)

    @field_validator("ref_name")
    @classmethod
    def validate_ref_name(cls, v):
        """Ensure the ref name is printable and bounded."""
        try:
            return InputValidator.validate_ref_name(v, "Ref name")
        except ValidationError as e:
            raise ValueError(str(e)) from e

    @property
    def is_delete(self) -> bool:
        """True when the push deletes the ref."""
        return self.new_sha == ZERO_SHA


class GitSHA(BaseModel):
    """A commit hash with its short representation."""
    model_config = ConfigDict(frozen=True)

    sha: str

    @field_validator("sha")
    @classmethod
    def validate_sha(cls, v):
        """Ensure the SHA is hexadecimal and long enough to shorten."""
        try:
            return InputValidator.validate_sha(v).lower()
        except ValidationError as e:
            raise ValueError(str(e)) from e

    @property
    def short(self) -> str:
        return self.sha[:SHORT_SHA_LENGTH]

    def __str__(self) -> str:
        return self.sha


class StorageLocations(BaseModel):
    """Object storage keys and URLs for one build."""
    model_config = ConfigDict(frozen=True)

    tar_key: str
    tar_url: str
    push_key: str
    push_url: str
    slug_key: str
    slug_url: str


class SecretVolume(BaseModel):
    """A secret mounted read-only into the build container."""
    model_config = ConfigDict(frozen=True)

    name: str
    secret_name: str
    mount_path: str
    read_only: bool = True


class BuildJobSpec(BaseModel):
    """
    Declarative description of one build job.

    Exactly one strategy is active per job. The spec is frozen once built
    and rendered to a Kubernetes Pod manifest for submission.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, max_length=253)
    namespace: str = Field(min_length=1)
    strategy: Literal["slug", "docker"]
    image: str = Field(min_length=1)
    image_pull_policy: str = "IfNotPresent"
    env: dict[str, str] = Field(default_factory=dict)
    volumes: list[SecretVolume] = Field(default_factory=list)
    labels: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_strategy(self):
        """Ensure the name and environment match a single build strategy."""
        if self.strategy == "slug":
            prefix, required = SLUG_BUILDER_PREFIX, ENV_PUT_URL
        else:
            prefix, required = DOCKER_BUILDER_PREFIX, ENV_IMG_NAME
        if not self.name.startswith(f"{prefix}-"):
            raise ValueError(f"{self.strategy} build job name must start with '{prefix}-', got {self.name}")
        if required not in self.env:
            raise ValueError(f"{self.strategy} build job requires the {required} environment entry")
        return self

    @property
    def container_name(self) -> str:
        """Container name for the active strategy, independent of the app name."""
        return SLUG_BUILDER_CONTAINER if self.strategy == "slug" else DOCKER_BUILDER_CONTAINER

    def to_manifest(self) -> dict[str, Any]:
        """
        Render the job as a Kubernetes Pod manifest.

        Returns:
            Plain dictionary suitable for the Kubernetes API or YAML output
        """
        container: dict[str, Any] = {
            "name": self.container_name,
            "image": self.image,
            "imagePullPolicy": self.image_pull_policy,
            "env": [{"name": key, "value": value} for key, value in self.env.items()],
        }
        pod_spec: dict[str, Any] = {
            "restartPolicy": "Never",
            "containers": [container],
        }

        if self.volumes:
            container["volumeMounts"] = [
                {"name": vol.name, "mountPath": vol.mount_path, "readOnly": vol.read_only}
                for vol in self.volumes
            ]
            pod_spec["volumes"] = [
                {"name": vol.name, "secret": {"secretName": vol.secret_name}}
                for vol in self.volumes
            ]

        return {
            "apiVersion": "v1",
            "kind": "Pod",
            "metadata": {
                "name": self.name,
                "namespace": self.namespace,
                "labels": dict(self.labels),
            },
            "spec": pod_spec,
        }


class JobHandle(BaseModel):
    """Reference to a submitted job."""
    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str


class JobStatus(BaseModel):
    """Last known status of a build job."""
    name: str
    phase: Literal["Pending", "Running", "Succeeded", "Failed", "Timeout", "Unknown"]
    exit_code: int | None = None
    reason: str | None = None
    message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.phase == "Succeeded" and not self.exit_code

    @property
    def terminal(self) -> bool:
        return self.phase in ("Succeeded", "Failed", "Timeout")

    @property
    def failed(self) -> bool:
        return self.terminal and not self.succeeded

    def describe(self) -> str:
        """Human-readable one-line summary."""
        parts = [f"phase={self.phase}"]
        if self.exit_code is not None:
            parts.append(f"exit_code={self.exit_code}")
        if self.reason:
            parts.append(f"reason={self.reason}")
        if self.message:
            parts.append(f"message={self.message}")
        return ", ".join(parts)


class HookContext(BaseModel):
    """
    Parameters handed from the pre-receive hook to the build trigger.

    The hook exports these as environment variables before running
    `gitbuilder git-receive`; ref lines arrive separately on stdin.
    """
    git_home: str = Field(min_length=1)
    repository: str = Field(min_length=1)
    ssh_original_command: str = ""
    ssh_connection: str = ""
    username: str = BUILDER_USER
    fingerprint: str = ""
    pod_namespace: str = ""

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> "HookContext":
        """
        Build the context from hook environment variables.

        Raises:
            ValidationError: If required variables are missing
        """
        try:
            return cls(
                git_home=environ.get("GIT_HOME", ""),
                repository=environ.get("REPOSITORY", ""),
                ssh_original_command=environ.get("SSH_ORIGINAL_COMMAND", ""),
                ssh_connection=environ.get("SSH_CONNECTION", ""),
                username=environ.get("USERNAME") or BUILDER_USER,
                fingerprint=environ.get("FINGERPRINT", ""),
                pod_namespace=environ.get("POD_NAMESPACE", ""),
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid hook environment (GIT_HOME and REPOSITORY are required): {e}") from e

    @property
    def is_receive(self) -> bool:
        """True for a full receive-pack push."""
        return self.ssh_original_command.startswith(RECEIVE_PACK)

    @property
    def app_name(self) -> str:
        return InputValidator.clean_repo_name(self.repository)


class AppConfig(BaseModel):
    """Per-application build configuration."""
    env: dict[str, str] = Field(default_factory=dict)
    buildpack_url: str | None = None

    @field_validator("env", mode="before")
    @classmethod
    def stringify_env(cls, v):
        """Coerce scalar values (numbers, booleans from YAML) to strings."""
        if v is None:
            return {}
        if not isinstance(v, Mapping):
            raise ValueError("env must be a mapping of names to values")
        return {str(key): "" if value is None else str(value) for key, value in v.items()}
