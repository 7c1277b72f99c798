# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Constants used throughout the builder.
Centralizes fixed names and default values for maintainability.
"""

# SSH server defaults
DEFAULT_SSH_HOST = "0.0.0.0"
DEFAULT_SSH_PORT = 2223
DEFAULT_HOST_KEY_TYPES = ("rsa", "ecdsa", "ed25519")
DEFAULT_HOST_KEY_PATTERN = "/etc/ssh/ssh_host_{}_key"
DEFAULT_AUTHORIZED_KEY_PATH = "/var/run/secrets/api/auth/builder-key"
SSH_ACCEPT_BACKLOG = 100
SSH_CHANNEL_ACCEPT_TIMEOUT = 30  # Seconds to wait for a channel after the handshake

# Identity granted to every authenticated pusher
BUILDER_USER = "builder"

# Git defaults
DEFAULT_GIT_HOME = "/home/git"
DEFAULT_GIT_SHELL = "git-shell"
RECEIVE_PACK = "git-receive-pack"
PRE_RECEIVE_HOOK_MODE = 0o755
ZERO_SHA = "0" * 40
SHORT_SHA_LENGTH = 8
PIPE_CHUNK_SIZE = 32 * 1024

# Object storage
DEFAULT_STORAGE_PORT = 3000
STORAGE_KEY_ROOT = "home"
STORAGE_URL_PREFIX = "git"

# Build jobs
SLUG_BUILDER_PREFIX = "slugbuild"
DOCKER_BUILDER_PREFIX = "dockerbuild"
SLUG_BUILDER_CONTAINER = "slugbuilder"
DOCKER_BUILDER_CONTAINER = "dockerbuilder"
DEFAULT_NAMESPACE = "default"
DEFAULT_SLUGBUILDER_IMAGE = "deis/slugbuilder:latest"
DEFAULT_DOCKERBUILDER_IMAGE = "deis/dockerbuilder:latest"
DEFAULT_IMAGE_PULL_POLICY = "IfNotPresent"
IMAGE_PULL_POLICIES = ("Always", "IfNotPresent", "Never")
DEFAULT_BUILD_TIMEOUT = 1800  # Seconds a build pod may take to reach a terminal state
DEFAULT_LOG_TAIL_LINES = 50
JOB_SUFFIX_RANDOM_BYTES = 4  # Random bytes mixed into the job name hash
JOB_SUFFIX_LENGTH = 8  # Hex characters of the hash kept in the job name
REGISTRY_SECRET_VOLUME = "registry-secret"
REGISTRY_SECRET_MOUNT_PATH = "/var/run/secrets/registry"

# Job environment keys
ENV_TAR_URL = "TAR_URL"
ENV_PUT_URL = "put_url"
ENV_IMG_NAME = "IMG_NAME"
ENV_BUILDPACK_URL = "BUILDPACK_URL"
ENV_DEBUG = "DEBUG"

# Validation limits
MAX_APP_NAME_LENGTH = 63  # Kubernetes label/name segment limit
MAX_REF_NAME_LENGTH = 256
