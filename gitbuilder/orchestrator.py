# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Build trigger run from the pre-receive hook.
Reads ref updates, stores the pushed source and supervises one build per update.
"""

import io
import logging
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from filelock import FileLock
from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo
from git.exc import BadName
from pydantic import ValidationError as PydanticValidationError

from .app_config import AppConfigLoader
from .exceptions import RepositoryIOError, ValidationError
from .formatters import YamlFormatter
from .jobs import BuildJobComposer, docker_builder_job_name, image_name, slug_builder_job_name
from .models import BuildJobSpec, GitSHA, HookContext, JobStatus
from .refs import read_ref_updates
from .storage import locate
from .supervisor import BuildSupervisor
from .validators import InputValidator

if TYPE_CHECKING:
    from .config import Config
    from .scheduler import ClusterScheduler
    from .storage import ObjectStorage


class Orchestrator:
    """Runs the build pipeline for every ref update of one push."""

    def __init__(
        self,
        config: "Config",
        context: HookContext,
        storage: "ObjectStorage",
        scheduler: "ClusterScheduler",
        app_configs: AppConfigLoader | None = None,
        output: TextIO | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Configuration object
            context: Parameters handed over by the pre-receive hook
            storage: Object storage client for the source tarball
            scheduler: Cluster scheduler client
            app_configs: Per-application configuration loader
            output: Stream relayed to the pusher's terminal (defaults to stdout)
            logger: Optional logger instance
        """
        self.config = config
        self.context = context
        self.storage = storage
        self.logger = logger or logging.getLogger(__name__)
        self.output = output or sys.stdout
        self.app_configs = app_configs or AppConfigLoader(config.APP_CONFIG_DIR, logger=self.logger)
        self.composer = BuildJobComposer(config, logger=self.logger)
        self.supervisor = BuildSupervisor(scheduler, config, logger=self.logger)
        self._repo: Repo | None = None

    def run(self, lines: Iterable[str]) -> list[JobStatus]:
        """
        Process ref update lines in order.

        The first failure stops processing and propagates, which rejects
        the push.

        Args:
            lines: Lines from the hook's standard input

        Returns:
            Status of each build that ran
        """
        results = []
        for update in read_ref_updates(lines):
            self.logger.debug(f"read [{update.old_sha},{update.new_sha},{update.ref_name}]")

            if not self.context.is_receive:
                self.logger.debug(f"Not a receive-pack push ({self.context.ssh_original_command!r}), skipping build")
                continue
            if update.is_delete:
                self.logger.info(f"Ref {update.ref_name} deleted, nothing to build")
                continue

            results.append(self.build(update.new_sha))
        return results

    def build(self, sha: str) -> JobStatus:
        """
        Build one pushed commit.

        Raises:
            ValidationError: If the SHA or application name is invalid
            RepositoryIOError: If the commit cannot be read from the repository
            StorageError: If the source tarball cannot be stored
            BuildSubmissionError: If the scheduler rejects the job
            BuildRuntimeError: If the build fails
        """
        try:
            git_sha = GitSHA(sha=sha)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid commit SHA {sha!r}: {e}") from e

        app_name = InputValidator.validate_app_name(self.context.app_name)

        # The tarball key is per app; the lock spans upload through build completion.
        lock = FileLock(str(self.build_lock_path(app_name)))
        self.logger.debug(f"Waiting for build lock {lock.lock_file}")
        with lock:
            return self._build_locked(app_name, git_sha)

    def build_lock_path(self, app_name: str) -> Path:
        """Lock file serializing builds of one application across hook processes."""
        return Path(self.context.git_home) / f".{app_name}.build.lock"

    def _build_locked(self, app_name: str, git_sha: GitSHA) -> JobStatus:
        """Store the source and supervise the build while holding the app's build lock."""
        locations = locate(app_name, git_sha.short, self.config.STORAGE_ENDPOINT)

        self._say("-----> Storing source")
        self._upload_tarball(git_sha, locations.tar_key)

        app_config = self.app_configs.load(app_name)
        namespace = self.context.pod_namespace or self.config.POD_NAMESPACE

        spec: BuildJobSpec
        if self._has_dockerfile(git_sha):
            self._say("-----> Dockerfile found, starting docker build")
            spec = self.composer.docker_builder_job(
                docker_builder_job_name(app_name, git_sha.short),
                namespace,
                app_config.env,
                locations.tar_url,
                image_name(app_name, git_sha.short, self.config.REGISTRY),
            )
        else:
            self._say("-----> Starting slug build")
            spec = self.composer.slug_builder_job(
                slug_builder_job_name(app_name, git_sha.short),
                namespace,
                app_config.env,
                locations.tar_url,
                locations.slug_url,
                buildpack_url=app_config.buildpack_url,
            )

        self.logger.debug(f"Build job manifest:\n{YamlFormatter().format(spec)}")
        status = self.supervisor.run(spec)
        self._say(f"-----> Build complete: {spec.name}")
        return status

    @property
    def repo(self) -> Repo:
        """
        The pushed bare repository, opened lazily.

        Raises:
            RepositoryIOError: If the repository cannot be opened
        """
        if self._repo is None:
            git_home = Path(self.context.git_home)
            try:
                repo_path = InputValidator.validate_path_within_directory(
                    git_home / self.context.repository, git_home
                )
                self._repo = Repo(repo_path)
            except (ValidationError, InvalidGitRepositoryError, NoSuchPathError) as e:
                raise RepositoryIOError(f"Cannot open repository {self.context.repository}: {e}") from e
        return self._repo

    def _upload_tarball(self, git_sha: GitSHA, key: str) -> None:
        """Archive the pushed commit and store it where the build job fetches it."""
        buf = io.BytesIO()
        try:
            self.repo.archive(buf, treeish=git_sha.sha, format="tar.gz")
        except (GitCommandError, BadName, ValueError) as e:
            raise RepositoryIOError(f"Cannot archive {git_sha.short}: {e}") from e

        self.logger.debug(f"Archived {git_sha.short} ({buf.tell()} bytes)")
        self.storage.put(key, buf.getvalue())

    def _has_dockerfile(self, git_sha: GitSHA) -> bool:
        """Whether the commit has a Dockerfile at the top of its tree."""
        try:
            tree = self.repo.commit(git_sha.sha).tree
        except (GitCommandError, BadName, ValueError) as e:
            raise RepositoryIOError(f"Cannot read commit {git_sha.short}: {e}") from e

        return "Dockerfile" in tree

    def _say(self, message: str) -> None:
        """Write a progress line to the pusher's terminal."""
        print(message, file=self.output, flush=True)
