# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Git-specific half of the SSH server.
Materializes bare repositories, installs the pre-receive hook and streams
the pack protocol between an SSH channel and a git-shell subprocess.
"""

import io
import logging
import os
import shlex
import subprocess
import threading
from collections.abc import Callable
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any

from git import GitCommandError, Repo

from .constants import BUILDER_USER, PIPE_CHUNK_SIZE, PRE_RECEIVE_HOOK_MODE
from .exceptions import GitShellError, ProtocolError, RepositoryIOError, ValidationError
from .validators import InputValidator

if TYPE_CHECKING:
    from .config import Config

# Rendered into <repo>.git/hooks/pre-receive on every push. The only
# substitution is the git home; everything else comes from the environment
# git-shell inherits from the receiver.
PRE_RECEIVE_HOOK_TEMPLATE = r"""#!/bin/bash
set -o pipefail

strip_remote_prefix() {{
    stdbuf -i0 -o0 -e0 sed "s/^/"$'\e[1G'"/"
}}

GIT_HOME={git_home} \
SSH_CONNECTION="$SSH_CONNECTION" \
SSH_ORIGINAL_COMMAND="$SSH_ORIGINAL_COMMAND" \
REPOSITORY="$RECEIVE_REPO" \
USERNAME="$RECEIVE_USER" \
FINGERPRINT="$RECEIVE_FINGERPRINT" \
POD_NAMESPACE="$POD_NAMESPACE" \
gitbuilder git-receive | strip_remote_prefix
"""

DEFAULT_SSH_CONNECTION = "0 0 0 0"


class KeyedLock:
    """Lazily created lock per key, so unrelated repositories never wait on each other."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def __call__(self, key: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(key, threading.Lock())


# Shared by every receiver in the process
_create_locks = KeyedLock()


def render_pre_receive_hook(git_home: Path) -> str:
    """Render the pre-receive hook for a git home."""
    return PRE_RECEIVE_HOOK_TEMPLATE.format(git_home=shlex.quote(str(git_home)))


class GitReceiver:
    """Receives pushes into bare repositories under the git home."""

    def __init__(self, config: "Config", logger: logging.Logger | None = None):
        """
        Initialize the receiver.

        Args:
            config: Configuration object
            logger: Optional logger instance
        """
        self.config = config
        self.git_home = config.GIT_HOME
        self.logger = logger or logging.getLogger(__name__)

    def receive(
        self,
        operation: str,
        repo_name: str,
        channel: Any,
        ssh_connection: str = DEFAULT_SSH_CONNECTION,
        fingerprint: str = "",
        user: str = BUILDER_USER,
    ) -> None:
        """
        Receive a push for one repository.

        The channel needs `recv`, `sendall` and `sendall_stderr`, as a
        paramiko Channel provides.

        Args:
            operation: Git operation, e.g. git-receive-pack
            repo_name: Repository path as requested, e.g. '/demo.git'
            channel: SSH channel carrying the pack protocol
            ssh_connection: Transport identifier exported as SSH_CONNECTION
            fingerprint: Fingerprint of the authenticated key
            user: Account the key was granted, exported as RECEIVE_USER

        Raises:
            ProtocolError: If the repository name is illegal
            RepositoryIOError: If the repository or hook cannot be written
            GitShellError: If the git shell fails
        """
        self.logger.debug(
            f"receiving git repo name: {repo_name}, operation: {operation}, "
            f"fingerprint: {fingerprint}, user: {user}"
        )

        try:
            repo = InputValidator.clean_repo_name(repo_name) + ".git"
            repo_path = InputValidator.validate_path_within_directory(self.git_home / repo, self.git_home)
        except ValidationError as e:
            self.logger.warning(f"Illegal repo name: {e}")
            channel.sendall_stderr(f"No repo given: {e}\n".encode())
            raise ProtocolError(f"Illegal repo name {repo_name!r}: {e}") from e

        self.logger.debug(f"creating repo directory {repo_path}")
        try:
            self.create_repo(repo_path)
        except RepositoryIOError as e:
            self.logger.warning(f"Did not create new repo ({e})")
            raise

        self.logger.debug(f"writing pre-receive hook under {repo_path}")
        self.create_pre_receive_hook(repo_path)

        cmd = [self.config.GIT_SHELL, "-c", f"{operation} '{repo}'"]
        env = dict(os.environ)
        env.update({
            "RECEIVE_USER": user,
            "RECEIVE_REPO": repo,
            "RECEIVE_FINGERPRINT": fingerprint,
            "SSH_ORIGINAL_COMMAND": f"{operation} '{repo}'",
            "SSH_CONNECTION": ssh_connection,
            "POD_NAMESPACE": self.config.POD_NAMESPACE,
        })
        self.logger.info(" ".join(cmd))
        self.logger.debug(f"Working Dir: {self.git_home}")

        self._run_git_shell(cmd, env, channel)
        self.logger.info("Deploy complete.")

    def create_repo(self, repo_path: Path) -> bool:
        """
        Create a bare repository if it is not present already.

        The check-and-create sequence holds the lock for this path only.

        Args:
            repo_path: Path of the bare repository

        Returns:
            True if the repository was created, False if it already existed

        Raises:
            RepositoryIOError: If the path is not a directory or git init fails
        """
        with _create_locks(str(repo_path)):
            if repo_path.is_dir():
                self.logger.info(f"Directory {repo_path} already exists.")
                return False
            if repo_path.exists():
                raise RepositoryIOError(f"Expected directory, found file at {repo_path}.")

            self.logger.info(f"Creating new directory at {repo_path}")
            try:
                repo_path.mkdir(mode=0o755, parents=True)
            except OSError as e:
                raise RepositoryIOError(f"Failed to create repository {repo_path}: {e}") from e

            try:
                Repo.init(repo_path, bare=True)
            except (GitCommandError, OSError) as e:
                raise RepositoryIOError(f"git init failed for {repo_path}: {e}") from e

            return True

    def create_pre_receive_hook(self, repo_path: Path) -> Path:
        """
        Write the pre-receive hook into a repository.

        The hook is rewritten on every push so template changes take effect.

        Returns:
            Path of the written hook

        Raises:
            RepositoryIOError: If the hook cannot be written
        """
        hook_path = repo_path / "hooks" / "pre-receive"
        self.logger.debug(f"Writing pre-receive hook to {hook_path}")
        try:
            hook_path.parent.mkdir(parents=True, exist_ok=True)
            hook_path.write_text(render_pre_receive_hook(self.git_home), encoding="utf-8")
            hook_path.chmod(PRE_RECEIVE_HOOK_MODE)
        except OSError as e:
            raise RepositoryIOError(f"Cannot write pre-receive hook to {hook_path} ({e})") from e
        return hook_path

    def _run_git_shell(self, cmd: list[str], env: dict[str, str], channel: Any) -> None:
        """
        Run the git shell with the channel wired to its standard streams.

        Raises:
            GitShellError: If the subprocess fails to start, to receive input or exits non-zero
        """
        errbuf = io.BytesIO()

        try:
            proc = subprocess.Popen(
                cmd,
                cwd=self.git_home,
                env=env,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise GitShellError(f"Failed to start git shell {cmd[0]}: {e}") from e

        pumps = [
            threading.Thread(target=self._pump, args=(proc.stdout, channel.sendall), daemon=True),
            threading.Thread(target=self._pump, args=(proc.stderr, channel.sendall_stderr, errbuf), daemon=True),
        ]
        for pump in pumps:
            pump.start()

        copy_error: Exception | None = None
        try:
            self._copy_input(channel, proc.stdin)
        except OSError as e:
            copy_error = e
        finally:
            try:
                proc.stdin.close()
            except OSError:
                pass  # Broken pipe on close is reported through the exit status

        returncode = proc.wait()
        for pump in pumps:
            pump.join()

        errors = errbuf.getvalue().decode("utf-8", errors="replace")
        if returncode != 0:
            message = f"Failed to run git pre-receive hook: {errors.strip()} (exit status {returncode})"
            self.logger.error(message)
            raise GitShellError(message)
        if copy_error is not None:
            message = f"Failed to write git objects into the git pre-receive hook ({copy_error}) {errors.strip()}"
            self.logger.warning(message)
            raise GitShellError(message) from copy_error
        if errors:
            self.logger.warning(f"Unreported error: {errors.strip()}")

    def _copy_input(self, channel: Any, stdin: IO[bytes]) -> int:
        """Copy the channel into the subprocess until the client closes its side."""
        copied = 0
        while True:
            chunk = channel.recv(PIPE_CHUNK_SIZE)
            if not chunk:
                return copied
            stdin.write(chunk)
            stdin.flush()
            copied += len(chunk)

    def _pump(self, source: IO[bytes], sink: Callable[[bytes], Any], buffer: io.BytesIO | None = None) -> None:
        """
        Copy a subprocess stream to the channel and an optional buffer.

        If the channel goes away the stream keeps draining so the
        subprocess never blocks on a full pipe.
        """
        sink_failed = False
        try:
            while chunk := source.read1(PIPE_CHUNK_SIZE):
                if buffer is not None:
                    buffer.write(chunk)
                if sink_failed:
                    continue
                try:
                    sink(chunk)
                except OSError as e:
                    sink_failed = True
                    self.logger.warning(f"Channel closed while relaying git output: {e}")
        finally:
            source.close()
