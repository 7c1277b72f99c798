# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Build supervision.
Submits a composed job and blocks until it reaches a terminal state.
"""

import logging
from typing import TYPE_CHECKING

from .exceptions import BuildRuntimeError
from .models import BuildJobSpec, JobStatus

if TYPE_CHECKING:
    from .config import Config
    from .scheduler import ClusterScheduler


class BuildSupervisor:
    """
    Runs one build job to completion.

    Jobs are never retried or cleaned up here: a retry is a new push with a
    new job name, and pods outlive a dropped SSH session.
    """

    def __init__(self, scheduler: "ClusterScheduler", config: "Config", logger: logging.Logger | None = None):
        """
        Initialize the supervisor.

        Args:
            scheduler: Cluster scheduler client
            config: Configuration object (build timeout, log tail size)
            logger: Optional logger instance
        """
        self.scheduler = scheduler
        self.timeout = config.BUILD_TIMEOUT
        self.tail_lines = config.LOG_TAIL_LINES
        self.logger = logger or logging.getLogger(__name__)

    def run(self, spec: BuildJobSpec) -> JobStatus:
        """
        Submit a job and wait for it.

        Args:
            spec: Job specification

        Returns:
            Terminal status of a successful job

        Raises:
            BuildSubmissionError: If the scheduler rejects the job
            BuildRuntimeError: If the job fails, cannot be pulled or times out
        """
        handle = self.scheduler.submit(spec)
        self.logger.info(f"Waiting for build job {handle.name} (timeout {self.timeout}s)")

        status = self.scheduler.watch(handle, self.timeout)
        if status.succeeded:
            self.logger.info(f"Build job {handle.name} succeeded")
            return status

        log_tail = self._log_tail(handle)
        message = f"Build job {handle.name} failed ({status.describe()})"
        self.logger.error(message)
        raise BuildRuntimeError(f"{message}\n{log_tail}")

    def _log_tail(self, handle) -> str:
        """Last lines of the job log, or a note when it cannot be read."""
        try:
            logs = self.scheduler.fetch_logs(handle, tail_lines=self.tail_lines)
        except BuildRuntimeError as e:
            self.logger.warning(f"Could not fetch build log: {e}")
            return f"(log unavailable: {e})"
        lines = logs.splitlines()[-self.tail_lines:]
        return "\n".join(lines)
