# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Cluster scheduler client.
Wraps the Kubernetes API for submitting build pods and observing them to completion.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from kubernetes import client, watch
from kubernetes import config as kube_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from .exceptions import BuildRuntimeError, BuildSubmissionError, ConfigurationError
from .models import BuildJobSpec, JobHandle, JobStatus

# Waiting reasons that mean the container will never start
FATAL_WAITING_REASONS = frozenset({
    "ErrImagePull",
    "ImagePullBackOff",
    "InvalidImageName",
    "CreateContainerConfigError",
    "CreateContainerError",
})


class ClusterScheduler(ABC):
    """Submits build jobs and reports their terminal status."""

    @abstractmethod
    def submit(self, spec: BuildJobSpec) -> JobHandle:
        """
        Submit a job.

        Raises:
            BuildSubmissionError: If the scheduler rejects the job
        """

    @abstractmethod
    def watch(self, handle: JobHandle, timeout: int) -> JobStatus:
        """Block until the job is terminal or the timeout expires."""

    @abstractmethod
    def fetch_logs(self, handle: JobHandle, tail_lines: int | None = None) -> str:
        """Return the job's log output."""


def pod_status(pod: Any) -> JobStatus:
    """
    Translate a Kubernetes pod object into a JobStatus.

    Image pull failures are reported as Failed even though the pod itself
    stays Pending.
    """
    name = pod.metadata.name
    status = pod.status
    phase = (status.phase if status else None) or "Pending"
    if phase not in ("Pending", "Running", "Succeeded", "Failed"):
        phase = "Unknown"

    exit_code = None
    reason = status.reason if status else None
    message = status.message if status else None

    container_statuses = (status.container_statuses if status else None) or []
    if container_statuses:
        state = container_statuses[0].state
        if state and state.terminated:
            exit_code = state.terminated.exit_code
            reason = state.terminated.reason or reason
            message = state.terminated.message or message
        elif state and state.waiting and state.waiting.reason in FATAL_WAITING_REASONS:
            phase = "Failed"
            reason = state.waiting.reason
            message = state.waiting.message or message

    return JobStatus(name=name, phase=phase, exit_code=exit_code, reason=reason, message=message)


class KubernetesScheduler(ClusterScheduler):
    """Runs build jobs as pods through the Kubernetes core API."""

    def __init__(self, api: client.CoreV1Api | None = None, logger: logging.Logger | None = None):
        """
        Initialize the scheduler client.

        Args:
            api: Preconfigured CoreV1Api; built from in-cluster or kubeconfig settings if omitted
            logger: Optional logger instance

        Raises:
            ConfigurationError: If no cluster configuration can be loaded
        """
        self.logger = logger or logging.getLogger(__name__)

        if api is None:
            try:
                kube_config.load_incluster_config()
                self.logger.debug("Loaded in-cluster Kubernetes configuration")
            except ConfigException:
                try:
                    kube_config.load_kube_config()
                    self.logger.debug("Loaded Kubernetes configuration from kubeconfig")
                except (ConfigException, OSError) as e:
                    raise ConfigurationError(f"Couldn't reach the api server ({e})") from e
            api = client.CoreV1Api()

        self.api = api

    def submit(self, spec: BuildJobSpec) -> JobHandle:
        try:
            self.api.create_namespaced_pod(namespace=spec.namespace, body=spec.to_manifest())
        except ApiException as e:
            raise BuildSubmissionError(f"Scheduler rejected job {spec.name}: {e.status} {e.reason}") from e

        self.logger.info(f"Submitted build pod {spec.namespace}/{spec.name}")
        return JobHandle(name=spec.name, namespace=spec.namespace)

    def watch(self, handle: JobHandle, timeout: int) -> JobStatus:
        """
        Watch a pod until it succeeds, fails or the timeout expires.

        The API server may end a watch early, so the stream is reopened
        until the deadline passes.

        Raises:
            BuildRuntimeError: If the pod cannot be observed
        """
        deadline = time.monotonic() + timeout
        last = JobStatus(name=handle.name, phase="Pending")

        while (remaining := int(deadline - time.monotonic())) > 0:
            watcher = watch.Watch()
            try:
                for event in watcher.stream(
                    self.api.list_namespaced_pod,
                    namespace=handle.namespace,
                    field_selector=f"metadata.name={handle.name}",
                    timeout_seconds=remaining,
                ):
                    if event["type"] == "DELETED":
                        return JobStatus(name=handle.name, phase="Failed", reason="Deleted",
                                         message="build pod was deleted before completing")
                    last = pod_status(event["object"])
                    self.logger.debug(f"Build pod {handle.name}: {last.describe()}")
                    if last.terminal:
                        return last
            except ApiException as e:
                raise BuildRuntimeError(f"Lost track of build pod {handle.name}: {e.status} {e.reason}") from e
            finally:
                watcher.stop()

        return JobStatus(
            name=handle.name,
            phase="Timeout",
            reason="Timeout",
            message=f"no terminal state within {timeout}s (last seen {last.describe()})",
        )

    def fetch_logs(self, handle: JobHandle, tail_lines: int | None = None) -> str:
        """
        Read the pod log.

        Raises:
            BuildRuntimeError: If the log cannot be read
        """
        kwargs = {"tail_lines": tail_lines} if tail_lines else {}
        try:
            return str(self.api.read_namespaced_pod_log(handle.name, handle.namespace, **kwargs))
        except ApiException as e:
            raise BuildRuntimeError(f"Cannot read log of {handle.name}: {e.status} {e.reason}") from e
