"""
Kubernetes Job execution backend.

One ephemeral, single-attempt Job per execution:

    SUBMITTED -> POLLING -> TERMINAL -> LOG_FETCHED
                        \\-> TIMED_OUT

The Job runs a fixed minimal image as a non-root user with a read-only
root filesystem, no privilege escalation, all capabilities dropped and the
runtime's default seccomp profile. activeDeadlineSeconds makes the cluster
kill the Job even if our own polling misbehaves, and
ttlSecondsAfterFinished lets the cluster garbage-collect it, so nothing is
deleted from here.

The kubernetes client is synchronous; its calls run in worker threads via
asyncio.to_thread.
"""

import asyncio
import re
import time
import uuid
from typing import Optional

import urllib3
from kubernetes import client
from kubernetes import config as kube_config
from kubernetes.client.rest import ApiException

from cmd_sandbox.config.models import KubernetesSettings
from cmd_sandbox.executor.base import Executor, utcnow
from cmd_sandbox.executor.capture import truncate_text
from cmd_sandbox.executor.types import (
    ExecutionRequest,
    ExecutionResult,
    InfrastructureError,
    JobRun,
    JobState,
)
from cmd_sandbox.policy import SecurityPolicy
from cmd_sandbox.utils import get_logger

logger = get_logger(__name__)

# Fixed per-execution resources; tasks cannot override these
RESOURCE_REQUESTS = {"cpu": "50m", "memory": "64Mi"}
RESOURCE_LIMITS = {"cpu": "200m", "memory": "128Mi"}

RUN_AS_ID = 65532  # distroless "nonroot"

_JOB_NAME_UNSAFE = re.compile(r"[^a-z0-9-]")
_LABEL_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def generate_job_name(task_id: Optional[str]) -> str:
    """exec-<sanitized task id, at most 30 chars>-<8 hex>"""
    sanitized = _JOB_NAME_UNSAFE.sub("-", (task_id or "adhoc").lower())[:30].strip("-")
    return f"exec-{sanitized or 'task'}-{uuid.uuid4().hex[:8]}"


def sanitize_label_value(value: str) -> str:
    """Coerce an arbitrary string into a valid label value (<= 63 chars)."""
    cleaned = _LABEL_UNSAFE.sub("-", value)[:63]
    return cleaned.strip("-._") or "none"


def load_api_client(in_cluster: Optional[bool] = None) -> client.ApiClient:
    """
    Build an ApiClient from in-cluster credentials or a kubeconfig.

    Args:
        in_cluster: True/False to force one source, None to try in-cluster first

    Raises:
        InfrastructureError: If no usable credentials are found
    """
    try:
        if in_cluster is None:
            try:
                kube_config.load_incluster_config()
            except kube_config.ConfigException:
                kube_config.load_kube_config()
        elif in_cluster:
            kube_config.load_incluster_config()
        else:
            kube_config.load_kube_config()
    except (kube_config.ConfigException, OSError) as e:
        raise InfrastructureError(f"Cannot load Kubernetes credentials: {e}") from e
    return client.ApiClient()


def _job_outcome(status: Optional[client.V1JobStatus]) -> Optional[tuple[bool, bool]]:
    """
    Inspect a Job status.

    Returns:
        None while running, else (succeeded, deadline_exceeded)
    """
    if status is None:
        return None
    for condition in status.conditions or []:
        if condition.status != "True":
            continue
        if condition.type in ("Complete", "SuccessCriteriaMet"):
            return True, False
        if condition.type in ("Failed", "FailureTarget"):
            return False, condition.reason == "DeadlineExceeded"
    if (status.succeeded or 0) > 0:
        return True, False
    if (status.failed or 0) > 0:
        return False, False
    return None


class KubernetesJobExecutor(Executor):
    """
    Runs each command as a hardened Kubernetes Job.

    Submission errors raise InfrastructureError. Everything after a
    successful submission (slow Jobs, evicted pods, missing logs) still
    produces a well-formed ExecutionResult.
    """

    backend = "kubernetes"

    def __init__(
        self,
        settings: KubernetesSettings,
        batch_api: Optional[client.BatchV1Api] = None,
        core_api: Optional[client.CoreV1Api] = None,
    ):
        """
        Args:
            settings: Kubernetes backend configuration
            batch_api: BatchV1Api to use (built from credentials when omitted)
            core_api: CoreV1Api to use (built from credentials when omitted)
        """
        self.settings = settings
        self._api_client: Optional[client.ApiClient] = None
        if batch_api is None or core_api is None:
            self._api_client = load_api_client(settings.in_cluster)
        self.batch_api = batch_api or client.BatchV1Api(self._api_client)
        self.core_api = core_api or client.CoreV1Api(self._api_client)

    # ------------------------------------------------------------------
    # Job spec
    # ------------------------------------------------------------------

    def build_job(
        self,
        run: JobRun,
        request: ExecutionRequest,
        policy: SecurityPolicy,
        task_id: Optional[str],
    ) -> client.V1Job:
        s = self.settings
        labels = {
            "app": s.app_label,
            "task-id": sanitize_label_value(task_id or "adhoc"),
            "exec-uuid": run.exec_uuid,
        }
        seccomp = client.V1SeccompProfile(type="RuntimeDefault")

        container = client.V1Container(
            name=s.container_name,
            image=s.image,
            image_pull_policy=s.image_pull_policy,
            command=[f"{s.binary_dir.rstrip('/')}/{request.binary}"],
            args=list(request.arguments),
            resources=client.V1ResourceRequirements(
                requests=dict(RESOURCE_REQUESTS),
                limits=dict(RESOURCE_LIMITS),
            ),
            security_context=client.V1SecurityContext(
                run_as_non_root=True,
                run_as_user=RUN_AS_ID,
                run_as_group=RUN_AS_ID,
                read_only_root_filesystem=True,
                allow_privilege_escalation=False,
                privileged=False,
                capabilities=client.V1Capabilities(drop=["ALL"]),
                seccomp_profile=seccomp,
            ),
        )

        pod_spec = client.V1PodSpec(
            restart_policy="Never",
            service_account_name=s.service_account,
            automount_service_account_token=False,
            security_context=client.V1PodSecurityContext(
                run_as_non_root=True,
                run_as_user=RUN_AS_ID,
                run_as_group=RUN_AS_ID,
                fs_group=RUN_AS_ID,
                seccomp_profile=seccomp,
            ),
            containers=[container],
        )

        return client.V1Job(
            api_version="batch/v1",
            kind="Job",
            metadata=client.V1ObjectMeta(
                name=run.job_name,
                namespace=s.namespace,
                labels=labels,
            ),
            spec=client.V1JobSpec(
                backoff_limit=0,
                ttl_seconds_after_finished=s.ttl_seconds_after_finished,
                active_deadline_seconds=policy.job_deadline_seconds,
                template=client.V1PodTemplateSpec(
                    metadata=client.V1ObjectMeta(labels=labels),
                    spec=pod_spec,
                ),
            ),
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def execute(
        self,
        request: ExecutionRequest,
        policy: SecurityPolicy,
        task_id: Optional[str] = None,
    ) -> ExecutionResult:
        run = JobRun(job_name=generate_job_name(task_id), exec_uuid=uuid.uuid4().hex)
        started_at = utcnow()
        start = time.monotonic()

        job = self.build_job(run, request, policy, task_id)
        await self._submit(run, job)

        run.advance(JobState.POLLING)
        await self._poll(run)

        if run.state == JobState.TIMED_OUT:
            return self._result(
                run, started_at, start,
                exit_code=-1, stdout="",
                stderr=f"Job did not reach a terminal state within {run.attempts} polling attempts",
                timed_out=True,
            )

        await self._fetch(run)

        stdout, truncated = truncate_text(
            run.logs, policy.limits.max_stdout_bytes, policy.output.truncation_marker
        )

        if run.deadline_exceeded:
            return self._result(
                run, started_at, start,
                exit_code=-1, stdout=stdout,
                stderr=f"Job exceeded its active deadline of {policy.job_deadline_seconds} seconds",
                timed_out=True, truncated=truncated,
            )

        stderr = ""
        if run.pod_name is None:
            stderr = f"Pod for job {run.job_name} not found; output unavailable"

        return self._result(
            run, started_at, start,
            exit_code=run.exit_code, stdout=stdout, stderr=stderr,
            timed_out=False, truncated=truncated,
        )

    async def _submit(self, run: JobRun, job: client.V1Job) -> None:
        logger.info(f"Creating Kubernetes Job {run.job_name} in {self.settings.namespace}")
        try:
            await asyncio.to_thread(
                self.batch_api.create_namespaced_job,
                namespace=self.settings.namespace,
                body=job,
            )
        except ApiException as e:
            logger.error(f"Kubernetes API error creating job {run.job_name}: {e.status} {e.reason}")
            raise InfrastructureError(
                f"Failed to create Kubernetes job {run.job_name}: {e.status} {e.reason}"
            ) from e
        except urllib3.exceptions.HTTPError as e:
            logger.error(f"Kubernetes API unreachable creating job {run.job_name}: {e}")
            raise InfrastructureError(f"Kubernetes API unreachable: {e}") from e

    async def _poll(self, run: JobRun) -> None:
        s = self.settings
        for attempt in range(1, s.max_poll_attempts + 1):
            run.attempts = attempt
            try:
                job = await asyncio.to_thread(
                    self.batch_api.read_namespaced_job_status,
                    name=run.job_name,
                    namespace=s.namespace,
                )
            except (ApiException, urllib3.exceptions.HTTPError) as e:
                logger.warning(f"Polling job {run.job_name} failed (attempt {attempt}): {e}")
            else:
                outcome = _job_outcome(job.status)
                if outcome is not None:
                    run.succeeded, run.deadline_exceeded = outcome
                    run.advance(JobState.TERMINAL)
                    logger.info(
                        f"Job {run.job_name} {'succeeded' if run.succeeded else 'failed'} "
                        f"after {attempt} polls"
                    )
                    return

            if attempt < s.max_poll_attempts:
                await asyncio.sleep(s.poll_interval_seconds)

        logger.warning(f"Job {run.job_name} did not complete within {s.max_poll_attempts} polls")
        run.advance(JobState.TIMED_OUT)

    async def _fetch(self, run: JobRun) -> None:
        pod = await self._find_pod(run)
        if pod is not None:
            run.pod_name = pod.metadata.name
            run.exit_code = self._exit_code(pod)
            run.logs = await self._read_logs(run.pod_name)
        run.advance(JobState.LOG_FETCHED)

    async def _find_pod(self, run: JobRun) -> Optional[client.V1Pod]:
        try:
            pods = await asyncio.to_thread(
                self.core_api.list_namespaced_pod,
                namespace=self.settings.namespace,
                label_selector=f"exec-uuid={run.exec_uuid}",
            )
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            logger.warning(f"Listing pods for job {run.job_name} failed: {e}")
            return None

        items = list(pods.items or [])
        if not items:
            logger.warning(f"No pod found for job {run.job_name}")
            return None
        # backoffLimit is 0, but prefer the newest pod if the cluster retried anyway
        items.sort(
            key=lambda p: p.metadata.creation_timestamp.timestamp()
            if p.metadata.creation_timestamp else 0.0
        )
        return items[-1]

    def _exit_code(self, pod: client.V1Pod) -> int:
        statuses = (pod.status.container_statuses if pod.status else None) or []
        for status in statuses:
            if status.name != self.settings.container_name or status.state is None:
                continue
            terminated = status.state.terminated
            if terminated is not None and terminated.exit_code is not None:
                return terminated.exit_code
        return -1

    async def _read_logs(self, pod_name: str) -> str:
        try:
            logs = await asyncio.to_thread(
                self.core_api.read_namespaced_pod_log,
                name=pod_name,
                namespace=self.settings.namespace,
                container=self.settings.container_name,
            )
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            logger.warning(f"Fetching logs for pod {pod_name} failed: {e}")
            return ""
        return logs or ""

    def _result(
        self,
        run: JobRun,
        started_at,
        start: float,
        *,
        exit_code: int,
        stdout: str,
        stderr: str,
        timed_out: bool,
        truncated: bool = False,
    ) -> ExecutionResult:
        return ExecutionResult(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_ms=int((time.monotonic() - start) * 1000),
            timed_out=timed_out,
            backend_identifier=run.job_name,
            started_at=started_at,
            completed_at=utcnow(),
            truncated=truncated,
        )

    async def close(self) -> None:
        if self._api_client is not None:
            self._api_client.close()
            self._api_client = None
