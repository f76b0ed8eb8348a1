"""
Execution engine: the entry point used by the task service.

The engine validates a task's command against the current policy snapshot,
runs it on the backend chosen by configuration, emits an audit record and
updates metrics. Persisting the returned ExecutionResult is the caller's
job.
"""

from typing import Callable, Optional

from cmd_sandbox.audit import AuditLogger, AuditRecord, hash_command
from cmd_sandbox.config import ExecutionBackend, SandboxConfig, resolve_policy_path
from cmd_sandbox.executor import (
    CommandRejectedError,
    CommandValidator,
    ExecutionRequest,
    ExecutionResult,
    Executor,
    InfrastructureError,
    KubernetesJobExecutor,
    LocalExecutor,
    ValidationVerdict,
    validate,
)
from cmd_sandbox.metrics import (
    RESULT_INFRASTRUCTURE_ERROR,
    RESULT_RUNTIME_ERROR,
    RESULT_SUCCESS,
    RESULT_TIMEOUT,
    RESULT_VALIDATION_ERROR,
    MetricsCollector,
)
from cmd_sandbox.policy import PolicyStore, PolicyWatcher
from cmd_sandbox.utils import get_logger

logger = get_logger(__name__)

AuditSink = Callable[[AuditRecord], None]


class ExecutionEngine:
    """
    Validates and executes task commands.

    Example:
        >>> engine = create_engine(load_config())
        >>> verdict = engine.validate("echo hello")
        >>> result = await engine.execute("task-1", "echo", ["hello"])
    """

    def __init__(
        self,
        store: PolicyStore,
        executor: Executor,
        audit: Optional[AuditSink] = None,
        metrics: Optional[MetricsCollector] = None,
        watcher: Optional[PolicyWatcher] = None,
    ):
        self.store = store
        self.executor = executor
        self.validator = CommandValidator(store)
        self.audit = audit or AuditLogger().emit
        self.metrics = metrics or MetricsCollector()
        self.watcher = watcher

    @property
    def backend(self) -> str:
        return self.executor.backend

    def validate(
        self, command: str, arguments: Optional[list[str]] = None
    ) -> ValidationVerdict:
        """
        Validate a task's command without running it.

        Returns:
            ValidationVerdict listing every violation
        """
        verdict = self.validator.validate_command(command, arguments)
        self.metrics.inc_validation(verdict.valid)
        return verdict

    async def execute(
        self,
        task_id: Optional[str],
        command: str,
        arguments: Optional[list[str]] = None,
    ) -> ExecutionResult:
        """
        Re-validate and execute a task's command.

        The policy may have changed since the task was stored, so the
        command is validated again against the snapshot it will run under.

        Raises:
            CommandRejectedError: If the command violates the current policy
            InfrastructureError: If the backend could not run the command
        """
        policy = self.store.current
        request = ExecutionRequest.from_task(command, arguments)

        verdict = validate(policy, request.binary, request.arguments)
        self.metrics.inc_validation(verdict.valid)
        if not verdict.valid:
            self.metrics.inc_execution(RESULT_VALIDATION_ERROR)
            logger.warning(
                f"Rejected execution: task={task_id}, command_hash={hash_command(request)[:12]}, "
                f"violations={len(verdict.violations)}"
            )
            raise CommandRejectedError(verdict.violations)

        try:
            result = await self.executor.execute(request, policy, task_id)
        except InfrastructureError:
            self.metrics.inc_execution(RESULT_INFRASTRUCTURE_ERROR)
            raise

        if result.timed_out:
            self.metrics.inc_execution(RESULT_TIMEOUT)
        elif result.exit_code == 0:
            self.metrics.inc_execution(RESULT_SUCCESS)
        else:
            self.metrics.inc_execution(RESULT_RUNTIME_ERROR)
        self.metrics.observe_duration(self.backend, result.duration_ms)

        record = AuditRecord.from_execution(task_id, request, result, self.backend)
        self.audit(record)

        logger.info(
            f"Execution completed: task={task_id}, id={result.backend_identifier}, "
            f"command_hash={record.command_hash[:12]}, status={result.status.value}, "
            f"exit_code={result.exit_code}, duration={result.duration_ms}ms"
        )
        return result

    async def start(self) -> None:
        """Start the policy watcher, if one is configured."""
        if self.watcher is not None:
            self.watcher.start()

    async def close(self) -> None:
        if self.watcher is not None:
            await self.watcher.stop()
        await self.executor.close()

    async def __aenter__(self) -> "ExecutionEngine":
        await self.start()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()


def create_executor(config: SandboxConfig) -> Executor:
    """
    Build the backend selected by deployment configuration.

    Args:
        config: Loaded configuration

    Returns:
        LocalExecutor or KubernetesJobExecutor
    """
    if config.executor.backend == ExecutionBackend.KUBERNETES:
        return KubernetesJobExecutor(config.kubernetes)

    return LocalExecutor(
        search_path=config.executor.search_path,
        grace_seconds=config.executor.grace_seconds,
    )


def create_engine(
    config: SandboxConfig,
    executor: Optional[Executor] = None,
    audit: Optional[AuditSink] = None,
) -> ExecutionEngine:
    """
    Factory function to create an ExecutionEngine.

    Args:
        config: Loaded configuration
        executor: Optional backend override (defaults to create_executor)
        audit: Optional audit sink (defaults to the audit logger)

    Returns:
        Configured ExecutionEngine; call start() to begin watching the policy
    """
    policy_path = resolve_policy_path(config)
    store = PolicyStore.from_source(policy_path)

    watcher = None
    if config.policy.watch:
        watcher = PolicyWatcher(
            store,
            poll_interval=config.policy.poll_interval_seconds,
            debounce=config.policy.debounce_seconds,
        )

    return ExecutionEngine(
        store=store,
        executor=executor or create_executor(config),
        audit=audit,
        watcher=watcher,
    )
