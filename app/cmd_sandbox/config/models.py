"""
Pydantic models for sandbox configuration.

Configuration is deployment wiring only: which backend runs commands,
where the policy lives, how the Kubernetes Job is shaped. The command
policy itself is a separate document (see cmd_sandbox.policy).
"""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ExecutionBackend(str, Enum):
    """Execution backend options."""

    LOCAL = "local"  # Direct, shell-less subprocess on this host
    KUBERNETES = "kubernetes"  # One hardened Job per execution


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional log file in addition to stderr",
    )
    audit_file: Optional[str] = Field(
        default=None,
        description="Append-only JSON-lines file for audit records",
    )


class PolicySettings(BaseModel):
    """Where the command policy is read from and how it is watched."""

    path: Optional[str] = Field(
        default=None,
        description="Policy YAML path (defaults to the packaged policy)",
    )
    watch: bool = Field(
        default=True,
        description="Reload the policy when the file changes",
    )
    poll_interval_seconds: float = Field(
        default=1.0,
        gt=0,
        description="How often the watcher checks the policy file",
    )
    debounce_seconds: float = Field(
        default=0.5,
        ge=0,
        description="Quiet window that coalesces rapid successive changes",
    )


class ExecutorSettings(BaseModel):
    """Command execution settings."""

    backend: ExecutionBackend = Field(
        default=ExecutionBackend.LOCAL,
        description="Execution backend, fixed per deployment",
    )
    grace_seconds: float = Field(
        default=1.0,
        gt=0,
        le=10,
        description="Bounded wait for output drains after the process ends",
    )
    search_path: str = Field(
        default="/usr/local/bin:/usr/bin:/bin",
        description="PATH used to resolve binaries for local execution",
    )


class KubernetesSettings(BaseModel):
    """Kubernetes Job backend settings."""

    namespace: str = Field(default="cmd-sandbox")
    image: str = Field(
        default="cmd-sandbox-executor:latest",
        description="Minimal, non-root execution image",
    )
    image_pull_policy: Literal["Always", "IfNotPresent", "Never"] = Field(
        default="IfNotPresent",
    )
    service_account: str = Field(default="cmd-sandbox-runner")
    binary_dir: str = Field(
        default="/usr/bin",
        description="Directory of allowlisted binaries inside the image",
    )
    container_name: str = Field(default="executor")
    app_label: str = Field(default="cmd-sandbox-exec")
    ttl_seconds_after_finished: int = Field(
        default=120,
        ge=0,
        description="Orchestrator garbage collection delay for finished Jobs",
    )
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    max_poll_attempts: int = Field(
        default=60,
        ge=1,
        description="Polling budget before reporting a timeout",
    )
    in_cluster: Optional[bool] = Field(
        default=None,
        description="Force in-cluster (True) or kubeconfig (False) auth; None tries both",
    )


class SandboxConfig(BaseModel):
    """
    Main configuration container.

    Loaded from YAML files and environment variables, then passed to
    components explicitly (see create_engine).
    """

    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    policy: PolicySettings = Field(default_factory=PolicySettings)
    executor: ExecutorSettings = Field(default_factory=ExecutorSettings)
    kubernetes: KubernetesSettings = Field(default_factory=KubernetesSettings)

    # Allow extra fields to be ignored (forward compatibility)
    model_config = ConfigDict(extra="ignore")
