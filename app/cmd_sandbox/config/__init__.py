"""
Configuration system for CMD Sandbox.

Exports:
    SandboxConfig: Main configuration container
    load_config: Load configuration from YAML/env
"""

from cmd_sandbox.config.models import (
    ExecutionBackend,
    ExecutorSettings,
    KubernetesSettings,
    LoggingSettings,
    PolicySettings,
    SandboxConfig,
)
from cmd_sandbox.config.loader import load_config, reload_config, resolve_policy_path

__all__ = [
    "SandboxConfig",
    "ExecutionBackend",
    "ExecutorSettings",
    "KubernetesSettings",
    "LoggingSettings",
    "PolicySettings",
    "load_config",
    "reload_config",
    "resolve_policy_path",
]
