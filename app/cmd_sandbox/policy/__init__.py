"""
Command policy: immutable snapshots, loading, and hot reload.
"""

from cmd_sandbox.policy.models import (
    Allowlist,
    Denylist,
    Limits,
    OutputRules,
    SecurityPolicy,
    Timeouts,
    ValidationRules,
    restrictive_default_policy,
)
from cmd_sandbox.policy.loader import (
    PolicyLoadError,
    load_policy,
    load_policy_or_default,
    parse_policy,
)
from cmd_sandbox.policy.store import PolicyStore
from cmd_sandbox.policy.watcher import PolicyWatcher

__all__ = [
    # Models
    "SecurityPolicy",
    "Limits",
    "Allowlist",
    "Denylist",
    "ValidationRules",
    "OutputRules",
    "Timeouts",
    "restrictive_default_policy",
    # Loading
    "PolicyLoadError",
    "load_policy",
    "load_policy_or_default",
    "parse_policy",
    # Runtime
    "PolicyStore",
    "PolicyWatcher",
]
