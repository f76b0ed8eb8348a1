"""
Process-wide holder of the active policy snapshot.
"""

import itertools
from pathlib import Path
from typing import Optional

from cmd_sandbox.policy.loader import PolicyLoadError, load_policy, load_policy_or_default
from cmd_sandbox.policy.models import SecurityPolicy
from cmd_sandbox.utils import get_logger

logger = get_logger(__name__)


class PolicyStore:
    """
    Holds the current SecurityPolicy reference.

    Readers take `store.current` once per operation and work with that
    snapshot. Writers only ever replace the reference with a new frozen
    snapshot, so a reader never sees a half-updated policy and no lock is
    needed on the read path.
    """

    def __init__(self, initial: SecurityPolicy, source: Optional[str | Path] = None):
        self._versions = itertools.count(1)
        self._source = Path(source) if source is not None else None
        self._current = self._stamp(initial)

    @classmethod
    def from_source(cls, source: str | Path) -> "PolicyStore":
        """Load the policy at startup, falling back to the restrictive default."""
        return cls(load_policy_or_default(source), source=source)

    @property
    def current(self) -> SecurityPolicy:
        return self._current

    @property
    def source(self) -> Optional[Path]:
        return self._source

    def _stamp(self, policy: SecurityPolicy) -> SecurityPolicy:
        return policy.model_copy(update={"version": next(self._versions)})

    def swap(self, policy: SecurityPolicy) -> SecurityPolicy:
        """Make `policy` the active snapshot and return the stamped copy."""
        stamped = self._stamp(policy)
        self._current = stamped
        logger.info(f"Activated command policy version {stamped.version} from {stamped.source}")
        return stamped

    def reload(self) -> bool:
        """
        Reload from the configured source.

        Best effort: on failure the previous snapshot stays active.

        Returns:
            True if a new snapshot was activated
        """
        if self._source is None:
            logger.debug("Policy store has no source; nothing to reload")
            return False
        try:
            policy = load_policy(self._source)
        except PolicyLoadError as e:
            logger.error(
                f"Policy reload failed, keeping version {self._current.version}: {e}"
            )
            return False
        self.swap(policy)
        return True
