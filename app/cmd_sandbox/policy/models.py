"""
Immutable security policy snapshot.

The YAML policy document uses camelCase keys (maxArgs, rejectQuotes, ...).
Models accept those aliases as well as the snake_case field names, ignore
unknown keys and fall back to the defaults below for missing ones.
"""

import re
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_ARG_CHARACTERS = "A-Za-z0-9._:/=-"
DEFAULT_TRUNCATION_MARKER = "\n[OUTPUT TRUNCATED]"


class _PolicySection(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class Limits(_PolicySection):
    """Size and time ceilings."""

    max_command_length: int = Field(default=200, ge=1, alias="maxCommandLength")
    max_args: int = Field(default=8, ge=0, alias="maxArgs")
    max_total_length: int = Field(default=512, ge=1, alias="maxTotalLength")
    timeout_seconds: float = Field(default=5, gt=0, alias="timeoutSeconds")
    max_stdout_bytes: int = Field(default=131072, ge=0, alias="maxStdoutBytes")
    max_stderr_bytes: int = Field(default=65536, ge=0, alias="maxStderrBytes")


class Allowlist(_PolicySection):
    binaries: frozenset[str] = Field(default_factory=frozenset)


class Denylist(_PolicySection):
    """Rejected binaries and substrings. Order of metacharacters and sequences is kept."""

    commands: frozenset[str] = Field(
        default_factory=lambda: frozenset(
            {"rm", "sudo", "reboot", "shutdown", "halt", "kill"}
        )
    )
    metacharacters: tuple[str, ...] = ("`", "$", ";", "|", "&", ">", "<")
    sequences: tuple[str, ...] = ("&&", "||", "../")

    @model_validator(mode="after")
    def _no_empty_entries(self) -> "Denylist":
        # An empty string is a substring of everything
        if "" in self.metacharacters or "" in self.sequences:
            raise ValueError("denylist metacharacters and sequences must be non-empty strings")
        return self


class ValidationRules(_PolicySection):
    """Argument character rules and structural rejections."""

    allowed_arg_characters: str = Field(
        default=DEFAULT_ARG_CHARACTERS, alias="allowedArgCharacters"
    )
    allowed_argument_pattern: Optional[str] = Field(
        default=None, alias="allowedArgumentPattern"
    )
    reject_quotes: bool = Field(default=True, alias="rejectQuotes")
    reject_newlines: bool = Field(default=True, alias="rejectNewlines")
    reject_escapes: bool = Field(default=True, alias="rejectEscapes")

    @property
    def argument_pattern(self) -> str:
        """The regular expression every argument must fully match."""
        if self.allowed_argument_pattern:
            return self.allowed_argument_pattern
        return f"[{self.allowed_arg_characters}]+"

    @property
    def argument_regex(self) -> re.Pattern:
        return _compile(self.argument_pattern)

    @model_validator(mode="after")
    def _pattern_compiles(self) -> "ValidationRules":
        try:
            _compile(self.argument_pattern)
        except re.error as e:
            raise ValueError(f"Invalid argument pattern '{self.argument_pattern}': {e}") from e
        return self


class OutputRules(_PolicySection):
    truncation_marker: str = Field(
        default=DEFAULT_TRUNCATION_MARKER, alias="truncationMarker"
    )


class Timeouts(_PolicySection):
    job_active_deadline_seconds: Optional[int] = Field(
        default=None, ge=1, alias="jobActiveDeadlineSeconds"
    )


class SecurityPolicy(_PolicySection):
    """
    One fully-resolved set of validation and execution rules.

    Snapshots are frozen. A reload builds a new SecurityPolicy and swaps the
    reference held by PolicyStore; nothing ever edits a snapshot in place.
    """

    limits: Limits = Field(default_factory=Limits)
    allowlist: Allowlist = Field(default_factory=Allowlist)
    denylist: Denylist = Field(default_factory=Denylist)
    validation: ValidationRules = Field(default_factory=ValidationRules)
    output: OutputRules = Field(default_factory=OutputRules)
    timeouts: Timeouts = Field(default_factory=Timeouts)

    # Stamped by the loader / store, never read from the document
    version: int = Field(default=0, exclude=True)
    source: str = Field(default="<default>", exclude=True)

    @property
    def job_deadline_seconds(self) -> int:
        """Orchestrator-enforced deadline for a single Job."""
        if self.timeouts.job_active_deadline_seconds is not None:
            return self.timeouts.job_active_deadline_seconds
        return max(1, int(round(self.limits.timeout_seconds)))


@lru_cache(maxsize=32)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def restrictive_default_policy() -> SecurityPolicy:
    """
    Hard-coded fallback used when the policy source cannot be loaded.

    Keeps the service available while permitting almost nothing.
    """
    return SecurityPolicy(
        limits=Limits(
            max_command_length=100,
            max_args=4,
            max_total_length=100,
            timeout_seconds=5,
            max_stdout_bytes=65536,
            max_stderr_bytes=16384,
        ),
        allowlist=Allowlist(binaries=frozenset({"echo"})),
        denylist=Denylist(
            commands=frozenset({"rm", "sudo", "curl", "wget"}),
            metacharacters=(";", "|", "&", ">", "<", "`", "$"),
            sequences=("&&", "||", "../"),
        ),
        validation=ValidationRules(
            allowed_argument_pattern=r"[A-Za-z0-9._-]{1,32}",
            reject_quotes=True,
            reject_newlines=True,
            reject_escapes=True,
        ),
        source="<restrictive-default>",
    )
