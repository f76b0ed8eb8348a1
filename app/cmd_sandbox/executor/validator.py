"""
Policy-based command validation.

Every rule is evaluated and every violation collected, so callers get the
complete list of reasons a command was rejected rather than the first one.
Validation never executes anything and never touches a shell.
"""

from typing import Optional, Sequence

from cmd_sandbox.executor.types import ExecutionRequest, ValidationVerdict
from cmd_sandbox.policy import PolicyStore, SecurityPolicy

NEWLINE_CHARS = ("\n", "\r")
QUOTE_CHARS = ('"', "'")
ESCAPE_CHARS = ("\\",)


def _first_match(token: str, needles: Sequence[str]) -> Optional[str]:
    for needle in needles:
        if needle in token:
            return needle
    return None


def _describe(index: int, token: str) -> str:
    if index == 0:
        return f"Command '{token}'"
    return f"Argument '{token}'"


def validate(
    policy: SecurityPolicy, binary: str, arguments: Sequence[str] = ()
) -> ValidationVerdict:
    """
    Validate a binary and its arguments against a policy snapshot.

    Pure function: the same inputs always yield the same verdict.

    Args:
        policy: The snapshot to validate against
        binary: Executable name (leading token)
        arguments: Ordered argument list

    Returns:
        ValidationVerdict with every violation found
    """
    violations: list[str] = []

    if binary is None or not binary.strip():
        return ValidationVerdict.from_violations(["Command cannot be empty"])

    arguments = list(arguments or ())
    tokens = [binary, *arguments]
    limits = policy.limits
    rules = policy.validation

    total_length = sum(len(token) for token in tokens)
    if total_length > limits.max_total_length:
        violations.append(
            f"Total command length {total_length} exceeds limit {limits.max_total_length}"
        )

    command_line_length = len(" ".join(tokens))
    if command_line_length > limits.max_command_length:
        violations.append(
            f"Command exceeds maximum length of {limits.max_command_length} characters"
        )

    if rules.reject_newlines and any(_first_match(t, NEWLINE_CHARS) for t in tokens):
        violations.append("Command contains newline characters")
    if rules.reject_quotes and any(_first_match(t, QUOTE_CHARS) for t in tokens):
        violations.append("Command contains quote characters")
    if rules.reject_escapes and any(_first_match(t, ESCAPE_CHARS) for t in tokens):
        violations.append("Command contains escape characters")

    # Deny and allow checks are independent; both may fire
    if binary in policy.denylist.commands:
        violations.append(f"Command '{binary}' is denied by policy")
    if binary not in policy.allowlist.binaries:
        violations.append(f"Command '{binary}' is not in allowlist")

    # One report per token, but every token is scanned
    for index, token in enumerate(tokens):
        meta = _first_match(token, policy.denylist.metacharacters)
        if meta is not None:
            violations.append(f"{_describe(index, token)} contains denied metacharacter: {meta}")

    for index, token in enumerate(tokens):
        sequence = _first_match(token, policy.denylist.sequences)
        if sequence is not None:
            violations.append(f"{_describe(index, token)} contains denied sequence: {sequence}")

    if len(arguments) > limits.max_args:
        violations.append(f"Too many arguments: {len(arguments)} (max {limits.max_args})")

    pattern = rules.argument_regex
    for argument in arguments:
        if not pattern.fullmatch(argument):
            violations.append(
                f"Argument '{argument}' does not match allowed pattern {rules.argument_pattern}"
            )

    return ValidationVerdict.from_violations(violations)


class CommandValidator:
    """
    Validates commands against the store's current policy snapshot.

    Each call reads the snapshot reference exactly once, so a concurrent
    reload cannot change the rules halfway through a validation.
    """

    def __init__(self, store: PolicyStore):
        self.store = store

    @property
    def policy(self) -> SecurityPolicy:
        return self.store.current

    def validate(self, binary: str, arguments: Sequence[str] = ()) -> ValidationVerdict:
        return validate(self.store.current, binary, arguments)

    def validate_request(self, request: ExecutionRequest) -> ValidationVerdict:
        return validate(self.store.current, request.binary, request.arguments)

    def validate_command(
        self, command: str, arguments: Optional[list[str]] = None
    ) -> ValidationVerdict:
        """Validate a task-shaped command (split on whitespace when no arguments)."""
        return self.validate_request(ExecutionRequest.from_task(command, arguments))


def create_validator(store: PolicyStore) -> CommandValidator:
    """
    Factory function to create a CommandValidator.

    Args:
        store: PolicyStore holding the active snapshot

    Returns:
        Configured CommandValidator instance
    """
    return CommandValidator(store)
