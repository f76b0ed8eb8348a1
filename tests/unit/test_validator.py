# tests/unit/test_validator.py
"""
Unit tests for individual validation rules.
Data-driven injection cases live in tests/functional/executor/test_data.yaml.
"""

from cmd_sandbox.executor import (
    CommandValidator,
    ExecutionRequest,
    ValidationVerdict,
    create_validator,
    validate,
)
from cmd_sandbox.policy import parse_policy, restrictive_default_policy


class TestLengthRules:
    def test_total_length_over_limit(self, policy):
        # "echo" (4) + 120 = 124 > 120
        verdict = validate(policy, "echo", ["a" * 120])

        assert verdict.violations == ("Total command length 124 exceeds limit 120",)

    def test_total_length_at_limit(self, policy):
        assert validate(policy, "echo", ["a" * 116]).valid

    def test_command_line_length(self):
        policy = parse_policy(
            {"allowlist": {"binaries": ["echo"]}, "limits": {"maxCommandLength": 10}}
        )
        # "echo aaaaa" is exactly 10 characters including the separator
        assert validate(policy, "echo", ["aaaaa"]).valid

        verdict = validate(policy, "echo", ["aaa", "bb"])
        assert verdict.violations == ("Command exceeds maximum length of 10 characters",)

    def test_zero_max_args(self):
        policy = parse_policy({"allowlist": {"binaries": ["uptime"]}, "limits": {"maxArgs": 0}})

        assert validate(policy, "uptime").valid
        assert validate(policy, "uptime", ["-p"]).violations == ("Too many arguments: 1 (max 0)",)


class TestStructuralRules:
    def test_quote_check_can_be_disabled(self):
        policy = parse_policy(
            {
                "allowlist": {"binaries": ["echo"]},
                "validation": {"rejectQuotes": False, "allowedArgumentPattern": ".+"},
            }
        )
        assert validate(policy, "echo", ['"quoted"']).valid

    def test_structural_violation_reported_once(self, policy):
        verdict = validate(policy, "echo", ["a'b", "c'd"])
        assert verdict.violations.count("Command contains quote characters") == 1

    def test_newline_in_binary(self, policy):
        verdict = validate(policy, "echo\n", [])
        assert "Command contains newline characters" in verdict.violations

    def test_all_rules_reported_together(self, policy):
        verdict = validate(policy, "rm", ["a;b", "'", "1", "2", "3"])

        assert verdict.violations == (
            "Command contains quote characters",
            "Command 'rm' is denied by policy",
            "Command 'rm' is not in allowlist",
            "Argument 'a;b' contains denied metacharacter: ;",
            "Too many arguments: 5 (max 4)",
            "Argument 'a;b' does not match allowed pattern [A-Za-z0-9._:/=%-]+",
            "Argument ''' does not match allowed pattern [A-Za-z0-9._:/=%-]+",
        )

    def test_first_metacharacter_per_token(self, policy):
        # Policy order is ` $ ; | ...; only the first hit per token is reported
        verdict = validate(policy, "echo", ["a|b;c"])
        assert "Argument 'a|b;c' contains denied metacharacter: ;" in verdict.violations
        assert not any("metacharacter: |" in v for v in verdict.violations)


class TestRestrictiveDefaultValidation:
    def test_echo_allowed(self):
        assert validate(restrictive_default_policy(), "echo", ["hello"]).valid

    def test_everything_else_rejected(self):
        verdict = validate(restrictive_default_policy(), "ls", [])
        assert verdict.violations == ("Command 'ls' is not in allowlist",)

    def test_long_argument_rejected(self):
        verdict = validate(restrictive_default_policy(), "echo", ["x" * 33])
        assert not verdict.valid


class TestCommandValidator:
    def test_validate_request(self, store):
        validator = create_validator(store)
        assert isinstance(validator, CommandValidator)

        verdict = validator.validate_request(ExecutionRequest("echo", ("hi",)))
        assert verdict == ValidationVerdict(valid=True, violations=())

    def test_validate_command_splits_on_whitespace(self, store):
        verdict = CommandValidator(store).validate_command("curl  -s   x")
        assert verdict.violations == ("Command 'curl' is not in allowlist",)

    def test_explicit_arguments_not_split(self, store):
        verdict = CommandValidator(store).validate_command("echo", ["a b"])
        assert verdict.violations == (
            "Argument 'a b' does not match allowed pattern [A-Za-z0-9._:/=%-]+",
        )

    def test_verdict_to_dict(self, store):
        verdict = CommandValidator(store).validate_command("")
        assert verdict.to_dict() == {"valid": False, "violations": ["Command cannot be empty"]}


class TestExecutionRequest:
    def test_from_task_split(self):
        request = ExecutionRequest.from_task("  ls -la  /tmp ")
        assert request.binary == "ls"
        assert request.arguments == ("-la", "/tmp")
        assert request.argv == ["ls", "-la", "/tmp"]

    def test_from_task_empty(self):
        assert ExecutionRequest.from_task("") == ExecutionRequest(binary="")

    def test_from_task_with_arguments(self):
        request = ExecutionRequest.from_task(" echo ", ["x y"])
        assert request.binary == "echo"
        assert request.arguments == ("x y",)
