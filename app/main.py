#!/usr/bin/env python3
"""
CMD Sandbox - Entry Point

Validate or execute a single command from the command line. Results are
printed to stdout as JSON; logs go to stderr.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

# Add app directory to path for imports when running directly
APP_DIR = Path(__file__).parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from cmd_sandbox import __version__
from cmd_sandbox.config import ExecutionBackend, load_config
from cmd_sandbox.engine import create_engine
from cmd_sandbox.executor import CommandRejectedError, InfrastructureError, LocalExecutor
from cmd_sandbox.utils import setup_logging

EXIT_REJECTED = 2
EXIT_INFRASTRUCTURE = 3


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Policy-validated, sandboxed command execution",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check a command against the policy
  python main.py validate echo hello

  # Run it on the configured backend
  python main.py execute --task-id t-42 echo hello

  # Run it as a Kubernetes Job
  python main.py --backend kubernetes execute --task-id t-42 uname -a
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"cmd-sandbox {__version__}",
    )
    parser.add_argument(
        "--config-dir",
        type=str,
        help="Configuration directory path (default: ~/.cmd-sandbox/)",
    )
    parser.add_argument(
        "--backend",
        choices=[b.value for b in ExecutionBackend],
        help="Execution backend (overrides config)",
    )
    parser.add_argument(
        "--policy",
        type=str,
        help="Policy YAML file (overrides config)",
    )

    subparsers = parser.add_subparsers(dest="action", required=True)

    validate_parser = subparsers.add_parser("validate", help="Validate a command")
    validate_parser.add_argument("command", help="Binary, or a whole command string")
    validate_parser.add_argument("arguments", nargs=argparse.REMAINDER)

    execute_parser = subparsers.add_parser("execute", help="Validate and execute a command")
    execute_parser.add_argument("--task-id", default=None, help="Task identifier for labels and audit")
    execute_parser.add_argument("command", help="Binary, or a whole command string")
    execute_parser.add_argument("arguments", nargs=argparse.REMAINDER)

    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.config_dir)

    # Apply CLI overrides
    if args.backend:
        config.executor.backend = ExecutionBackend(args.backend)
    if args.policy:
        config.policy.path = args.policy
    # One-shot invocation; nothing to hot-reload
    config.policy.watch = False

    setup_logging(config.logging.level, config.logging.log_file, config.logging.audit_file)

    # Without extra tokens the command string is split on whitespace
    arguments = args.arguments or None

    if args.action == "validate":
        # Validation never needs a backend
        engine = create_engine(config, executor=LocalExecutor())
        verdict = engine.validate(args.command, arguments)
        print(json.dumps(verdict.to_dict(), indent=2))
        return 0 if verdict.valid else EXIT_REJECTED

    try:
        async with create_engine(config) as engine:
            result = await engine.execute(args.task_id, args.command, arguments)
    except CommandRejectedError as e:
        print(json.dumps({"valid": False, "violations": list(e.violations)}, indent=2))
        return EXIT_REJECTED
    except InfrastructureError as e:
        print(f"Infrastructure error: {e}", file=sys.stderr)
        return EXIT_INFRASTRUCTURE

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
