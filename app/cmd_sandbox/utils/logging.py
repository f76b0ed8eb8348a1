# utils/logging.py

import logging
import sys
from typing import Optional

AUDIT_LOGGER_NAME = "cmd_sandbox.audit"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _replace_handlers(logger: logging.Logger, handlers: list[logging.Handler]) -> None:
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    for handler in handlers:
        logger.addHandler(handler)


def _with_formatter(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    audit_file: Optional[str] = None,
) -> None:
    """
    Configure logging for the sandbox.

    Console output goes to stderr; stdout is reserved for the JSON results
    printed by the CLI. Audit records go to their own JSON-lines file when
    audit_file is set, and still propagate to the root handlers.
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    handlers = [_with_formatter(logging.StreamHandler(sys.stderr), formatter)]
    if log_file:
        handlers.append(_with_formatter(logging.FileHandler(log_file), formatter))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    _replace_handlers(root_logger, handlers)

    audit_handlers = []
    if audit_file:
        # Records are already JSON; no prefix
        audit_handlers.append(
            _with_formatter(logging.FileHandler(audit_file), logging.Formatter('%(message)s'))
        )
    audit_logger = logging.getLogger(AUDIT_LOGGER_NAME)
    audit_logger.setLevel(logging.INFO)
    _replace_handlers(audit_logger, audit_handlers)

    logging.info(f"Logging configured with level: {level}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the specified name."""
    return logging.getLogger(name)
