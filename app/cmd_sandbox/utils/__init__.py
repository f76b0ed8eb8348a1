from .logging import AUDIT_LOGGER_NAME, get_logger, setup_logging

__all__ = ["AUDIT_LOGGER_NAME", "get_logger", "setup_logging"]
