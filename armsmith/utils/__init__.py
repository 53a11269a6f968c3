"""Utility modules for Armsmith."""

from armsmith.utils.logging import configure_logging, get_logger, log_error, log_warning

__all__ = [
    "get_logger",
    "log_error",
    "log_warning",
    "configure_logging",
]
