"""Shared infrastructure: logging, settings files and retry policies."""

from .config_loader import load_config_file, parse_config_lines
from .logging_config import configure_logging
from .logging_utils import StructuredLogger, get_module_logger
from .retry_policy import DEFAULT_READ_RETRY_POLICY, RetryPolicy

__all__ = [
    "load_config_file",
    "parse_config_lines",
    "configure_logging",
    "StructuredLogger",
    "get_module_logger",
    "RetryPolicy",
    "DEFAULT_READ_RETRY_POLICY",
]
