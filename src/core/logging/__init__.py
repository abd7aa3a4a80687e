"""
Structured logging module.

Provides JSON file logging, a human console format, and context
propagation (domain, stage, shard, record sequence number) across
async boundaries.
"""

from core.logging.context import (
    RecordLogContext,
    clear_log_context,
    get_log_context,
    set_log_context,
)
from core.logging.setup import get_logger, setup_logging
from core.logging.utilities import LoggedClass, log_exception, log_with_context

__all__ = [
    "RecordLogContext",
    "clear_log_context",
    "get_log_context",
    "set_log_context",
    "get_logger",
    "setup_logging",
    "LoggedClass",
    "log_exception",
    "log_with_context",
]
