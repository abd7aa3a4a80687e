"""Logging setup and configuration."""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from core.logging.context import set_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter

DEFAULT_LOG_DIR = Path("logs")
MAX_BYTES = 10 * 1024 * 1024  # 10MB per file before rotation
BACKUP_COUNT = 5

# AWS SDK and HTTP client chatter, kept at WARNING
NOISY_LOGGERS = [
    "botocore",
    "aiobotocore",
    "aioboto3",
    "urllib3",
    "aiohttp",
]


def get_log_file_path(
    log_dir: Path,
    domain: Optional[str] = None,
    stage: Optional[str] = None,
    worker_id: Optional[str] = None,
) -> Path:
    """
    Build the log file path for one indexer process.

    Structure: {log_dir}/{domain}/{YYYY-MM-DD}/{stage}_{worker_id}_{YYYYMMDD}.log

    Each shard runs in its own process with its own worker_id, so workers
    polling different shards never share a file.
    """
    now = datetime.now()
    parts = [stage or "indexer", worker_id, now.strftime("%Y%m%d")]
    filename = "_".join(p for p in parts if p) + ".log"

    base = log_dir / domain if domain else log_dir
    return base / now.strftime("%Y-%m-%d") / filename


def setup_logging(
    name: str = "stream_indexer",
    stage: Optional[str] = None,
    domain: Optional[str] = None,
    log_dir: Optional[Path] = None,
    json_format: bool = True,
    console_level: int = logging.INFO,
    worker_id: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger with a console handler and a rotating file handler.

    The file handler records DEBUG and up, as JSON lines unless json_format
    is False. The console handler uses the human readable format at
    console_level. domain, stage and worker_id are also stamped into the
    log context so every line carries them.

    Args:
        name: Logger to return
        stage: CLI command (run, peek, populate)
        domain: Pipeline mode (files, products)
        log_dir: Base directory for log files (default: ./logs)
        json_format: JSON file logs (default: True)
        console_level: Console handler level (default: INFO)
        worker_id: Worker identifier, part of the file name and context
    """
    log_dir = log_dir or DEFAULT_LOG_DIR
    set_log_context(domain=domain, stage=stage, worker_id=worker_id)

    log_file = get_log_file_path(log_dir, domain=domain, stage=stage, worker_id=worker_id)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    if json_format:
        file_formatter: logging.Formatter = JSONFormatter()
    else:
        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
        )

    file_handler = RotatingFileHandler(
        log_file, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ConsoleFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, handlers filter

    # Re-init replaces handlers instead of stacking them
    root_logger.handlers.clear()
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logger = logging.getLogger(name)
    logger.debug(f"Logging initialized: file={log_file}, json={json_format}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically for __name__)."""
    return logging.getLogger(name)
