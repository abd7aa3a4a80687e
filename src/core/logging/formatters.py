"""Log formatters for JSON and console output."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from core.logging.context import get_log_context


class JSONFormatter(logging.Formatter):
    """
    JSON log formatter with context injection.

    Produces one JSON object per line for easy parsing with jq/grep.
    """

    # Fields to extract from LogRecord extras
    EXTRA_FIELDS = [
        "duration_ms",
        "http_status",
        "error_category",
        "error_message",
        "records_processed",
        "records_succeeded",
        "records_failed",
        "records_skipped",
        "batch_size",
        "error_type",
        "error_code",
        "sequence_number",
        # Stream
        "stream_name",
        "shard_count",
        "iterator_type",
        "millis_behind_latest",
        "backoff_seconds",
        "poll_interval_seconds",
        # Poller stats
        "polls",
        "batches",
        "records_seen",
        "records_indexed",
        "read_failures",
        "cursor_resets",
        # Pipeline
        "processing_stage",
        "mode",
        "payload_kind",
        "bucket",
        "key",
        "content_length",
        # Indexing
        "index",
        "document_id",
        "documents_indexed",
        "documents_failed",
        # API tracking
        "api_endpoint",
        "api_method",
    ]

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
            + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Inject context variables
        for key, value in get_log_context().items():
            if value:
                log_entry[key] = value

        # Add source location for DEBUG/ERROR
        if record.levelno in (logging.DEBUG, logging.ERROR, logging.CRITICAL):
            log_entry["file"] = f"{record.filename}:{record.lineno}"

        for field in self.EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable console formatter.

    Includes context when available.
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()

        parts = [
            datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            record.levelname,
        ]

        if ctx["domain"]:
            parts.append(f"[{ctx['domain']}]")
        if ctx["stage"]:
            parts.append(f"[{ctx['stage']}]")

        prefix = " - ".join(parts)

        sequence_number = ctx["sequence_number"]
        if sequence_number:
            # Kinesis sequence numbers are long; the tail is what differs
            return f"{prefix} - [seq ..{sequence_number[-8:]}] {record.getMessage()}"

        return f"{prefix} - {record.getMessage()}"
