"""Log context variables shared across async tasks."""

from contextvars import ContextVar, Token
from typing import Any, Dict, List, Optional, Tuple

_domain: ContextVar[Optional[str]] = ContextVar("domain", default=None)
_stage: ContextVar[Optional[str]] = ContextVar("stage", default=None)
_worker_id: ContextVar[Optional[str]] = ContextVar("worker_id", default=None)
_shard_id: ContextVar[Optional[str]] = ContextVar("shard_id", default=None)
_sequence_number: ContextVar[Optional[str]] = ContextVar(
    "sequence_number", default=None
)
_partition_key: ContextVar[Optional[str]] = ContextVar("partition_key", default=None)

_VARS: Dict[str, ContextVar] = {
    "domain": _domain,
    "stage": _stage,
    "worker_id": _worker_id,
    "shard_id": _shard_id,
    "sequence_number": _sequence_number,
    "partition_key": _partition_key,
}


def set_log_context(**values: Optional[str]) -> None:
    """
    Set one or more log context fields.

    Unknown keys raise ValueError so typos surface early.
    """
    for key, value in values.items():
        var = _VARS.get(key)
        if var is None:
            raise ValueError(f"Unknown log context field: {key}")
        var.set(value)


def get_log_context() -> Dict[str, Any]:
    """Return the current log context (unset fields are None)."""
    return {key: var.get() for key, var in _VARS.items()}


def clear_log_context() -> None:
    """Reset all log context fields to None."""
    for var in _VARS.values():
        var.set(None)


class RecordLogContext:
    """
    Context manager stamping stream record identity onto every log line.

    Each asyncio task runs in its own copy of the context, so concurrent
    records processed with asyncio.gather() do not see each other's values.

    Example:
        with RecordLogContext(shard_id="shardId-000000000000",
                              sequence_number=record.sequence_number):
            logger.info("Processing record")
    """

    def __init__(
        self,
        sequence_number: Optional[str] = None,
        shard_id: Optional[str] = None,
        partition_key: Optional[str] = None,
    ):
        self._values = {
            "sequence_number": sequence_number,
            "shard_id": shard_id,
            "partition_key": partition_key,
        }
        self._tokens: List[Tuple[ContextVar, Token]] = []

    def __enter__(self) -> "RecordLogContext":
        for key, value in self._values.items():
            if value is None:
                continue
            var = _VARS[key]
            self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
