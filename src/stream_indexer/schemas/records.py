"""
Stream record schemas.

Plain dataclasses for what the log storage hands back. Records are
immutable once received.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from stream_indexer.config import IteratorType


@dataclass(frozen=True)
class Shard:
    """One ordered partition of the stream, discovered once at startup."""

    stream_name: str
    shard_id: str
    iterator_type: IteratorType = IteratorType.LATEST


@dataclass(frozen=True)
class StreamRecord:
    """A raw record from one batch read.

    Attributes:
        data: Record payload bytes
        sequence_number: Monotonic position of the record within its shard
        arrival_timestamp: Approximate time the log storage received it
        partition_key: Producer-supplied partition key
    """

    data: bytes
    sequence_number: str
    arrival_timestamp: Optional[datetime] = None
    partition_key: Optional[str] = None

    @classmethod
    def from_kinesis(cls, raw: Dict[str, Any]) -> "StreamRecord":
        """Build from a GetRecords 'Records' entry."""
        data = raw.get("Data", b"")
        if isinstance(data, str):
            data = data.encode("utf-8")
        return cls(
            data=bytes(data),
            sequence_number=str(raw.get("SequenceNumber", "")),
            arrival_timestamp=raw.get("ApproximateArrivalTimestamp"),
            partition_key=raw.get("PartitionKey"),
        )

    def to_display(self) -> Dict[str, Any]:
        """Human-readable view used by the peek command."""
        return {
            "data": self.data.decode("utf-8", errors="replace"),
            "sequenceNumber": self.sequence_number,
            "approximateArrivalTimestamp": (
                self.arrival_timestamp.isoformat() if self.arrival_timestamp else None
            ),
        }


@dataclass(frozen=True)
class BatchReadResult:
    """Outcome of one successful batch read.

    Attributes:
        records: Records in the order the log storage returned them
        next_cursor: Cursor for the next read; None once the shard is closed
        millis_behind_latest: How far the read position trails the shard tip
    """

    records: List[StreamRecord] = field(default_factory=list)
    next_cursor: Optional[str] = None
    millis_behind_latest: Optional[int] = None

    @property
    def shard_closed(self) -> bool:
        return self.next_cursor is None
