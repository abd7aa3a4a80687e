"""Record pipeline.

- decoding: bytes -> classified payload (document, double-encoded, object reference)
- processor: payload -> search documents, with bounded per-batch concurrency
"""

from stream_indexer.pipeline.decoding import (
    DecodedPayload,
    PayloadKind,
    decode_payload,
    decode_text,
)
from stream_indexer.pipeline.processor import (
    BatchOutcome,
    ProcessingStage,
    RecordOutcome,
    RecordPipeline,
    RecordStatus,
)

__all__ = [
    "BatchOutcome",
    "DecodedPayload",
    "PayloadKind",
    "ProcessingStage",
    "RecordOutcome",
    "RecordPipeline",
    "RecordStatus",
    "decode_payload",
    "decode_text",
]
