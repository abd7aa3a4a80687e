"""Shared test helpers."""

import json

from stream_indexer.schemas.records import StreamRecord

DEFAULT_SEQUENCE_NUMBER = "49590338271490256608559692538361571095921575989136588898"


def make_record(payload, sequence_number: str = DEFAULT_SEQUENCE_NUMBER) -> StreamRecord:
    """Build a StreamRecord; dicts are JSON-encoded, strings UTF-8 encoded."""
    if isinstance(payload, (dict, list)):
        data = json.dumps(payload).encode("utf-8")
    elif isinstance(payload, str):
        data = payload.encode("utf-8")
    else:
        data = payload
    return StreamRecord(data=data, sequence_number=sequence_number, partition_key="pk")
