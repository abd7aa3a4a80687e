"""Log storage side: Kinesis client, shard cursor and poll loop."""

from stream_indexer.stream.cursor import CursorManager, resolve_shard
from stream_indexer.stream.kinesis_client import KinesisStreamClient
from stream_indexer.stream.poller import StreamPoller

__all__ = [
    "CursorManager",
    "KinesisStreamClient",
    "StreamPoller",
    "resolve_shard",
]
