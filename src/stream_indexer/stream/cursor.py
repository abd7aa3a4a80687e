"""
Shard discovery and cursor rotation.

The cursor manager holds the single cursor of the shard being read. It
never repairs a rejected cursor on its own: the poll loop calls
invalidate() after a CursorExpiredError and the next current() call
obtains a fresh one.
"""

import logging
from typing import Optional, Protocol

from core.errors import PipelineError, StreamInitializationError
from core.logging import get_logger, log_with_context
from stream_indexer.config import IteratorType
from stream_indexer.schemas.records import BatchReadResult, Shard

logger = get_logger(__name__)


class CursorSource(Protocol):
    """The part of the log storage client the cursor manager needs."""

    async def describe_stream(self, stream_name: str) -> list: ...

    async def get_cursor(
        self, stream_name: str, shard_id: str, iterator_type: IteratorType
    ) -> str: ...


async def resolve_shard(
    client: CursorSource,
    stream_name: str,
    shard_id: Optional[str] = None,
    iterator_type: IteratorType = IteratorType.LATEST,
) -> Shard:
    """
    Locate the shard to read, once, at startup.

    Args:
        client: Log storage client
        stream_name: Stream to describe
        shard_id: Shard to read; None picks the first listed shard
        iterator_type: Where new cursors for this shard start

    Raises:
        StreamInitializationError: Stream cannot be described, has no
            shards, or does not contain the configured shard
    """
    try:
        shard_ids = await client.describe_stream(stream_name)
    except PipelineError as e:
        raise StreamInitializationError(
            f"Cannot describe stream '{stream_name}'",
            cause=e,
            context={"stream_name": stream_name},
        ) from e

    if not shard_ids:
        raise StreamInitializationError(
            f"Stream '{stream_name}' has no shards",
            context={"stream_name": stream_name},
        )

    if shard_id is None:
        shard_id = shard_ids[0]
    elif shard_id not in shard_ids:
        raise StreamInitializationError(
            f"Shard '{shard_id}' not found in stream '{stream_name}'",
            context={"stream_name": stream_name, "available_shards": shard_ids},
        )

    log_with_context(
        logger,
        logging.INFO,
        "Resolved shard",
        stream_name=stream_name,
        iterator_type=iterator_type.value,
        shard_count=len(shard_ids),
    )
    return Shard(stream_name=stream_name, shard_id=shard_id, iterator_type=iterator_type)


class CursorManager:
    """
    Obtains and rotates the cursor for one shard.

    Usage:
        >>> manager = CursorManager(client, shard)
        >>> cursor = await manager.current()
        >>> result = await client.read_batch(cursor, limit=100)
        >>> if manager.advance(result) is None:
        ...     pass  # shard closed
    """

    def __init__(self, client: CursorSource, shard: Shard):
        self.client = client
        self.shard = shard
        self._cursor: Optional[str] = None
        self._initializations = 0

    @property
    def cursor(self) -> Optional[str]:
        """The cursor currently held, or None."""
        return self._cursor

    @property
    def initializations(self) -> int:
        """How many times a fresh cursor has been obtained."""
        return self._initializations

    async def initialize(self) -> str:
        """Obtain a fresh cursor using the shard's iterator type."""
        cursor = await self.client.get_cursor(
            self.shard.stream_name,
            self.shard.shard_id,
            self.shard.iterator_type,
        )
        self._cursor = cursor
        self._initializations += 1
        logger.debug(
            "Obtained shard cursor",
            extra={
                "stream_name": self.shard.stream_name,
                "iterator_type": self.shard.iterator_type.value,
            },
        )
        return cursor

    async def current(self) -> str:
        """The cursor to read with, initializing first if none is held."""
        if self._cursor is None:
            return await self.initialize()
        return self._cursor

    def advance(self, result: BatchReadResult) -> Optional[str]:
        """
        Adopt the cursor returned by a successful read.

        Returns:
            The next cursor, or None if the shard has been closed
        """
        self._cursor = result.next_cursor
        return self._cursor

    def invalidate(self) -> None:
        """Drop the held cursor after the log storage rejected it."""
        self._cursor = None
