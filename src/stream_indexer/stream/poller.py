"""
Shard poll loop.

Reads one shard forever: read a batch, hand the whole batch to the record
pipeline, wait for every record to finish, adopt the next cursor, sleep.

Failure handling per iteration:
    - expired/invalid cursor: drop it, sleep the idle interval, re-obtain
    - any other read failure: log, sleep the backoff interval, retry with
      the same cursor
    - shard closed (no next cursor): log and stop

Startup failures (shard resolution, first cursor) are fatal and raised as
StreamInitializationError.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from core.errors import (
    CursorExpiredError,
    StreamInitializationError,
    wrap_exception,
)
from core.logging import get_logger, log_exception, log_with_context, set_log_context
from stream_indexer.config import IndexerConfig, PipelineMode
from stream_indexer.pipeline.processor import RecordPipeline
from stream_indexer.schemas.records import Shard
from stream_indexer.search.indexer import DocumentIndexer
from stream_indexer.stream.cursor import CursorManager, resolve_shard

logger = get_logger(__name__)


class StreamPoller:
    """
    Polls one Kinesis shard and indexes what it reads.

    The collaborators are created by the caller and owned by the poller
    once passed in: start() connects them and stop() closes them.

    Example:
        >>> poller = StreamPoller(config, kinesis, opensearch, object_store=s3)
        >>> await poller.start()
        >>> try:
        ...     await poller.run()
        ... finally:
        ...     await poller.stop()
    """

    def __init__(
        self,
        config: IndexerConfig,
        stream_client: Any,
        search_client: Any,
        object_store: Optional[Any] = None,
        shutdown_event: Optional[asyncio.Event] = None,
    ):
        if config.pipeline.mode == PipelineMode.FILES and object_store is None:
            raise ValueError("files mode requires an object store")

        self.config = config
        self.stream_client = stream_client
        self.search_client = search_client
        self.object_store = object_store
        self._shutdown_event = shutdown_event or asyncio.Event()

        self.indexer = DocumentIndexer(search_client, config.pipeline)

        # Set by start()
        self.shard: Optional[Shard] = None
        self._cursors: Optional[CursorManager] = None
        self._pipeline: Optional[RecordPipeline] = None
        self._running = False

        # Stats
        self._polls = 0
        self._batches = 0
        self._records_seen = 0
        self._records_indexed = 0
        self._records_skipped = 0
        self._read_failures = 0
        self._cursor_resets = 0

    async def __aenter__(self) -> "StreamPoller":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    @property
    def shutdown_event(self) -> asyncio.Event:
        return self._shutdown_event

    async def start(self) -> None:
        """
        Connect collaborators, resolve the shard, ensure index schemas and
        obtain the first cursor.

        Raises:
            StreamInitializationError: Any startup step failed
        """
        stream = self.config.stream
        logger.info(
            "Starting stream poller",
            extra={
                "stream_name": stream.stream_name,
                "mode": self.config.pipeline.mode.value,
                "iterator_type": stream.iterator_type.value,
            },
        )

        try:
            await self.stream_client.connect()
            await self.search_client.connect()
            if self.object_store is not None:
                await self.object_store.connect()

            self.shard = await resolve_shard(
                self.stream_client,
                stream.stream_name,
                shard_id=stream.shard_id,
                iterator_type=stream.iterator_type,
            )
            set_log_context(shard_id=self.shard.shard_id)

            await self.indexer.ensure_all()

            self._cursors = CursorManager(self.stream_client, self.shard)
            await self._cursors.initialize()
        except StreamInitializationError:
            raise
        except Exception as e:
            raise StreamInitializationError(
                f"Failed to start polling stream '{stream.stream_name}': {e}",
                cause=e,
                context={"stream_name": stream.stream_name},
            ) from e

        self._pipeline = RecordPipeline(
            self.config.pipeline,
            self.indexer,
            object_store=self.object_store,
            shard_id=self.shard.shard_id,
        )
        self._running = True
        logger.info("Stream poller started", extra={"stream_name": stream.stream_name})

    async def stop(self) -> None:
        """Signal shutdown and close collaborators.

        Errors while closing are logged; every collaborator gets closed.
        """
        self._shutdown_event.set()
        self._running = False

        for name, client in (
            ("stream client", self.stream_client),
            ("search client", self.search_client),
            ("object store", self.object_store),
        ):
            if client is None:
                continue
            try:
                await client.close()
            except Exception as e:
                logger.warning(
                    f"Error closing {name} during poller shutdown",
                    extra={"error_message": str(e)[:200]},
                )

        logger.info("Stream poller stopped", extra=self.stats)

    async def run(self, max_iterations: Optional[int] = None) -> None:
        """
        Main poll loop.

        Runs until the shutdown event is set, the shard is closed, or
        `max_iterations` iterations have completed.
        """
        if self._cursors is None or self._pipeline is None:
            raise RuntimeError("StreamPoller.start() must be called before run()")

        logger.info("Starting poll loop")
        iterations = 0

        while not self._shutdown_event.is_set():
            if max_iterations is not None and iterations >= max_iterations:
                break
            iterations += 1

            delay = await self._poll_once()
            if delay is None:
                break

            if await self._wait(delay):
                break

        self._running = False
        logger.info(
            "Poll loop ended",
            extra={"records_processed": self._records_seen, "read_failures": self._read_failures},
        )

    async def _poll_once(self) -> Optional[float]:
        """
        One iteration: read, process, advance.

        Returns:
            Seconds to sleep before the next iteration, or None to stop
        """
        assert self._cursors is not None and self._pipeline is not None
        stream = self.config.stream
        self._polls += 1

        try:
            cursor = await self._cursors.current()
            result = await self.stream_client.read_batch(cursor, stream.batch_limit)
        except CursorExpiredError as e:
            self._cursor_resets += 1
            log_exception(
                logger,
                e,
                "Shard cursor rejected, obtaining a new one",
                level=logging.WARNING,
                include_traceback=False,
            )
            self._cursors.invalidate()
            return stream.poll_interval_seconds
        except Exception as e:
            self._read_failures += 1
            error = wrap_exception(e)
            log_exception(
                logger,
                error,
                "Failed to read from shard, backing off",
                level=logging.WARNING,
                include_traceback=False,
                backoff_seconds=stream.backoff_seconds,
            )
            return stream.backoff_seconds

        self._batches += 1
        self._records_seen += len(result.records)

        if result.records:
            outcome = await self._pipeline.process_batch(result.records)
            self._records_indexed += outcome.indexed + outcome.partial
            self._records_skipped += outcome.skipped

        log_with_context(
            logger,
            logging.DEBUG,
            "Read batch",
            batch_size=len(result.records),
            millis_behind_latest=result.millis_behind_latest,
        )

        if self._cursors.advance(result) is None:
            logger.info(
                "Shard closed, no further records will arrive",
                extra={"stream_name": stream.stream_name},
            )
            return None

        return stream.poll_interval_seconds

    async def _wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds. Returns True if shutdown was requested."""
        try:
            await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def stats(self) -> Dict[str, Any]:
        """Current poller statistics."""
        return {
            "polls": self._polls,
            "batches": self._batches,
            "records_seen": self._records_seen,
            "records_indexed": self._records_indexed,
            "records_skipped": self._records_skipped,
            "read_failures": self._read_failures,
            "cursor_resets": self._cursor_resets,
        }
