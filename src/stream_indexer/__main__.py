"""
Entry point for the stream indexer.

Usage:
    # Poll the configured shard and index what arrives (default command)
    python -m stream_indexer
    python -m stream_indexer run --mode products

    # Print one batch from the start of the shard
    python -m stream_indexer peek

    # Put synthetic product events on the stream
    python -m stream_indexer populate --count 1000

Configuration comes from src/config.yaml and environment variables; see
stream_indexer.config for the full list.
"""

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

from core.errors import ConfigurationError, StreamInitializationError
from core.logging import get_logger, setup_logging
from stream_indexer.config import IndexerConfig, IteratorType, PipelineMode

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)

# Set by signal handlers, checked by the poller at every iteration boundary
_shutdown_event: Optional[asyncio.Event] = None


def get_shutdown_event() -> asyncio.Event:
    """Get or create the global shutdown event."""
    global _shutdown_event
    if _shutdown_event is None:
        _shutdown_event = asyncio.Event()
    return _shutdown_event


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="stream_indexer",
        description="Index Kinesis stream records into OpenSearch",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Index object-store uploads announced on the stream
    python -m stream_indexer run --mode files

    # Show what is on the shard without indexing it
    python -m stream_indexer peek --limit 10
        """,
    )

    parser.add_argument(
        "command",
        nargs="?",
        choices=["run", "peek", "populate"],
        default="run",
        help="What to do (default: run)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.yaml (default: src/config.yaml)",
    )

    parser.add_argument(
        "--mode",
        choices=[m.value for m in PipelineMode],
        default=None,
        help="Pipeline mode, overrides config (run only)",
    )

    parser.add_argument(
        "--count",
        type=int,
        default=100,
        help="Number of synthetic products to send (populate only, default: 100)",
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Max records to print (peek only, default: 100)",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Log directory path (default: from LOG_DIR env var or ./logs)",
    )

    return parser.parse_args(argv)


async def run_indexer(config: IndexerConfig) -> None:
    """Run the poller until shutdown or shard close.

    Raises:
        StreamInitializationError: Startup failed
    """
    from stream_indexer.search.opensearch_client import OpenSearchClient
    from stream_indexer.storage.s3_client import S3ObjectStore
    from stream_indexer.stream.kinesis_client import KinesisStreamClient
    from stream_indexer.stream.poller import StreamPoller

    object_store = None
    if config.pipeline.mode == PipelineMode.FILES:
        object_store = S3ObjectStore(config.aws)

    poller = StreamPoller(
        config,
        stream_client=KinesisStreamClient(config.aws),
        search_client=OpenSearchClient(config.opensearch),
        object_store=object_store,
        shutdown_event=get_shutdown_event(),
    )

    try:
        await poller.start()
        await poller.run()
    finally:
        await poller.stop()


async def run_peek(config: IndexerConfig, limit: int) -> None:
    from stream_indexer.stream.kinesis_client import KinesisStreamClient
    from stream_indexer.tools import peek_records

    async with KinesisStreamClient(config.aws) as client:
        records = await peek_records(
            client,
            config.stream.stream_name,
            shard_id=config.stream.shard_id,
            iterator_type=IteratorType.TRIM_HORIZON,
            limit=limit,
        )
    print(json.dumps({"records": records}, indent=2))


async def run_populate(config: IndexerConfig, count: int) -> None:
    from stream_indexer.stream.kinesis_client import KinesisStreamClient
    from stream_indexer.tools import populate_stream

    async with KinesisStreamClient(config.aws) as client:
        await populate_stream(client, config.stream.stream_name, count)


def setup_signal_handlers(loop: asyncio.AbstractEventLoop):
    """Set up signal handlers for graceful shutdown.

    First SIGINT/SIGTERM sets the shutdown event: the poller finishes the
    batch in flight and exits. A second one cancels every task.
    """

    def handle_signal(sig):
        logger.info(f"Received signal {sig.name}, initiating graceful shutdown...")
        shutdown_event = get_shutdown_event()
        if not shutdown_event.is_set():
            shutdown_event.set()
        else:
            logger.warning("Received second signal, forcing immediate shutdown...")
            for task in asyncio.all_tasks(loop):
                task.cancel()

    # Signal handlers are not supported on Windows
    if sys.platform == "win32":
        logger.debug("Signal handlers not supported on Windows, using KeyboardInterrupt")
        return

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))


def main(argv=None):
    """Main entry point."""
    global logger
    args = parse_args(argv)

    log_level = getattr(logging, args.log_level)

    # JSON logs: controlled via JSON_LOGS env var (default: true)
    json_logs = os.getenv("JSON_LOGS", "true").lower() in ("true", "1", "yes")

    # Log directory: CLI arg > env var > default ./logs
    log_dir = Path(args.log_dir or os.getenv("LOG_DIR", "logs"))

    if args.mode:
        os.environ["PIPELINE_MODE"] = args.mode

    try:
        config = IndexerConfig.load_config(args.config)
    except ConfigurationError as e:
        setup_logging(stage=args.command, log_dir=log_dir, json_format=json_logs, console_level=log_level)
        logger = get_logger(__name__)
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    setup_logging(
        name="stream_indexer",
        stage=args.command,
        domain=config.pipeline.mode.value,
        log_dir=log_dir,
        json_format=json_logs,
        console_level=log_level,
        worker_id=os.getenv("WORKER_ID", f"indexer-{config.pipeline.mode.value}"),
    )
    logger = get_logger(__name__)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    setup_signal_handlers(loop)

    try:
        if args.command == "peek":
            loop.run_until_complete(run_peek(config, args.limit))
        elif args.command == "populate":
            loop.run_until_complete(run_populate(config, args.count))
        else:
            loop.run_until_complete(run_indexer(config))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
    except StreamInitializationError as e:
        logger.error(f"Failed to initialize: {e}", exc_info=True)
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        loop.close()
        logger.info("Stream indexer shutdown complete")


if __name__ == "__main__":
    main()
