"""
Kinesis log storage client.

Async wrapper around an aioboto3 Kinesis client. One long-lived client is
opened by connect() and shared for the whole run.

botocore errors are translated into the pipeline's exception hierarchy so
the poll loop can tell an expired cursor from a transient read failure.
"""

import logging
from contextlib import AsyncExitStack
from typing import Any, Dict, List, Optional

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from core.errors import (
    CursorExpiredError,
    NotFoundError,
    PipelineError,
    StreamReadError,
    ThrottlingError,
    ValidationError,
    wrap_exception,
)
from core.logging import LoggedClass
from stream_indexer.config import AwsConfig, IteratorType
from stream_indexer.schemas.records import BatchReadResult, StreamRecord

THROTTLING_CODES = frozenset({
    "ProvisionedThroughputExceededException",
    "LimitExceededException",
    "ThrottlingException",
    "KMSThrottlingException",
})

NOT_FOUND_CODES = frozenset({"ResourceNotFoundException"})


def translate_client_error(
    exc: Exception,
    operation: str,
    context: Optional[dict] = None,
) -> PipelineError:
    """
    Map a botocore exception raised by a Kinesis call to a PipelineError.

    Args:
        exc: Exception raised by the SDK
        operation: Kinesis API name (GetRecords, DescribeStream, ...)
        context: Extra context attached to the returned error

    Returns:
        Typed PipelineError
    """
    context = dict(context or {}, operation=operation)

    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        message = exc.response.get("Error", {}).get("Message", str(exc))
        context["error_code"] = code

        if code == "ExpiredIteratorException":
            return CursorExpiredError(message, cause=exc, context=context)
        if code == "InvalidArgumentException":
            # GetRecords rejects malformed/foreign iterators this way
            if operation == "GetRecords":
                return CursorExpiredError(message, cause=exc, context=context)
            return ValidationError(message, cause=exc, context=context)
        if code in THROTTLING_CODES:
            return ThrottlingError(message, cause=exc, context=context)
        if code in NOT_FOUND_CODES:
            return NotFoundError(message, cause=exc, context=context)

    return wrap_exception(exc, context=context)


class KinesisStreamClient(LoggedClass):
    """
    Log storage collaborator backed by Kinesis.

    Usage:
        >>> async with KinesisStreamClient(config.aws) as client:
        ...     shards = await client.describe_stream("file-upload-stream")
        ...     cursor = await client.get_cursor(
        ...         "file-upload-stream", shards[0], IteratorType.LATEST
        ...     )
        ...     result = await client.read_batch(cursor, limit=100)
    """

    def __init__(self, aws: AwsConfig, session: Optional[aioboto3.Session] = None):
        self.aws = aws
        self._session = session or aioboto3.Session()
        self._exit_stack: Optional[AsyncExitStack] = None
        self._client: Any = None
        super().__init__()

    async def __aenter__(self) -> "KinesisStreamClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        """Open the underlying SDK client. Safe to call more than once."""
        if self._client is not None:
            return
        self._exit_stack = AsyncExitStack()
        self._client = await self._exit_stack.enter_async_context(
            self._session.client("kinesis", **self.aws.client_kwargs())
        )
        self._log(
            logging.DEBUG,
            "Kinesis client connected",
            api_endpoint=self.aws.endpoint_url or "aws",
        )

    async def close(self) -> None:
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
        self._exit_stack = None
        self._client = None

    def _require_client(self) -> Any:
        if self._client is None:
            raise RuntimeError("KinesisStreamClient is not connected; call connect() first")
        return self._client

    async def describe_stream(self, stream_name: str) -> List[str]:
        """
        List the shard ids of a stream.

        Raises:
            NotFoundError: Stream does not exist
            PipelineError: Any other failure
        """
        client = self._require_client()
        shard_ids: List[str] = []
        kwargs: Dict[str, Any] = {"StreamName": stream_name}

        try:
            while True:
                response = await client.describe_stream(**kwargs)
                description = response["StreamDescription"]
                shards = description.get("Shards", [])
                shard_ids.extend(s["ShardId"] for s in shards)
                if not description.get("HasMoreShards") or not shards:
                    break
                kwargs["ExclusiveStartShardId"] = shards[-1]["ShardId"]
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(
                e, "DescribeStream", {"stream_name": stream_name}
            ) from e

        return shard_ids

    async def get_cursor(
        self,
        stream_name: str,
        shard_id: str,
        iterator_type: IteratorType,
    ) -> str:
        """Obtain a shard iterator positioned per iterator_type."""
        client = self._require_client()
        try:
            response = await client.get_shard_iterator(
                StreamName=stream_name,
                ShardId=shard_id,
                ShardIteratorType=iterator_type.value,
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(
                e,
                "GetShardIterator",
                {"stream_name": stream_name, "shard_id": shard_id},
            ) from e

        cursor = response.get("ShardIterator")
        if not cursor:
            raise NotFoundError(
                "Shard iterator not found",
                context={"stream_name": stream_name, "shard_id": shard_id},
            )
        return cursor

    async def read_batch(self, cursor: str, limit: int) -> BatchReadResult:
        """
        Read up to `limit` records starting at `cursor`.

        Raises:
            CursorExpiredError: Cursor expired or rejected as invalid
            ThrottlingError: Read throughput exceeded
            PipelineError: Any other read failure (usually transient)
        """
        client = self._require_client()
        try:
            response = await client.get_records(ShardIterator=cursor, Limit=limit)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, "GetRecords") from e
        except Exception as e:
            raise StreamReadError(f"GetRecords failed: {e}", cause=e) from e

        records = [StreamRecord.from_kinesis(r) for r in response.get("Records", [])]
        return BatchReadResult(
            records=records,
            next_cursor=response.get("NextShardIterator"),
            millis_behind_latest=response.get("MillisBehindLatest"),
        )

    async def put_record(
        self,
        stream_name: str,
        data: bytes,
        partition_key: str,
    ) -> Dict[str, Any]:
        """Append one record. Returns {'ShardId', 'SequenceNumber'}."""
        client = self._require_client()
        try:
            response = await client.put_record(
                StreamName=stream_name,
                Data=data,
                PartitionKey=partition_key,
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(
                e, "PutRecord", {"stream_name": stream_name}
            ) from e
        return {
            "ShardId": response.get("ShardId"),
            "SequenceNumber": response.get("SequenceNumber"),
        }
