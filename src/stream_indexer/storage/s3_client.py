"""
S3 object store client.

Fetches objects referenced by files-mode stream records. The whole body
is accumulated before it is returned; callers never see a partial object.
"""

import logging
import time
from contextlib import AsyncExitStack
from typing import Any, List, Optional

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from core.errors import (
    ErrorCategory,
    ObjectFetchError,
    classify_exception,
    classify_http_status,
)
from core.logging import LoggedClass
from stream_indexer.config import AwsConfig

NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "404", "NotFound"})


class S3ObjectStore(LoggedClass):
    """
    Object store collaborator backed by S3 (or LocalStack/MinIO).

    Usage:
        >>> async with S3ObjectStore(config.aws) as store:
        ...     text = await store.fetch_text("s3-upload-bucket", "catalog.json")
    """

    CHUNK_SIZE = 64 * 1024

    def __init__(self, aws: AwsConfig, session: Optional[aioboto3.Session] = None):
        self.aws = aws
        self._session = session or aioboto3.Session()
        self._exit_stack: Optional[AsyncExitStack] = None
        self._client: Any = None
        super().__init__()

    async def __aenter__(self) -> "S3ObjectStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        if self._client is not None:
            return
        kwargs = self.aws.client_kwargs()
        if self.aws.force_path_style:
            kwargs["config"] = Config(s3={"addressing_style": "path"})
        self._exit_stack = AsyncExitStack()
        self._client = await self._exit_stack.enter_async_context(
            self._session.client("s3", **kwargs)
        )

    async def close(self) -> None:
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
        self._exit_stack = None
        self._client = None

    async def fetch_bytes(self, bucket: str, key: str) -> bytes:
        """
        Download an object, accumulating every chunk before returning.

        Raises:
            ObjectFetchError: Object missing (PERMANENT) or the request
                failed (category from the underlying error)
        """
        if self._client is None:
            raise RuntimeError("S3ObjectStore is not connected; call connect() first")

        context = {"bucket": bucket, "key": key}
        start = time.perf_counter()
        chunks: List[bytes] = []

        try:
            response = await self._client.get_object(Bucket=bucket, Key=key)
            async with response["Body"] as body:
                async for chunk in body.iter_chunks(self.CHUNK_SIZE):
                    chunks.append(chunk)
        except ClientError as e:
            error = e.response.get("Error", {})
            code = str(error.get("Code", ""))
            if code in NOT_FOUND_CODES:
                category = ErrorCategory.PERMANENT
            else:
                status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
                category = (
                    classify_http_status(status) if status else classify_exception(e)
                )
            raise ObjectFetchError(
                f"GetObject failed for s3://{bucket}/{key}: {code or e}",
                category=category,
                cause=e,
                context=dict(context, error_code=code),
            ) from e
        except BotoCoreError as e:
            raise ObjectFetchError(
                f"GetObject failed for s3://{bucket}/{key}: {e}",
                category=classify_exception(e),
                cause=e,
                context=context,
            ) from e

        data = b"".join(chunks)
        self._log(
            logging.DEBUG,
            "Fetched object",
            bucket=bucket,
            key=key,
            content_length=len(data),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return data

    async def fetch_text(self, bucket: str, key: str, encoding: str = "utf-8") -> str:
        """Download an object and decode it as text."""
        data = await self.fetch_bytes(bucket, key)
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as e:
            raise ObjectFetchError(
                f"Object s3://{bucket}/{key} is not valid {encoding} text",
                category=ErrorCategory.PERMANENT,
                cause=e,
                context={"bucket": bucket, "key": key},
            ) from e
