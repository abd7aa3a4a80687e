"""Object store access."""

from stream_indexer.storage.s3_client import S3ObjectStore

__all__ = ["S3ObjectStore"]
