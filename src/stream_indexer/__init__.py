"""Kinesis stream to OpenSearch indexer."""

__version__ = "0.1.0"
