"""
Stream indexer schemas.

Schemas:
    records.py   - Shard, StreamRecord, BatchReadResult (log storage side)
    documents.py - ObjectReference, FileDocument, ProductDocument (pydantic)
"""

from stream_indexer.schemas.documents import FileDocument, ObjectReference, ProductDocument
from stream_indexer.schemas.records import BatchReadResult, Shard, StreamRecord

__all__ = [
    "BatchReadResult",
    "FileDocument",
    "ObjectReference",
    "ProductDocument",
    "Shard",
    "StreamRecord",
]
