"""Search store access: OpenSearch client, index mappings and the document indexer."""

from stream_indexer.search.indexer import DocumentIndexer
from stream_indexer.search.mappings import FILES_MAPPING, PRODUCTS_MAPPING
from stream_indexer.search.opensearch_client import OpenSearchClient

__all__ = [
    "DocumentIndexer",
    "FILES_MAPPING",
    "OpenSearchClient",
    "PRODUCTS_MAPPING",
]
