"""
Document indexer.

Ensures index schemas once at startup and performs idempotent upserts
keyed by each document's natural key. A failed write is logged and
dropped; there is no dead-letter path.
"""

import logging
import time
from typing import Any, Dict, Protocol, Set, Union

from core.errors import PipelineError, wrap_exception
from core.logging import get_logger, log_exception, log_with_context
from stream_indexer.config import PipelineConfig
from stream_indexer.schemas.documents import FileDocument, ProductDocument
from stream_indexer.search.mappings import FILES_MAPPING, PRODUCTS_MAPPING

logger = get_logger(__name__)

Document = Union[FileDocument, ProductDocument]


class SearchStore(Protocol):
    async def index_exists(self, name: str) -> bool: ...

    async def create_index(self, name: str, mapping: Dict[str, Any]) -> None: ...

    async def upsert_document(
        self, name: str, doc_id: str, document: Dict[str, Any]
    ) -> Dict[str, Any]: ...


class DocumentIndexer:
    """
    Writes documents to the search store.

    Usage:
        >>> indexer = DocumentIndexer(opensearch_client, config.pipeline)
        >>> await indexer.ensure_all()
        >>> ok = await indexer.upsert("products", ProductDocument(id="p1"))
    """

    def __init__(self, store: SearchStore, config: PipelineConfig):
        self.store = store
        self.config = config
        self._attempted: Set[str] = set()
        self._documents_indexed = 0
        self._documents_failed = 0

    async def ensure_schema(self, index_name: str, mapping: Dict[str, Any]) -> bool:
        """
        Create the index if it does not exist yet.

        Attempted at most once per index name for the lifetime of this
        indexer; an existing index is never altered.

        Returns:
            True if the index was created by this call

        Raises:
            PipelineError: Existence check or creation failed
        """
        if index_name in self._attempted:
            return False
        self._attempted.add(index_name)

        if await self.store.index_exists(index_name):
            logger.debug("Index already exists", extra={"index": index_name})
            return False

        await self.store.create_index(index_name, mapping)
        logger.info("Created index", extra={"index": index_name})
        return True

    async def ensure_all(self) -> None:
        """
        Ensure the files and products indices.

        A failure is logged, not raised: documents can still be written and
        the store falls back to dynamic mapping for a missing index.
        """
        for index_name, mapping in (
            (self.config.files_index, FILES_MAPPING),
            (self.config.products_index, PRODUCTS_MAPPING),
        ):
            try:
                await self.ensure_schema(index_name, mapping)
            except Exception as e:
                log_exception(
                    logger,
                    e,
                    "Failed to ensure index schema",
                    index=index_name,
                    error_category=wrap_exception(e).category.value,
                )

    async def upsert(self, index_name: str, document: Document) -> bool:
        """
        Insert or overwrite one document.

        Returns:
            True on success; False if the write failed (already logged)
        """
        doc_id = document.document_id
        start = time.perf_counter()
        try:
            await self.store.upsert_document(index_name, doc_id, document.to_index_body())
        except Exception as e:
            self._documents_failed += 1
            error = e if isinstance(e, PipelineError) else wrap_exception(e)
            log_exception(
                logger,
                e,
                "Failed to index document",
                level=logging.WARNING,
                include_traceback=False,
                index=index_name,
                document_id=doc_id,
                error_category=error.category.value,
            )
            return False

        self._documents_indexed += 1
        log_with_context(
            logger,
            logging.DEBUG,
            "Indexed document",
            index=index_name,
            document_id=doc_id,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return True

    @property
    def stats(self) -> Dict[str, int]:
        return {
            "documents_indexed": self._documents_indexed,
            "documents_failed": self._documents_failed,
        }
