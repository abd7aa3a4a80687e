"""
Record pipeline.

Turns stream records into indexed documents:

    products mode:  decode -> build product -> index
    files mode:     decode reference -> fetch object -> build file -> index
                    -> derive product from the fetched content -> index

process() never raises for a bad record. Every failure is logged with the
record's sequence number and the stage that failed, and the record is
skipped. A failed derive step never undoes the file document already
written. Documents are submitted once; retries are not attempted here.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError

from core.errors import DocumentBuildError, PayloadDecodeError, PipelineError, wrap_exception
from core.logging import RecordLogContext, get_logger, log_exception, log_with_context
from stream_indexer.config import PipelineConfig, PipelineMode
from stream_indexer.pipeline.decoding import DecodedPayload, decode_payload, decode_text
from stream_indexer.schemas.documents import FileDocument, ProductDocument
from stream_indexer.schemas.records import StreamRecord
from stream_indexer.search.indexer import DocumentIndexer

logger = get_logger(__name__)


class ProcessingStage(str, Enum):
    DECODE = "decode"
    FETCH = "fetch"
    BUILD = "build"
    INDEX = "index"
    DERIVE = "derive"


class RecordStatus(str, Enum):
    INDEXED = "indexed"  # every document written
    PARTIAL = "partial"  # some documents written, some writes failed
    SKIPPED = "skipped"  # nothing written


@dataclass
class RecordOutcome:
    """Result of processing one record."""

    sequence_number: str
    documents_indexed: int = 0
    documents_failed: int = 0
    failed_stage: Optional[ProcessingStage] = None
    error: Optional[str] = None

    @property
    def status(self) -> RecordStatus:
        if self.documents_indexed == 0:
            return RecordStatus.SKIPPED
        if self.documents_failed:
            return RecordStatus.PARTIAL
        return RecordStatus.INDEXED


@dataclass
class BatchOutcome:
    """Summary of one fully processed batch."""

    outcomes: List[RecordOutcome] = field(default_factory=list)
    duration_ms: float = 0.0

    def count(self, status: RecordStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def indexed(self) -> int:
        return self.count(RecordStatus.INDEXED)

    @property
    def partial(self) -> int:
        return self.count(RecordStatus.PARTIAL)

    @property
    def skipped(self) -> int:
        return self.count(RecordStatus.SKIPPED)

    @property
    def documents_indexed(self) -> int:
        return sum(o.documents_indexed for o in self.outcomes)


class ObjectFetcher(Protocol):
    async def fetch_text(self, bucket: str, key: str) -> str: ...


class RecordPipeline:
    """
    Processes stream records into search documents.

    Usage:
        >>> pipeline = RecordPipeline(config.pipeline, indexer, object_store)
        >>> outcome = await pipeline.process_batch(result.records)
    """

    def __init__(
        self,
        config: PipelineConfig,
        indexer: DocumentIndexer,
        object_store: Optional[ObjectFetcher] = None,
        shard_id: Optional[str] = None,
    ):
        if config.mode == PipelineMode.FILES and object_store is None:
            raise ValueError("files mode requires an object store")

        self.config = config
        self.indexer = indexer
        self.object_store = object_store
        self.shard_id = shard_id
        self._semaphore = asyncio.Semaphore(config.max_concurrency)

    async def process_batch(self, records: List[StreamRecord]) -> BatchOutcome:
        """
        Process one batch with bounded concurrency.

        Returns only after every record of the batch has finished, so at
        most one batch is ever in flight.
        """
        start = time.perf_counter()

        async def bounded_process(record: StreamRecord) -> RecordOutcome:
            async with self._semaphore:
                return await self.process(record)

        results = await asyncio.gather(
            *(bounded_process(r) for r in records), return_exceptions=True
        )

        outcomes: List[RecordOutcome] = []
        for record, result in zip(records, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                log_exception(
                    logger,
                    result,
                    "Unhandled exception processing record",
                    sequence_number=record.sequence_number,
                )
                outcomes.append(
                    RecordOutcome(
                        sequence_number=record.sequence_number, error=str(result)
                    )
                )
            else:
                outcomes.append(result)

        batch = BatchOutcome(
            outcomes=outcomes,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        if records:
            log_with_context(
                logger,
                logging.INFO,
                "Batch processing complete",
                batch_size=len(records),
                records_succeeded=batch.indexed,
                records_failed=batch.partial,
                records_skipped=batch.skipped,
                documents_indexed=batch.documents_indexed,
                duration_ms=batch.duration_ms,
            )
        return batch

    async def process(self, record: StreamRecord) -> RecordOutcome:
        """Process one record. Never raises for record-level failures."""
        outcome = RecordOutcome(sequence_number=record.sequence_number)

        with RecordLogContext(
            sequence_number=record.sequence_number,
            shard_id=self.shard_id,
            partition_key=record.partition_key,
        ):
            stage = ProcessingStage.DECODE
            try:
                payload = decode_payload(record.data, self.config.mode)
                logger.debug(
                    "Decoded record",
                    extra={"payload_kind": payload.kind.value, "mode": self.config.mode.value},
                )
                if self.config.mode == PipelineMode.FILES:
                    await self._process_file(record, payload, outcome)
                else:
                    stage = ProcessingStage.BUILD
                    product = self._build_product(payload)
                    stage = ProcessingStage.INDEX
                    await self._index(self.config.products_index, product, outcome)
            except _StageError as e:
                self._skip(record, e.stage, e.error, outcome)
            except PipelineError as e:
                self._skip(record, stage, e, outcome)
            except Exception as e:
                # Programming errors: keep the batch going, but with a traceback
                log_exception(
                    logger,
                    e,
                    "Unexpected error processing record",
                    sequence_number=record.sequence_number,
                    processing_stage=stage.value,
                )
                outcome.failed_stage = stage
                outcome.error = str(e)[:500]

        return outcome

    async def _process_file(
        self, record: StreamRecord, payload: DecodedPayload, outcome: RecordOutcome
    ) -> None:
        reference = payload.reference
        assert reference is not None and self.object_store is not None

        try:
            content = await self.object_store.fetch_text(reference.bucket, reference.key)
        except Exception as e:
            raise _StageError(ProcessingStage.FETCH, e) from e

        try:
            file_document = FileDocument.from_reference(reference, content)
        except PydanticValidationError as e:
            raise _StageError(
                ProcessingStage.BUILD,
                DocumentBuildError(f"Invalid file document: {e.error_count()} error(s)", cause=e),
            ) from e

        await self._index(self.config.files_index, file_document, outcome)

        # The file document stays indexed whatever happens from here on
        try:
            product = self._build_product(decode_text(content))
        except (PayloadDecodeError, DocumentBuildError) as e:
            outcome.failed_stage = ProcessingStage.DERIVE
            log_exception(
                logger,
                e,
                "Fetched content is not a product document, indexed file only",
                level=logging.INFO,
                include_traceback=False,
                sequence_number=record.sequence_number,
                processing_stage=ProcessingStage.DERIVE.value,
                key=reference.key,
            )
            return

        await self._index(self.config.products_index, product, outcome)

    def _build_product(self, payload: DecodedPayload) -> ProductDocument:
        try:
            return ProductDocument.model_validate(payload.body)
        except PydanticValidationError as e:
            raise DocumentBuildError(
                f"Invalid product document: {e.error_count()} validation error(s)",
                cause=e,
            ) from e

    async def _index(self, index_name: str, document, outcome: RecordOutcome) -> None:
        if await self.indexer.upsert(index_name, document):
            outcome.documents_indexed += 1
        else:
            outcome.documents_failed += 1
            outcome.failed_stage = ProcessingStage.INDEX

    def _skip(
        self,
        record: StreamRecord,
        stage: ProcessingStage,
        error: Exception,
        outcome: RecordOutcome,
    ) -> None:
        outcome.failed_stage = stage
        outcome.error = str(error)[:500]
        log_exception(
            logger,
            error,
            "Skipping record",
            level=logging.WARNING,
            include_traceback=False,
            sequence_number=record.sequence_number,
            processing_stage=stage.value,
            error_category=wrap_exception(error).category.value,
        )


class _StageError(Exception):
    """Carries the failing stage out of a nested step."""

    def __init__(self, stage: ProcessingStage, error: Exception):
        super().__init__(str(error))
        self.stage = stage
        self.error = error
