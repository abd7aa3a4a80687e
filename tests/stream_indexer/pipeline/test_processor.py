"""
Unit tests for RecordPipeline.

Uses a real DocumentIndexer over a mock search store so assertions can be
made on the exact upsert calls (index, document id, body).
"""

import asyncio
import json
import logging
from unittest.mock import AsyncMock, call

import pytest

from core.errors import ErrorCategory, ObjectFetchError, SearchStoreError
from stream_indexer.config import PipelineConfig, PipelineMode
from stream_indexer.pipeline.processor import (
    ProcessingStage,
    RecordPipeline,
    RecordStatus,
)
from stream_indexer.search.indexer import DocumentIndexer
from tests.helpers import make_record

REFERENCE = {
    "bucket": "b",
    "key": "k.json",
    "contentType": "application/json",
    "size": 42,
    "timestamp": "2024-01-01T00:00:00Z",
}
PRODUCT_TEXT = '{"id":"p1","name":"Widget","description":"A widget","price":9.99}'


@pytest.fixture
def products_pipeline(mock_search_store):
    config = PipelineConfig(mode=PipelineMode.PRODUCTS, max_concurrency=4)
    return RecordPipeline(config, DocumentIndexer(mock_search_store, config))


@pytest.fixture
def files_pipeline(mock_search_store, mock_object_store):
    config = PipelineConfig(mode=PipelineMode.FILES, max_concurrency=4)
    return RecordPipeline(
        config,
        DocumentIndexer(mock_search_store, config),
        object_store=mock_object_store,
        shard_id="shardId-000000000000",
    )


class TestProductsMode:
    @pytest.mark.asyncio
    async def test_direct_product_scenario(self, products_pipeline, mock_search_store):
        record = make_record(b'{"id":"p2","name":"Gadget","price":5}')

        outcome = await products_pipeline.process(record)

        assert outcome.status == RecordStatus.INDEXED
        assert outcome.documents_indexed == 1
        mock_search_store.upsert_document.assert_awaited_once_with(
            "products", "p2", {"id": "p2", "name": "Gadget", "price": 5}
        )

    @pytest.mark.asyncio
    async def test_double_encoded_matches_single(self, products_pipeline, mock_search_store):
        body = {"id": "p3", "name": "Lamp", "description": "Bright", "price": 20}

        await products_pipeline.process(make_record(json.dumps(body)))
        await products_pipeline.process(make_record(json.dumps(json.dumps(body))))

        first, second = mock_search_store.upsert_document.await_args_list
        assert first == second

    @pytest.mark.asyncio
    async def test_redelivery_targets_same_document(self, products_pipeline, mock_search_store):
        record = make_record({"id": 17, "name": "Numbered"})

        await products_pipeline.process(record)
        await products_pipeline.process(record)

        ids = [c.args[1] for c in mock_search_store.upsert_document.await_args_list]
        assert ids == ["17", "17"]

    @pytest.mark.asyncio
    async def test_malformed_json_skipped(self, products_pipeline, mock_search_store, caplog):
        record = make_record(b"{not json", sequence_number="seq-bad")

        with caplog.at_level(logging.WARNING):
            outcome = await products_pipeline.process(record)

        assert outcome.status == RecordStatus.SKIPPED
        assert outcome.failed_stage == ProcessingStage.DECODE
        mock_search_store.upsert_document.assert_not_called()

        skip = next(r for r in caplog.records if r.getMessage() == "Skipping record")
        assert skip.sequence_number == "seq-bad"
        assert skip.processing_stage == "decode"
        assert skip.error_category == "permanent"

    @pytest.mark.asyncio
    async def test_missing_id_skipped_at_build(self, products_pipeline, mock_search_store):
        outcome = await products_pipeline.process(make_record({"name": "No id"}))

        assert outcome.status == RecordStatus.SKIPPED
        assert outcome.failed_stage == ProcessingStage.BUILD
        mock_search_store.upsert_document.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_string_fields_indexed_as_received(
        self, products_pipeline, mock_search_store
    ):
        record = make_record({"id": "p1", "name": 123, "description": 4.5, "price": "5"})

        outcome = await products_pipeline.process(record)

        assert outcome.status == RecordStatus.INDEXED
        mock_search_store.upsert_document.assert_awaited_once_with(
            "products", "p1", {"id": "p1", "name": 123, "description": 4.5, "price": "5"}
        )

    @pytest.mark.asyncio
    async def test_index_failure_reported(self, products_pipeline, mock_search_store):
        mock_search_store.upsert_document.side_effect = SearchStoreError(
            "PUT products/_doc/p1 returned 503", status=503, category=ErrorCategory.TRANSIENT
        )

        outcome = await products_pipeline.process(make_record({"id": "p1"}))

        assert outcome.status == RecordStatus.SKIPPED
        assert outcome.failed_stage == ProcessingStage.INDEX
        assert outcome.documents_failed == 1


class TestFilesMode:
    @pytest.mark.asyncio
    async def test_file_and_derived_product_scenario(
        self, files_pipeline, mock_search_store, mock_object_store
    ):
        mock_object_store.fetch_text.return_value = PRODUCT_TEXT

        outcome = await files_pipeline.process(make_record(REFERENCE))

        mock_object_store.fetch_text.assert_awaited_once_with("b", "k.json")
        assert mock_search_store.upsert_document.await_args_list == [
            call(
                "files",
                "s3://b/k.json",
                {
                    "fileName": "k.json",
                    "content": PRODUCT_TEXT,
                    "contentType": "application/json",
                    "size": 42,
                    "timestamp": "2024-01-01T00:00:00Z",
                    "s3Location": "s3://b/k.json",
                },
            ),
            call(
                "products",
                "p1",
                {"id": "p1", "name": "Widget", "description": "A widget", "price": 9.99},
            ),
        ]
        assert outcome.status == RecordStatus.INDEXED
        assert outcome.documents_indexed == 2
        assert outcome.failed_stage is None

    @pytest.mark.asyncio
    async def test_non_json_content_keeps_file_document(
        self, files_pipeline, mock_search_store, mock_object_store
    ):
        mock_object_store.fetch_text.return_value = "plain text notes"

        outcome = await files_pipeline.process(make_record(REFERENCE))

        mock_search_store.upsert_document.assert_awaited_once()
        assert mock_search_store.upsert_document.await_args.args[0] == "files"
        assert outcome.status == RecordStatus.INDEXED
        assert outcome.documents_indexed == 1
        assert outcome.failed_stage == ProcessingStage.DERIVE

    @pytest.mark.asyncio
    async def test_double_encoded_content_derives_product(
        self, files_pipeline, mock_search_store, mock_object_store
    ):
        mock_object_store.fetch_text.return_value = json.dumps(PRODUCT_TEXT)

        await files_pipeline.process(make_record(REFERENCE))

        products_call = mock_search_store.upsert_document.await_args_list[1]
        assert products_call.args[:2] == ("products", "p1")

    @pytest.mark.asyncio
    async def test_fetch_failure_skips_record(
        self, files_pipeline, mock_search_store, mock_object_store, caplog
    ):
        mock_object_store.fetch_text.side_effect = ObjectFetchError(
            "GetObject failed for s3://b/k.json: NoSuchKey",
            category=ErrorCategory.PERMANENT,
        )

        with caplog.at_level(logging.WARNING):
            outcome = await files_pipeline.process(make_record(REFERENCE))

        assert outcome.status == RecordStatus.SKIPPED
        assert outcome.failed_stage == ProcessingStage.FETCH
        mock_search_store.upsert_document.assert_not_called()
        skip = next(r for r in caplog.records if r.getMessage() == "Skipping record")
        assert skip.processing_stage == "fetch"

    @pytest.mark.asyncio
    async def test_epoch_timestamp_reference_indexed(
        self, files_pipeline, mock_search_store, mock_object_store
    ):
        mock_object_store.fetch_text.return_value = "notes"
        reference = {"bucket": "b", "key": "k.txt", "timestamp": 1704067200000, "size": "12"}

        outcome = await files_pipeline.process(make_record(reference))

        mock_object_store.fetch_text.assert_awaited_once_with("b", "k.txt")
        mock_search_store.upsert_document.assert_awaited_once_with(
            "files",
            "s3://b/k.txt",
            {
                "fileName": "k.txt",
                "content": "notes",
                "size": "12",
                "timestamp": 1704067200000,
                "s3Location": "s3://b/k.txt",
            },
        )
        assert outcome.status == RecordStatus.INDEXED

    @pytest.mark.asyncio
    async def test_inline_product_is_not_a_reference(
        self, files_pipeline, mock_search_store, mock_object_store
    ):
        outcome = await files_pipeline.process(make_record({"id": "p1"}))

        assert outcome.failed_stage == ProcessingStage.DECODE
        mock_object_store.fetch_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_partial_when_file_write_fails(
        self, files_pipeline, mock_search_store, mock_object_store
    ):
        mock_object_store.fetch_text.return_value = PRODUCT_TEXT
        mock_search_store.upsert_document.side_effect = [
            SearchStoreError("rejected", status=400, category=ErrorCategory.PERMANENT),
            {"result": "created"},
        ]

        outcome = await files_pipeline.process(make_record(REFERENCE))

        assert outcome.status == RecordStatus.PARTIAL
        assert outcome.documents_indexed == 1
        assert outcome.documents_failed == 1

    def test_files_mode_requires_object_store(self, mock_search_store):
        config = PipelineConfig(mode=PipelineMode.FILES)
        with pytest.raises(ValueError):
            RecordPipeline(config, DocumentIndexer(mock_search_store, config))


class TestProcessBatch:
    @pytest.mark.asyncio
    async def test_malformed_record_does_not_abort_batch(
        self, products_pipeline, mock_search_store, caplog
    ):
        records = [make_record({"id": f"p{i}"}, sequence_number=str(i)) for i in range(5)]
        records.insert(2, make_record(b"\x00garbage", sequence_number="bad"))

        with caplog.at_level(logging.WARNING):
            batch = await products_pipeline.process_batch(records)

        assert mock_search_store.upsert_document.await_count == 5
        assert batch.indexed == 5
        assert batch.skipped == 1
        skips = [r for r in caplog.records if r.getMessage() == "Skipping record"]
        assert len(skips) == 1
        assert skips[0].sequence_number == "bad"

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, mock_search_store):
        config = PipelineConfig(mode=PipelineMode.PRODUCTS, max_concurrency=2)
        pipeline = RecordPipeline(config, DocumentIndexer(mock_search_store, config))
        in_flight = 0
        peak = 0

        async def slow_upsert(*args):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return {"result": "created"}

        mock_search_store.upsert_document = AsyncMock(side_effect=slow_upsert)
        records = [make_record({"id": f"p{i}"}, sequence_number=str(i)) for i in range(8)]

        batch = await pipeline.process_batch(records)

        assert batch.indexed == 8
        assert peak == 2

    @pytest.mark.asyncio
    async def test_empty_batch(self, products_pipeline):
        batch = await products_pipeline.process_batch([])
        assert batch.outcomes == []
        assert batch.documents_indexed == 0
