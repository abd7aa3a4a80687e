"""Tests for the peek/populate tools and CLI argument parsing."""

import json
import random
import re
from unittest.mock import AsyncMock

import pytest

from core.errors import ThrottlingError
from stream_indexer.__main__ import parse_args
from stream_indexer.config import IteratorType
from stream_indexer.schemas.documents import ProductDocument
from stream_indexer.schemas.records import BatchReadResult
from stream_indexer.tools import (
    generate_product,
    peek_records,
    populate_stream,
    strip_special_characters,
)
from tests.helpers import make_record


class TestGenerateProduct:
    def test_shape(self):
        product = generate_product(random.Random(7))

        assert set(product) == {"id", "name", "description", "price"}
        assert re.fullmatch(r"[a-zA-Z0-9 ]+", product["name"])
        assert re.fullmatch(r"[a-zA-Z0-9 ]+", product["description"])
        assert 1 <= product["price"] <= 1000
        ProductDocument.model_validate(product)

    def test_seeded_generation_is_repeatable(self):
        assert generate_product(random.Random(1)) == generate_product(random.Random(1))

    def test_strip_special_characters(self):
        assert strip_special_characters("Chair-o-matic (v2) & co.") == "Chairomatic v2  co"


@pytest.mark.asyncio
class TestPopulateStream:
    async def test_sends_products_keyed_by_name(self):
        client = AsyncMock()

        sent = await populate_stream(client, "stream", 3, rng=random.Random(3))

        assert sent == 3
        assert client.put_record.await_count == 3
        for c in client.put_record.await_args_list:
            stream_name, data = c.args
            product = json.loads(data)
            assert stream_name == "stream"
            assert c.kwargs["partition_key"] == product["name"]

    async def test_failed_put_skipped(self):
        client = AsyncMock()
        client.put_record.side_effect = [
            {"ShardId": "s-0", "SequenceNumber": "1"},
            ThrottlingError("Rate exceeded"),
            {"ShardId": "s-0", "SequenceNumber": "2"},
        ]

        sent = await populate_stream(client, "stream", 3)

        assert sent == 2
        assert client.put_record.await_count == 3

    async def test_unexpected_put_error_skipped(self):
        client = AsyncMock()
        client.put_record.side_effect = [
            RuntimeError("not connected"),
            {"ShardId": "s-0", "SequenceNumber": "1"},
        ]

        sent = await populate_stream(client, "stream", 2)

        assert sent == 1
        assert client.put_record.await_count == 2


@pytest.mark.asyncio
class TestPeekRecords:
    async def test_reads_one_batch_from_trim_horizon(self):
        client = AsyncMock()
        client.describe_stream.return_value = ["shardId-000000000000"]
        client.get_cursor.return_value = "it-1"
        client.read_batch.return_value = BatchReadResult(
            records=[make_record({"id": "p1"}, sequence_number="100")],
            next_cursor="it-2",
        )

        records = await peek_records(client, "stream", limit=10)

        client.get_cursor.assert_awaited_once_with(
            "stream", "shardId-000000000000", IteratorType.TRIM_HORIZON
        )
        client.read_batch.assert_awaited_once_with("it-1", 10)
        assert records == [
            {"data": '{"id": "p1"}', "sequenceNumber": "100", "approximateArrivalTimestamp": None}
        ]


class TestParseArgs:
    def test_defaults_to_run(self):
        args = parse_args([])
        assert args.command == "run"
        assert args.mode is None
        assert args.log_level == "INFO"

    def test_populate(self):
        args = parse_args(["populate", "--count", "50"])
        assert args.command == "populate"
        assert args.count == 50

    def test_mode_choices(self):
        assert parse_args(["run", "--mode", "products"]).mode == "products"
        with pytest.raises(SystemExit):
            parse_args(["run", "--mode", "bogus"])
