"""
pytest configuration for stream indexer tests.

Adds src directory to Python path for imports and provides shared
fixtures for configs and mock collaborators.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from core.logging import clear_log_context  # noqa: E402
from stream_indexer.config import (  # noqa: E402
    IndexerConfig,
    OpenSearchConfig,
    PipelineConfig,
    PipelineMode,
    StreamConfig,
)

CONFIG_ENV_VARS = [
    "KINESIS_STREAM_NAME",
    "KINESIS_SHARD_ID",
    "KINESIS_ITERATOR_TYPE",
    "POLL_INTERVAL_SECONDS",
    "POLL_BACKOFF_SECONDS",
    "POLL_BATCH_LIMIT",
    "AWS_REGION",
    "AWS_ENDPOINT_URL",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_S3_FORCE_PATH_STYLE",
    "OPENSEARCH_ENDPOINT",
    "OPENSEARCH_USERNAME",
    "OPENSEARCH_PASSWORD",
    "OPENSEARCH_VERIFY_SSL",
    "OPENSEARCH_TIMEOUT",
    "PIPELINE_MODE",
    "PIPELINE_MAX_CONCURRENCY",
    "FILES_INDEX",
    "PRODUCTS_INDEX",
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep the host's environment out of config loading."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def products_config() -> IndexerConfig:
    return IndexerConfig(
        stream=StreamConfig(
            stream_name="file-upload-stream",
            poll_interval_seconds=1.0,
            backoff_seconds=5.0,
            batch_limit=100,
        ),
        opensearch=OpenSearchConfig(endpoint="http://localhost:9200"),
        pipeline=PipelineConfig(mode=PipelineMode.PRODUCTS, max_concurrency=4),
    )


@pytest.fixture
def files_config(products_config) -> IndexerConfig:
    products_config.pipeline = PipelineConfig(mode=PipelineMode.FILES, max_concurrency=4)
    return products_config


@pytest.fixture
def mock_search_store():
    """Search store collaborator; every index exists unless a test says otherwise."""
    store = AsyncMock()
    store.index_exists = AsyncMock(return_value=True)
    store.create_index = AsyncMock(return_value=None)
    store.upsert_document = AsyncMock(return_value={"result": "created"})
    return store


@pytest.fixture
def mock_object_store():
    store = AsyncMock()
    store.fetch_text = AsyncMock(return_value="")
    return store
