"""
Stream indexer configuration.

Sources:
    - Log storage: Kinesis stream (one shard per process)
    - Object store: S3-compatible bucket (files mode only)
    - Search store: OpenSearch cluster

Configuration priority (highest to lowest):
    1. Environment variables
    2. config.yaml file
    3. Dataclass defaults

The configuration is built once at startup and passed to each component's
constructor; it is not mutated for the rest of the run.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.errors import ConfigurationError

# Default config path: config.yaml in src/ directory
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

MAX_BATCH_LIMIT = 10_000  # Kinesis GetRecords hard limit


class IteratorType(str, Enum):
    """Where a freshly obtained cursor starts reading."""

    LATEST = "LATEST"
    TRIM_HORIZON = "TRIM_HORIZON"


class PipelineMode(str, Enum):
    """What a stream record carries."""

    FILES = "files"  # object-store reference -> files + products documents
    PRODUCTS = "products"  # product document inline -> products document


def _parse_bool(value: Any) -> bool:
    return str(value).strip().lower() in ("true", "1", "yes", "on")


def _load_yaml(config_path: Optional[Path]) -> Dict[str, Any]:
    config_path = config_path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return {}
    with open(config_path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a yaml mapping")
    return data


def _section(yaml_data: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return one yaml section with null values dropped, so defaults apply."""
    section = yaml_data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"config.yaml section '{name}:' must be a mapping")
    return {k: v for k, v in section.items() if v is not None}


@dataclass
class StreamConfig:
    """Kinesis stream and poll loop settings. Intervals in seconds."""

    stream_name: str
    shard_id: Optional[str] = None  # None = first shard listed by describe_stream
    iterator_type: IteratorType = IteratorType.LATEST
    poll_interval_seconds: float = 1.0  # Idle sleep after every iteration
    backoff_seconds: float = 5.0  # Cooldown after a transient read failure
    batch_limit: int = 100  # Max records per read

    def validate(self) -> None:
        if not self.stream_name:
            raise ConfigurationError(
                "Stream name is required. "
                "Set in config.yaml under 'stream:' or via KINESIS_STREAM_NAME env var."
            )
        if self.poll_interval_seconds < 0:
            raise ConfigurationError("poll_interval_seconds must be >= 0")
        if self.backoff_seconds <= self.poll_interval_seconds:
            raise ConfigurationError(
                f"backoff_seconds ({self.backoff_seconds}) must exceed "
                f"poll_interval_seconds ({self.poll_interval_seconds})"
            )
        if not 1 <= self.batch_limit <= MAX_BATCH_LIMIT:
            raise ConfigurationError(
                f"batch_limit must be between 1 and {MAX_BATCH_LIMIT}, got {self.batch_limit}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamConfig":
        """Build from a yaml 'stream:' section with env overrides.

        Env vars:
            KINESIS_STREAM_NAME: Stream name (required)
            KINESIS_SHARD_ID: Shard to read (default: first shard)
            KINESIS_ITERATOR_TYPE: LATEST (default) or TRIM_HORIZON
            POLL_INTERVAL_SECONDS: Idle interval (default: 1.0)
            POLL_BACKOFF_SECONDS: Transient failure cooldown (default: 5.0)
            POLL_BATCH_LIMIT: Records per read (default: 100)
        """
        iterator_type = os.getenv(
            "KINESIS_ITERATOR_TYPE", data.get("iterator_type", IteratorType.LATEST.value)
        )
        try:
            iterator = IteratorType(str(iterator_type).upper())
        except ValueError:
            raise ConfigurationError(
                f"Invalid iterator type '{iterator_type}', "
                f"expected one of {[t.value for t in IteratorType]}"
            )

        return cls(
            stream_name=os.getenv("KINESIS_STREAM_NAME", data.get("stream_name", "")),
            shard_id=os.getenv("KINESIS_SHARD_ID", data.get("shard_id")) or None,
            iterator_type=iterator,
            poll_interval_seconds=float(os.getenv(
                "POLL_INTERVAL_SECONDS",
                str(data.get("poll_interval_seconds", 1.0))
            )),
            backoff_seconds=float(os.getenv(
                "POLL_BACKOFF_SECONDS",
                str(data.get("backoff_seconds", 5.0))
            )),
            batch_limit=int(os.getenv(
                "POLL_BATCH_LIMIT",
                str(data.get("batch_limit", 100))
            )),
        )


@dataclass
class AwsConfig:
    """Connection settings shared by the Kinesis and S3 clients."""

    region: str = "us-east-1"
    endpoint_url: Optional[str] = None  # e.g. http://localhost:4566 for LocalStack
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    force_path_style: bool = True

    def client_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for aioboto3 Session.client()."""
        kwargs: Dict[str, Any] = {"region_name": self.region}
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.access_key_id and self.secret_access_key:
            kwargs["aws_access_key_id"] = self.access_key_id
            kwargs["aws_secret_access_key"] = self.secret_access_key
        return kwargs

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AwsConfig":
        """Build from a yaml 'aws:' section with env overrides.

        Env vars:
            AWS_REGION, AWS_ENDPOINT_URL, AWS_ACCESS_KEY_ID,
            AWS_SECRET_ACCESS_KEY, AWS_S3_FORCE_PATH_STYLE
        """
        return cls(
            region=os.getenv("AWS_REGION", data.get("region", "us-east-1")),
            endpoint_url=os.getenv("AWS_ENDPOINT_URL", data.get("endpoint_url")) or None,
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID", data.get("access_key_id")) or None,
            secret_access_key=os.getenv(
                "AWS_SECRET_ACCESS_KEY", data.get("secret_access_key")
            ) or None,
            force_path_style=_parse_bool(os.getenv(
                "AWS_S3_FORCE_PATH_STYLE", str(data.get("force_path_style", True))
            )),
        )


@dataclass
class OpenSearchConfig:
    """OpenSearch REST endpoint settings."""

    endpoint: str
    username: Optional[str] = None
    password: Optional[str] = None
    verify_ssl: bool = True
    timeout_seconds: float = 30.0
    max_connections: int = 20

    def validate(self) -> None:
        if not self.endpoint:
            raise ConfigurationError(
                "OpenSearch endpoint is required. "
                "Set in config.yaml under 'opensearch:' or via OPENSEARCH_ENDPOINT env var."
            )
        if not self.endpoint.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"OpenSearch endpoint must be an http(s) URL, got '{self.endpoint}'"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OpenSearchConfig":
        """Build from a yaml 'opensearch:' section with env overrides.

        Env vars:
            OPENSEARCH_ENDPOINT (required), OPENSEARCH_USERNAME,
            OPENSEARCH_PASSWORD, OPENSEARCH_VERIFY_SSL, OPENSEARCH_TIMEOUT
        """
        return cls(
            endpoint=os.getenv("OPENSEARCH_ENDPOINT", data.get("endpoint") or "").rstrip("/"),
            username=os.getenv("OPENSEARCH_USERNAME", data.get("username")) or None,
            password=os.getenv("OPENSEARCH_PASSWORD", data.get("password")) or None,
            verify_ssl=_parse_bool(os.getenv(
                "OPENSEARCH_VERIFY_SSL", str(data.get("verify_ssl", True))
            )),
            timeout_seconds=float(os.getenv(
                "OPENSEARCH_TIMEOUT", str(data.get("timeout_seconds", 30.0))
            )),
            max_connections=int(data.get("max_connections", 20)),
        )


@dataclass
class PipelineConfig:
    """Record pipeline settings."""

    mode: PipelineMode = PipelineMode.FILES
    max_concurrency: int = 10  # Records in flight within one batch
    files_index: str = "files"
    products_index: str = "products"

    def validate(self) -> None:
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be >= 1")
        if not self.files_index or not self.products_index:
            raise ConfigurationError("Index names must not be empty")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Build from a yaml 'pipeline:' section with env overrides.

        Env vars:
            PIPELINE_MODE: files (default) or products
            PIPELINE_MAX_CONCURRENCY: Records in flight (default: 10)
            FILES_INDEX, PRODUCTS_INDEX: Index names
        """
        mode = os.getenv("PIPELINE_MODE", data.get("mode", PipelineMode.FILES.value))
        try:
            pipeline_mode = PipelineMode(str(mode).lower())
        except ValueError:
            raise ConfigurationError(
                f"Invalid pipeline mode '{mode}', "
                f"expected one of {[m.value for m in PipelineMode]}"
            )

        return cls(
            mode=pipeline_mode,
            max_concurrency=int(os.getenv(
                "PIPELINE_MAX_CONCURRENCY", str(data.get("max_concurrency", 10))
            )),
            files_index=os.getenv("FILES_INDEX", data.get("files_index", "files")),
            products_index=os.getenv(
                "PRODUCTS_INDEX", data.get("products_index", "products")
            ),
        )


@dataclass
class IndexerConfig:
    """Top-level configuration handed to every component."""

    stream: StreamConfig
    opensearch: OpenSearchConfig
    aws: AwsConfig = field(default_factory=AwsConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    def validate(self) -> None:
        """Raise ConfigurationError on the first invalid setting."""
        self.stream.validate()
        self.opensearch.validate()
        self.pipeline.validate()

    @classmethod
    def load_config(cls, config_path: Optional[Path] = None) -> "IndexerConfig":
        """Load configuration from config.yaml and environment variables.

        Expected yaml layout (every key optional):

            stream:
              stream_name: file-upload-stream
              iterator_type: LATEST
            aws:
              endpoint_url: http://localhost:4566
            opensearch:
              endpoint: http://localhost:9200
            pipeline:
              mode: files

        Raises:
            ConfigurationError: If a required setting is missing or invalid
        """
        yaml_data = _load_yaml(config_path)

        try:
            config = cls(
                stream=StreamConfig.from_dict(_section(yaml_data, "stream")),
                opensearch=OpenSearchConfig.from_dict(_section(yaml_data, "opensearch")),
                aws=AwsConfig.from_dict(_section(yaml_data, "aws")),
                pipeline=PipelineConfig.from_dict(_section(yaml_data, "pipeline")),
            )
        except ValueError as e:
            # int()/float() on malformed env values
            raise ConfigurationError(f"Invalid configuration value: {e}", cause=e)

        config.validate()
        return config
