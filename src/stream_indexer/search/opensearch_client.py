"""
OpenSearch REST client.

Async HTTP client for the three search store calls the indexer needs:
index existence, index creation and single-document upsert. One shared
aiohttp session serves every concurrent pipeline invocation; a semaphore
caps simultaneous requests at the connector limit.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiohttp

from core.errors import ErrorCategory, SearchStoreError, classify_http_status
from core.logging import LoggedClass
from stream_indexer.config import OpenSearchConfig


class OpenSearchClient(LoggedClass):
    """
    Search store collaborator backed by the OpenSearch REST API.

    Usage:
        >>> async with OpenSearchClient(config.opensearch) as client:
        ...     if not await client.index_exists("products"):
        ...         await client.create_index("products", PRODUCTS_MAPPING)
        ...     await client.upsert_document("products", "p1", {"id": "p1"})
    """

    def __init__(self, config: OpenSearchConfig):
        self.config = config
        self.api_url = config.endpoint.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None
        self._semaphore: Optional[asyncio.Semaphore] = None
        super().__init__()

    async def __aenter__(self) -> "OpenSearchClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def connect(self) -> None:
        await self._ensure_session()

    async def _ensure_session(self) -> None:
        """Create aiohttp session if not exists."""
        if self._session is None or self._session.closed:
            connector_kwargs: Dict[str, Any] = {
                "limit": self.config.max_connections,
                "limit_per_host": self.config.max_connections,
            }
            if not self.config.verify_ssl:
                connector_kwargs["ssl"] = False
            connector = aiohttp.TCPConnector(**connector_kwargs)
            auth = None
            if self.config.username and self.config.password:
                auth = aiohttp.BasicAuth(self.config.username, self.config.password)
            self._session = aiohttp.ClientSession(
                connector=connector,
                auth=auth,
                headers={
                    "Content-Type": "application/json",
                    "Accept": "application/json",
                },
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
            )
            self._semaphore = asyncio.Semaphore(self.config.max_connections)

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        allowed_statuses: tuple = (),
    ) -> tuple:
        """
        Issue a request and return (status, parsed body).

        Statuses outside 2xx and `allowed_statuses` raise SearchStoreError.
        """
        await self._ensure_session()
        assert self._session is not None and self._semaphore is not None
        url = f"{self.api_url}/{path.lstrip('/')}"

        async with self._semaphore:
            try:
                async with self._session.request(method, url, json=json_body) as response:
                    text = await response.text()
                    status = response.status
            except asyncio.TimeoutError as e:
                raise SearchStoreError(
                    f"{method} {path} timed out",
                    category=ErrorCategory.TRANSIENT,
                    cause=e,
                ) from e
            except aiohttp.ClientError as e:
                raise SearchStoreError(
                    f"{method} {path} failed: {e}",
                    category=ErrorCategory.TRANSIENT,
                    cause=e,
                ) from e

        body: Any = None
        if text:
            try:
                body = json.loads(text)
            except json.JSONDecodeError:
                body = {"raw": text[:500]}

        if 200 <= status < 300 or status in allowed_statuses:
            return status, body

        reason = ""
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            reason = body["error"].get("type", "")
        self._log(
            logging.DEBUG,
            "Search store request failed",
            api_endpoint=path,
            api_method=method,
            http_status=status,
        )
        raise SearchStoreError(
            f"{method} {path} returned {status} {reason}".rstrip(),
            status=status,
            category=classify_http_status(status),
            context={"error_type": reason} if reason else None,
        )

    async def index_exists(self, name: str) -> bool:
        status, _ = await self._request("HEAD", quote(name, safe=""), allowed_statuses=(404,))
        return status != 404

    async def create_index(self, name: str, mapping: Dict[str, Any]) -> None:
        """
        Create an index with the given mappings.

        An index created concurrently by another process is not an error.
        """
        try:
            await self._request("PUT", quote(name, safe=""), json_body={"mappings": mapping})
        except SearchStoreError as e:
            if e.status == 400 and e.context.get("error_type") == "resource_already_exists_exception":
                self._log(logging.INFO, "Index already exists", index=name)
                return
            raise

    async def upsert_document(
        self, name: str, doc_id: str, document: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Insert or overwrite the document with id `doc_id`."""
        path = f"{quote(name, safe='')}/_doc/{quote(doc_id, safe='')}"
        _, body = await self._request("PUT", path, json_body=document)
        return body or {}
