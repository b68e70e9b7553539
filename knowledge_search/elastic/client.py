"""Async Elasticsearch REST client built on httpx."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class ElasticsearchError(RuntimeError):
    """Raised when Elasticsearch rejects a request or cannot be reached."""

    def __init__(self, message: str, status: int | None = None, error_type: str | None = None):
        super().__init__(message)
        self.status = status
        self.error_type = error_type


class ElasticsearchTimeoutError(ElasticsearchError):
    """Raised when a request to Elasticsearch times out."""


def _error_from_response(response: httpx.Response) -> ElasticsearchError:
    """Build an ElasticsearchError from a non-success response."""
    body_text = response.text
    error_type = None
    reason = None
    try:
        data = response.json()
    except ValueError:
        data = None
    error = data.get("error") if isinstance(data, dict) else None

    if isinstance(error, dict):
        error_type = error.get("type")
        reason = error.get("reason")
    elif isinstance(error, str):
        reason = error

    message = f"{response.status_code} {error_type or 'error'}"
    if reason:
        message = f"{message}: {reason}"
    # Nested causes carry the interesting exception names (e.g. model deployment timeouts)
    if body_text and body_text not in message:
        message = f"{message} {body_text}"
    return ElasticsearchError(message, status=response.status_code, error_type=error_type)


class ElasticsearchClient:
    """Thin async wrapper over the Elasticsearch REST API.

    One instance is shared by every request handler; httpx clients are
    safe for concurrent use and keep a connection pool alive.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Cluster URL
            api_key: Encoded API key sent as ``Authorization: ApiKey ...``
            timeout: Per-request timeout in seconds (per-read while streaming)
            transport: Optional transport override, used by tests
        """
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"ApiKey {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Elasticsearch {method} {path} timed out: {e}")
            raise ElasticsearchTimeoutError(f"Request timed out ({type(e).__name__})") from e
        except httpx.RequestError as e:
            logger.error(f"Elasticsearch {method} {path} failed: {e}")
            raise ElasticsearchError(f"Request failed ({type(e).__name__}): {e}") from e

        if response.status_code >= 400:
            raise _error_from_response(response)
        return response

    async def info(self) -> dict[str, Any]:
        """Get cluster name and version information."""
        response = await self._request("GET", "/")
        return response.json()

    async def cluster_health(self) -> dict[str, Any]:
        """Get cluster health (green/yellow/red)."""
        response = await self._request("GET", "/_cluster/health")
        return response.json()

    async def search(self, index: str, body: dict[str, Any], size: int | None = None) -> dict[str, Any]:
        """Run a search request.

        Args:
            index: Index to search
            body: Query DSL body
            size: Optional number of hits to return

        Returns:
            Raw search response
        """
        params = {"size": size} if size is not None else None
        response = await self._request("POST", f"/{index}/_search", json=body, params=params)
        return response.json()

    async def index_document(self, index: str, document: dict[str, Any], refresh: bool = False) -> dict[str, Any]:
        """Index a single document with an auto-generated id."""
        response = await self._request(
            "POST",
            f"/{index}/_doc",
            json=document,
            params={"refresh": "true" if refresh else "false"},
        )
        return response.json()

    async def index_exists(self, index: str) -> bool:
        """Check whether an index exists."""
        try:
            await self._request("HEAD", f"/{index}")
        except ElasticsearchError as e:
            if e.status == 404:
                return False
            raise
        return True

    async def create_index(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        """Create an index from a settings/mappings body."""
        response = await self._request("PUT", f"/{index}", json=body)
        return response.json()

    async def delete_index(self, index: str) -> dict[str, Any]:
        """Delete an index."""
        response = await self._request("DELETE", f"/{index}")
        return response.json()

    @asynccontextmanager
    async def stream(self, path: str, body: dict[str, Any]) -> AsyncIterator[httpx.Response]:
        """Open a streaming POST request.

        The status is checked before the response is handed out, so callers
        only ever see a successful response whose body has not been read yet.

        Raises:
            ElasticsearchError: If the handshake fails
        """
        try:
            async with self.client.stream("POST", path, json=body) as response:
                if response.status_code >= 400:
                    await response.aread()
                    raise _error_from_response(response)
                yield response
        except httpx.TimeoutException as e:
            logger.error(f"Elasticsearch stream {path} timed out: {e}")
            raise ElasticsearchTimeoutError(f"Request timed out ({type(e).__name__})") from e
        except httpx.RequestError as e:
            logger.error(f"Elasticsearch stream {path} failed: {e}")
            raise ElasticsearchError(f"Request failed ({type(e).__name__}): {e}") from e

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.aclose()
