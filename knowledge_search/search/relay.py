"""Search relay: compose, submit and shape search requests."""

import logging
import time
from typing import Any

from knowledge_search.elastic import ElasticsearchClient, ElasticsearchError, ElasticsearchTimeoutError
from knowledge_search.telemetry import RequestContext, TelemetryRecorder
from .facets import build_facet_query, shape_facets
from .models import FilterSet, SearchResponse, SearchResult
from .query_builder import QueryTemplate, build_query

logger = logging.getLogger(__name__)

MODEL_TIMEOUT_MARKER = "model_deployment_timeout_exception"
WARMUP_QUERY = "insurance"


class SearchError(RuntimeError):
    """Base class for search failures surfaced to callers."""

    retryable = False


class SearchUnavailableError(SearchError):
    """The search model is not ready yet; the caller may retry shortly."""

    retryable = True


class SearchFailedError(SearchError):
    """Any other upstream search failure."""


def is_retryable(error: ElasticsearchError) -> bool:
    """Whether an upstream error means the model is still warming up."""
    if isinstance(error, ElasticsearchTimeoutError):
        return True
    return error.error_type == MODEL_TIMEOUT_MARKER or MODEL_TIMEOUT_MARKER in str(error)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _total_hits(hits: dict[str, Any]) -> int:
    total = hits.get("total")
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total or 0)


class SearchRelay:
    """Handles semantic search requests against the document index."""

    def __init__(
        self,
        client: ElasticsearchClient,
        template: QueryTemplate,
        index_name: str,
        telemetry: TelemetryRecorder | None = None,
        default_size: int = 10,
        max_size: int = 100,
    ):
        """Initialize search relay.

        Args:
            client: Shared Elasticsearch client
            template: Query template loaded at startup
            index_name: Index holding the searchable documents
            telemetry: Recorder notified after every search, successful or not
            default_size: Result count used when the caller gives none
            max_size: Upper bound for the result count
        """
        self.client = client
        self.template = template
        self.index_name = index_name
        self.telemetry = telemetry
        self.default_size = default_size
        self.max_size = max_size

    def parse_size(self, size: Any) -> int:
        """Parse a requested result count and clamp it to ``[1, max_size]``.

        Raises:
            ValueError: If the size is not an integer
        """
        if size is None:
            return self.default_size
        if isinstance(size, bool):
            raise ValueError("size must be an integer")
        try:
            parsed = int(size)
        except (TypeError, ValueError, OverflowError) as e:
            raise ValueError("size must be an integer") from e
        if isinstance(size, float) and parsed != size:
            raise ValueError("size must be an integer")
        return max(1, min(parsed, self.max_size))

    async def search(
        self,
        raw_query: str,
        filters: FilterSet | None = None,
        size: int | None = None,
        context: RequestContext | None = None,
        echo_filters: dict[str, Any] | None = None,
    ) -> SearchResponse:
        """Run a semantic search.

        Args:
            raw_query: User query text
            filters: Facet constraints
            size: Number of results requested
            context: Originating request, for telemetry
            echo_filters: Filters exactly as the client sent them

        Returns:
            SearchResponse with normalized hits

        Raises:
            ValueError: If the query is empty or the size is not an integer
            SearchUnavailableError: If the model is not ready yet
            SearchFailedError: For any other upstream failure
        """
        if not isinstance(raw_query, str) or not raw_query.strip():
            raise ValueError("Query is required")

        filters = filters or FilterSet()
        size = self.parse_size(size)
        echo = echo_filters if echo_filters is not None else filters.to_dict()
        start = time.monotonic()

        try:
            body = build_query(self.template, raw_query, filters)
            raw = await self.client.search(self.index_name, body, size=size)
            hits = raw.get("hits") or {}
            results = [SearchResult.from_hit(hit) for hit in hits.get("hits") or []]
            total = _total_hits(hits)
        except Exception as e:
            self._record(
                context,
                {
                    "query": raw_query,
                    "filters": echo,
                    "response_time_ms": _elapsed_ms(start),
                    "error_occurred": True,
                    "error_message": str(e),
                },
            )
            if isinstance(e, ElasticsearchError):
                if is_retryable(e):
                    logger.warning(f"Search model not ready: {e}")
                    raise SearchUnavailableError(str(e)) from e
                logger.error(f"Search failed: {e}")
                raise SearchFailedError(str(e)) from e
            logger.error(f"Unexpected search error: {e}", exc_info=True)
            raise

        elapsed = _elapsed_ms(start)
        self._record(
            context,
            {
                "query": raw_query,
                "filters": echo,
                "result_count": total,
                "response_time_ms": elapsed,
                "document_count_requested": size,
            },
        )
        logger.info(f"Search returned {len(results)} of {total} hits in {elapsed}ms")

        return SearchResponse(
            total=total,
            results=results,
            took=int(raw.get("took", elapsed)),
            filters=echo,
        )

    def _record(self, context: RequestContext | None, payload: dict[str, Any]) -> None:
        if self.telemetry is not None:
            self.telemetry.record("query", context, payload)

    async def facets(self, size: int = 5) -> dict[str, list[dict[str, Any]]]:
        """Top facet values with counts for every filterable field.

        Raises:
            SearchFailedError: If the aggregation request fails
        """
        try:
            raw = await self.client.search(self.index_name, build_facet_query(size))
        except ElasticsearchError as e:
            logger.error(f"Facet aggregation failed: {e}")
            raise SearchFailedError(str(e)) from e

        aggregations = raw.get("aggregations") or {}
        facets = shape_facets(aggregations)
        logger.debug(
            "Facet counts: "
            + ", ".join(f"{name}={len(values)}" for name, values in facets.items())
        )
        return facets

    async def warmup(self) -> bool:
        """Run a throwaway search so the semantic model is loaded before real traffic.

        Returns:
            True if the model answered, False otherwise
        """
        logger.info("Warming up semantic search model...")
        try:
            await self.client.search(self.index_name, build_query(self.template, WARMUP_QUERY), size=1)
        except ElasticsearchError as e:
            logger.error(f"Model warmup failed: {e}")
            logger.error("The model may need more time to start. First searches might be slow.")
            return False
        logger.info("Semantic search model warmed up")
        return True
