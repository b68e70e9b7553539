"""Fire-and-forget usage telemetry written to the usage index."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from knowledge_search.elastic import ElasticsearchClient, ElasticsearchError
from .context import RequestContext, hash_ip
from .user_agent import parse_user_agent

logger = logging.getLogger(__name__)

EVENT_TYPES = ("access", "query", "click")
DEFAULT_PAGE_TITLE = "Knowledge Search"
INDEX_NOT_FOUND = "index_not_found_exception"


def _access_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "page_title": data.get("page_title") or DEFAULT_PAGE_TITLE,
        "viewport_width": data.get("viewport_width"),
        "viewport_height": data.get("viewport_height"),
        "duration_ms": data.get("duration_ms"),
    }


def _query_fields(data: dict[str, Any]) -> dict[str, Any]:
    query = data.get("query")
    return {
        "query": query,
        "query_length": len(query) if isinstance(query, str) else 0,
        "filters_applied": data.get("filters") or {},
        "result_count": data.get("result_count") or 0,
        "response_time_ms": data.get("response_time_ms"),
        "document_count_requested": data.get("document_count_requested"),
        "answer_generated": bool(data.get("answer_generated", False)),
        "answer_length": data.get("answer_length"),
        "llm_response_time_ms": data.get("llm_response_time_ms"),
        "error_occurred": bool(data.get("error_occurred", False)),
        "error_message": data.get("error_message"),
    }


def _click_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {
        "query": data.get("query"),
        "clicked_document_id": data.get("document_id"),
        "clicked_document_title": data.get("document_title"),
        "clicked_document_filename": data.get("document_filename"),
        "clicked_document_author": data.get("document_author"),
        "clicked_position": data.get("position"),
        "clicked_score": data.get("score"),
        "time_to_click_ms": data.get("time_to_click_ms"),
    }


_PAYLOAD_BUILDERS = {
    "access": _access_fields,
    "query": _query_fields,
    "click": _click_fields,
}


class TelemetryRecorder:
    """Records access, query and click events.

    Every event is written by a detached task so a slow or broken usage
    index never delays or fails the request that produced it. Write
    failures are logged and counted, never raised.
    """

    def __init__(self, client: ElasticsearchClient, index_name: str, enabled: bool = True):
        """Initialize telemetry recorder.

        Args:
            client: Shared Elasticsearch client
            index_name: Usage index receiving the events
            enabled: Whether events are recorded at all
        """
        self.client = client
        self.index_name = index_name
        self.enabled = enabled
        self.failed_events = 0
        self._missing_index_reported = False
        self._tasks: set[asyncio.Task] = set()

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable telemetry."""
        self.enabled = enabled
        logger.info(f"Telemetry {'enabled' if enabled else 'disabled'}")

    def build_envelope(self, context: RequestContext | None) -> dict[str, Any]:
        """Common fields derived from the originating request."""
        context = context or RequestContext()
        agent = parse_user_agent(context.user_agent)
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": context.session_id or "unknown",
            "user_id": context.user_id or "anonymous",
            "ip_hash": hash_ip(context.remote_addr),
            "user_agent": context.user_agent or "unknown",
            "device_type": agent.device_type,
            "browser": agent.browser,
            "os": agent.os,
            "referrer": context.referrer or "direct",
            "page_url": context.page_url or context.path or "unknown",
        }

    def build_event(
        self,
        kind: str,
        context: RequestContext | None,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build the document for one event; unset optional fields are dropped.

        Raises:
            ValueError: If the event type is unknown
        """
        if kind not in _PAYLOAD_BUILDERS:
            raise ValueError(f"Unknown telemetry event type '{kind}'. Available: {', '.join(EVENT_TYPES)}")

        event = {"event_type": kind, **self.build_envelope(context)}
        event.update(_PAYLOAD_BUILDERS[kind](data or {}))
        return {key: value for key, value in event.items() if value is not None}

    def record(
        self,
        kind: str,
        context: RequestContext | None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Schedule one event for indexing and return immediately."""
        if not self.enabled:
            return

        event = self.build_event(kind, context, data)
        task = asyncio.create_task(self._write(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _write(self, event: dict[str, Any]) -> None:
        try:
            await self.client.index_document(self.index_name, event, refresh=False)
        except ElasticsearchError as e:
            self.failed_events += 1
            if e.error_type == INDEX_NOT_FOUND:
                self._report_missing_index()
            else:
                logger.error(f"Telemetry error ({event['event_type']}): {e}")
            return
        except Exception as e:
            self.failed_events += 1
            logger.error(f"Telemetry error ({event['event_type']}): {e}", exc_info=True)
            return

        logger.debug(f"{event['event_type'].capitalize()} tracked for session {event['session_id']}")

    def _report_missing_index(self) -> None:
        if self._missing_index_reported:
            return
        self._missing_index_reported = True
        logger.warning(
            f"Telemetry index '{self.index_name}' not found. Create it with: "
            f"python scripts/create_index.py {self.index_name} ./elasticsearch/usage-index-mapping.json"
        )

    async def drain(self) -> None:
        """Wait for every pending write to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def index_exists(self) -> bool:
        """Check whether the usage index exists; errors count as missing."""
        try:
            return await self.client.index_exists(self.index_name)
        except ElasticsearchError as e:
            logger.error(f"Error checking index existence: {e}")
            return False

    async def get_stats(self, start_date: str | None = None, end_date: str | None = None) -> dict[str, Any]:
        """Aggregate usage statistics, optionally within a timestamp range.

        Raises:
            ElasticsearchError: If the aggregation request fails
        """
        must: list[dict[str, Any]] = []
        if start_date or end_date:
            bounds = {}
            if start_date:
                bounds["gte"] = start_date
            if end_date:
                bounds["lte"] = end_date
            must.append({"range": {"timestamp": bounds}})

        body = {
            "size": 0,
            "query": {"bool": {"must": must}} if must else {"match_all": {}},
            "aggs": {
                "event_types": {"terms": {"field": "event_type"}},
                "unique_sessions": {"cardinality": {"field": "session_id"}},
                "unique_users": {"cardinality": {"field": "user_id"}},
                "devices": {"terms": {"field": "device_type"}},
                "browsers": {"terms": {"field": "browser"}},
                "top_queries": {"terms": {"field": "query.keyword", "size": 10}},
                "events_over_time": {
                    "date_histogram": {"field": "timestamp", "calendar_interval": "day"}
                },
            },
        }

        response = await self.client.search(self.index_name, body)
        aggs = response["aggregations"]
        total = response["hits"]["total"]
        return {
            "total_events": total["value"] if isinstance(total, dict) else total,
            "unique_sessions": aggs["unique_sessions"]["value"],
            "unique_users": aggs["unique_users"]["value"],
            "event_types": aggs["event_types"]["buckets"],
            "devices": aggs["devices"]["buckets"],
            "browsers": aggs["browsers"]["buckets"],
            "top_queries": aggs["top_queries"]["buckets"],
            "events_over_time": aggs["events_over_time"]["buckets"],
        }
