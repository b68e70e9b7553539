"""Tests for the search relay."""

from unittest.mock import MagicMock

import pytest

from knowledge_search.elastic import ElasticsearchError, ElasticsearchTimeoutError
from knowledge_search.search import (
    FilterSet,
    SearchFailedError,
    SearchRelay,
    SearchUnavailableError,
)
from knowledge_search.search.relay import is_retryable
from knowledge_search.telemetry import RequestContext
from tests.conftest import INDEX_NAME, make_hit, search_body

MODEL_TIMEOUT_ERROR = {
    "error": {
        "root_cause": [{"type": "status_exception", "reason": "Timed out"}],
        "type": "status_exception",
        "reason": "Timed out after [10s]",
        "caused_by": {"type": "model_deployment_timeout_exception", "reason": "deployment not started"},
    },
    "status": 408,
}


@pytest.fixture
def telemetry():
    return MagicMock()


@pytest.fixture
def relay(es_client, template, telemetry):
    return SearchRelay(es_client, template, INDEX_NAME, telemetry=telemetry)


class TestSearch:
    """Test search requests."""

    @pytest.mark.asyncio
    async def test_flood_damage_search(self, relay, fake_es, telemetry):
        """Test the end-to-end search shape for a five-result request."""
        response = await relay.search("what is covered under flood damage?", FilterSet(), 5)

        assert response.total >= 5
        assert len(response.results) <= 5
        for result in response.results:
            assert result.id
            assert isinstance(result.score, float)
        assert response.took == 12

        request = fake_es.requests[-1]
        assert request.url.path == f"/{INDEX_NAME}/_search"
        assert request.url.params["size"] == "5"
        sent = fake_es.sent("POST", "/_search")[-1]
        assert sent["retriever"]["standard"]["query"]["semantic"]["query"] == "what is covered under flood damage?"

    @pytest.mark.asyncio
    async def test_missing_highlight_defaults_to_empty(self, relay, fake_es):
        """Test hits without highlights."""
        fake_es.search_response = search_body([make_hit(0, highlight=False)])

        response = await relay.search("hail", size=1)

        assert response.results[0].highlight == {}
        assert response.results[0].source["filename"] == "policy-0.pdf"

    @pytest.mark.asyncio
    async def test_filters_are_sent_and_echoed(self, relay, fake_es):
        """Test filters reach the backend and come back unchanged."""
        echo = {"author": ["Claims Team"], "unknown": ["x"]}
        response = await relay.search("hail", FilterSet.from_payload(echo), 3, echo_filters=echo)

        sent = fake_es.sent("POST", "/_search")[-1]
        assert sent["retriever"]["standard"]["query"]["bool"]["filter"] == [
            {"terms": {"attachment.author.keyword": ["Claims Team"]}}
        ]
        assert response.filters == echo
        assert response.to_dict()["filters"] == echo

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size,sent", [(1000, "100"), (0, "1"), (None, "10")])
    async def test_size_clamped(self, relay, fake_es, size, sent):
        """Test direct callers get the same size clamping as the HTTP layer."""
        await relay.search("flood", size=size)

        assert fake_es.requests[-1].url.params["size"] == sent

    @pytest.mark.asyncio
    async def test_invalid_size_rejected(self, relay, fake_es, telemetry):
        """Test a non-integer size fails before any request."""
        with pytest.raises(ValueError, match="size must be an integer"):
            await relay.search("flood", size=float("inf"))

        assert fake_es.requests == []
        telemetry.record.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_query_rejected(self, relay, fake_es, telemetry):
        """Test empty queries never reach the backend or telemetry."""
        with pytest.raises(ValueError, match="Query is required"):
            await relay.search("   ")

        assert fake_es.requests == []
        telemetry.record.assert_not_called()

    @pytest.mark.asyncio
    async def test_success_records_one_query_event(self, relay, telemetry):
        """Test telemetry after a successful search."""
        context = RequestContext(session_id="s-1")

        await relay.search("flood", FilterSet(), 5, context=context)

        telemetry.record.assert_called_once()
        kind, recorded_context, payload = telemetry.record.call_args[0]
        assert kind == "query"
        assert recorded_context is context
        assert payload["result_count"] == 5
        assert payload["document_count_requested"] == 5
        assert "error_occurred" not in payload
        assert payload["response_time_ms"] >= 0


class TestSearchErrors:
    """Test upstream failure mapping."""

    @pytest.mark.asyncio
    async def test_model_timeout_is_retryable(self, relay, fake_es, telemetry):
        """Test model warm-up failures map to the retryable error."""
        fake_es.search_error = (408, MODEL_TIMEOUT_ERROR)

        with pytest.raises(SearchUnavailableError) as exc_info:
            await relay.search("flood")

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_other_errors_fail(self, relay, fake_es):
        """Test generic upstream errors carry the upstream text."""
        fake_es.search_error = (400, {"error": {"type": "parsing_exception", "reason": "unknown query [semantic]"}})

        with pytest.raises(SearchFailedError, match="unknown query"):
            await relay.search("flood")

    @pytest.mark.asyncio
    async def test_error_records_exactly_one_error_event(self, relay, fake_es, telemetry):
        """Test a failed search still produces a single error telemetry record."""
        fake_es.search_error = (500, {"error": {"type": "search_phase_execution_exception", "reason": "all shards failed"}})

        with pytest.raises(SearchFailedError):
            await relay.search("flood", FilterSet(author=("A",)), 5, echo_filters={"author": ["A"]})

        telemetry.record.assert_called_once()
        kind, _, payload = telemetry.record.call_args[0]
        assert kind == "query"
        assert payload["error_occurred"] is True
        assert "all shards failed" in payload["error_message"]
        assert payload["filters"] == {"author": ["A"]}
        assert "result_count" not in payload

    def test_is_retryable(self):
        """Test which upstream errors count as temporary."""
        assert is_retryable(ElasticsearchTimeoutError("timed out"))
        assert is_retryable(ElasticsearchError("x", status=408, error_type="model_deployment_timeout_exception"))
        assert is_retryable(ElasticsearchError("caused by model_deployment_timeout_exception", status=500))
        assert not is_retryable(ElasticsearchError("all shards failed", status=500))


class TestParseSize:
    """Test result size parsing."""

    @pytest.mark.parametrize(
        "raw,expected",
        [(None, 10), (5, 5), ("7", 7), (0, 1), (-3, 1), (1000, 100), (3.0, 3)],
    )
    def test_parse_size(self, relay, raw, expected):
        """Test defaults and clamping."""
        assert relay.parse_size(raw) == expected

    @pytest.mark.parametrize("raw", ["ten", [5], True, 2.5, float("inf"), float("-inf"), float("nan")])
    def test_invalid_size(self, relay, raw):
        """Test non-integer sizes."""
        with pytest.raises(ValueError, match="size must be an integer"):
            relay.parse_size(raw)


class TestWarmup:
    """Test model warm-up."""

    @pytest.mark.asyncio
    async def test_warmup_success(self, relay, fake_es):
        """Test a successful warm-up search."""
        assert await relay.warmup() is True

        assert fake_es.requests[-1].url.params["size"] == "1"
        sent = fake_es.sent("POST", "/_search")[-1]
        assert sent["retriever"]["standard"]["query"]["semantic"]["query"] == "insurance"

    @pytest.mark.asyncio
    async def test_warmup_failure_is_not_fatal(self, relay, fake_es, telemetry):
        """Test a failing warm-up only reports False."""
        fake_es.search_error = (408, MODEL_TIMEOUT_ERROR)

        assert await relay.warmup() is False
        telemetry.record.assert_not_called()
