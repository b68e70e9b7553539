"""Shared fixtures: a fake Elasticsearch cluster behind httpx.MockTransport."""

import json
from typing import Any

import httpx
import pytest

from knowledge_search.config import Settings
from knowledge_search.elastic import ElasticsearchClient
from knowledge_search.search import QueryTemplate

INDEX_NAME = "documents"
USAGE_INDEX = "test-usage"
INFERENCE_PATH = "/_inference/chat_completion/.test-llm/_stream"

TEMPLATE_TEXT = json.dumps(
    {
        "retriever": {
            "standard": {
                "query": {
                    "semantic": {"field": "semantic_content", "query": "{{query}}"},
                }
            }
        },
        "highlight": {"fields": {"semantic_content": {"type": "semantic"}}},
    }
)


def make_hit(index: int, highlight: bool = True) -> dict[str, Any]:
    hit = {
        "_index": INDEX_NAME,
        "_id": f"doc-{index}",
        "_score": 10.0 - index,
        "_source": {"filename": f"policy-{index}.pdf", "attachment": {"author": "Claims Team"}},
    }
    if highlight:
        hit["highlight"] = {"semantic_content": [f"<em>flood</em> damage {index}"]}
    return hit


def search_body(hits: list[dict[str, Any]], total: int | None = None, took: int = 12) -> dict[str, Any]:
    return {
        "took": took,
        "hits": {
            "total": {"value": len(hits) if total is None else total, "relation": "eq"},
            "hits": hits,
        },
    }


def sse(*contents: str, done: bool = True) -> str:
    """Render content deltas as an inference event stream."""
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": content}, "index": 0}]}, ensure_ascii=False) + "\n\n"
        for content in contents
    ]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines)


class FakeElasticsearch:
    """In-memory stand-in for the cluster endpoints the backend calls."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.search_response: dict[str, Any] = search_body([make_hit(i) for i in range(5)])
        self.search_error: tuple[int, dict[str, Any]] | None = None
        self.facet_aggregations: dict[str, Any] = {}
        self.stats_response: dict[str, Any] | None = None
        self.index_error: tuple[int, dict[str, Any]] | None = None
        self.usage_index_exists = True
        self.stream_chunks: list[bytes] = [sse("Hello", ", world").encode()]
        self.stream_status = 200
        self.stream_body = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        method = request.method

        if method == "GET" and path == "/":
            return httpx.Response(200, json={"version": {"number": "8.15.0"}})
        if method == "GET" and path == "/_cluster/health":
            return httpx.Response(200, json={"status": "green"})
        if method == "HEAD":
            return httpx.Response(200 if self.usage_index_exists else 404)
        if method == "POST" and path.endswith("/_doc"):
            if self.index_error:
                status, body = self.index_error
                return httpx.Response(status, json=body)
            return httpx.Response(201, json={"result": "created"})
        if method == "POST" and path.endswith("/_search"):
            if path.split("/")[1] not in (INDEX_NAME, USAGE_INDEX):
                return httpx.Response(404, json={"error": {"type": "index_not_found_exception", "reason": "no such index"}})
            return self._search(json.loads(request.content))
        if method == "POST" and path.startswith("/_inference/"):
            return self._stream()
        return httpx.Response(404, json={"error": {"type": "not_found", "reason": path}})

    def _search(self, body: dict[str, Any]) -> httpx.Response:
        aggs = body.get("aggs") or {}
        if "author_facet" in aggs:
            return httpx.Response(200, json={"hits": {"total": {"value": 0}, "hits": []}, "aggregations": self.facet_aggregations})
        if "event_types" in aggs and self.stats_response is not None:
            return httpx.Response(200, json=self.stats_response)
        if self.search_error:
            status, error = self.search_error
            return httpx.Response(status, json=error)
        return httpx.Response(200, json=self.search_response)

    def _stream(self) -> httpx.Response:
        if self.stream_status >= 400:
            return httpx.Response(self.stream_status, json={"error": {"type": "status_exception", "reason": "boom"}})
        if self.stream_body is not None:
            return httpx.Response(200, headers={"Content-Type": "text/event-stream"}, content=self.stream_body())

        chunks = list(self.stream_chunks)

        async def body():
            for chunk in chunks:
                yield chunk

        return httpx.Response(200, headers={"Content-Type": "text/event-stream"}, content=body())

    def sent(self, method: str, suffix: str) -> list[dict[str, Any]]:
        """JSON bodies of the requests matching a method and path suffix."""
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == method and r.url.path.endswith(suffix)
        ]


@pytest.fixture
def fake_es():
    return FakeElasticsearch()


@pytest.fixture
def es_client(fake_es):
    return ElasticsearchClient("http://es.test:9200", "test-key", transport=httpx.MockTransport(fake_es.handler))


@pytest.fixture
def template():
    return QueryTemplate.from_text(TEMPLATE_TEXT)


@pytest.fixture
def settings(tmp_path):
    questions = tmp_path / "Questions.json"
    questions.write_text(
        json.dumps({"categories": [{"name": "Claims", "questions": ["What is covered under flood damage?"]}]}),
        encoding="utf-8",
    )
    prompt = tmp_path / "system-prompt.txt"
    prompt.write_text("You answer questions about insurance policies.", encoding="utf-8")

    return Settings(
        es_url="http://es.test:9200",
        api_key="test-key",
        index_name=INDEX_NAME,
        usage_index=USAGE_INDEX,
        inference_id=".test-llm",
        questions_path=questions,
        system_prompt_path=prompt,
    )
