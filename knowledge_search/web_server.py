"""HTTP server exposing search, chat completion and telemetry endpoints."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from aiohttp import web

from knowledge_search.completion import CompletionError, CompletionRelay, validate_messages
from knowledge_search.config import Settings, get_settings
from knowledge_search.content import ContentStore
from knowledge_search.elastic import ElasticsearchClient, ElasticsearchError
from knowledge_search.search import (
    FilterSet,
    QueryTemplate,
    SearchFailedError,
    SearchRelay,
    SearchUnavailableError,
)
from knowledge_search.telemetry import RequestContext, TelemetryRecorder

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-Session-Id, X-User-Id, X-Page-Url",
}


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Allow cross-origin calls and answer preflight requests."""
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)
    response = await handler(request)
    if not response.prepared:
        response.headers.update(CORS_HEADERS)
    return response


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(status: int, error: str, message: str | None = None, **extra: Any) -> web.Response:
    body: dict[str, Any] = {"error": error}
    if message is not None:
        body["message"] = message
    body.update(extra)
    return web.json_response(body, status=status)


async def _read_json(request: web.Request) -> dict[str, Any] | None:
    """Request body as a JSON object, or None if it is missing or malformed."""
    try:
        data = await request.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


class WebServer:
    """HTTP server for the knowledge search frontend."""

    def __init__(
        self,
        settings: Settings | None = None,
        es_client: ElasticsearchClient | None = None,
        template: QueryTemplate | None = None,
        content: ContentStore | None = None,
        port: int | None = None,
    ):
        """Initialize web server.

        The query template is read here, once; a broken template stops the
        server from starting.
        """
        self.settings = settings or get_settings()
        self.port = port or self.settings.port
        self.es_client = es_client or ElasticsearchClient(
            self.settings.es_url,
            self.settings.api_key,
            timeout=self.settings.request_timeout,
        )
        self.template = template or QueryTemplate.load(self.settings.query_template_path)
        self.content = content or ContentStore(self.settings.questions_path, self.settings.system_prompt_path)

        self.telemetry = TelemetryRecorder(
            self.es_client,
            self.settings.usage_index,
            enabled=self.settings.telemetry_enabled,
        )
        self.search_relay = SearchRelay(
            self.es_client,
            self.template,
            self.settings.index_name,
            telemetry=self.telemetry,
            default_size=self.settings.default_result_size,
            max_size=self.settings.max_result_size,
        )
        self.completion_relay = CompletionRelay(self.es_client, self.settings.inference_stream_path)

        self._warmup_task: asyncio.Task | None = None
        self.app = web.Application(middlewares=[cors_middleware])
        self.app.on_startup.append(self._on_startup)
        self.app.on_cleanup.append(self._on_cleanup)
        self._setup_routes()
        logger.info(f"Web server initialized on port {self.port}")

    def _setup_routes(self):
        """Set up HTTP routes."""
        self.app.router.add_get("/api/health", self._handle_health)
        self.app.router.add_get("/api/questions", self._handle_questions)
        self.app.router.add_get("/api/system-prompt", self._handle_system_prompt)
        self.app.router.add_get("/api/facets", self._handle_facets)
        self.app.router.add_post("/api/search", self._handle_search)
        self.app.router.add_post("/api/chat-completion", self._handle_chat_completion)
        self.app.router.add_post("/api/telemetry/access", self._handle_telemetry_access)
        self.app.router.add_post("/api/telemetry/click", self._handle_telemetry_click)
        self.app.router.add_get("/api/telemetry/stats", self._handle_telemetry_stats)

    async def _on_startup(self, app: web.Application) -> None:
        """Check connectivity, load content and warm up the search model."""
        try:
            info = await self.es_client.info()
            logger.info(f"Connected to Elasticsearch {info.get('version', {}).get('number', 'unknown')}")
        except ElasticsearchError as e:
            logger.error(f"Failed to connect to Elasticsearch: {e}")
            logger.error("Please check ES_URL and API_KEY in your .env file")

        self.content.load_all()

        usage_index = self.settings.usage_index
        if await self.telemetry.index_exists():
            logger.info(f"Telemetry index '{usage_index}' exists")
        else:
            logger.warning(
                f"Telemetry index '{usage_index}' not found. Create it with: "
                f"python scripts/create_index.py {usage_index} ./elasticsearch/usage-index-mapping.json"
            )

        self._warmup_task = asyncio.create_task(self.search_relay.warmup())

    async def _on_cleanup(self, app: web.Application) -> None:
        if self._warmup_task is not None and not self._warmup_task.done():
            self._warmup_task.cancel()
        await self.telemetry.drain()
        await self.es_client.aclose()

    def _request_context(self, request: web.Request) -> RequestContext:
        return RequestContext.from_headers(request.headers, remote_addr=request.remote, path=request.path_qs)

    async def _handle_health(self, request: web.Request) -> web.Response:
        """Health check endpoint reflecting the cluster status."""
        try:
            health = await self.es_client.cluster_health()
        except ElasticsearchError as e:
            return web.json_response(
                {"status": "error", "message": str(e), "timestamp": _utc_now()},
                status=500,
            )
        return web.json_response(
            {"status": "ok", "elasticsearch": health.get("status"), "timestamp": _utc_now()}
        )

    async def _handle_questions(self, request: web.Request) -> web.Response:
        questions = self.content.questions
        if not questions.loaded:
            return _error(503, "Questions not available", "Sample questions are still loading or failed to load")
        return web.json_response({**questions.data, "lastUpdated": questions.last_updated.isoformat()})

    async def _handle_system_prompt(self, request: web.Request) -> web.Response:
        prompt = self.content.system_prompt
        if not prompt.loaded:
            return _error(503, "System prompt not available", "System prompt is still loading or failed to load")
        return web.json_response(
            {
                "content": prompt.data,
                "lastUpdated": prompt.last_updated.isoformat(),
                "length": len(prompt.data),
            }
        )

    async def _handle_facets(self, request: web.Request) -> web.Response:
        try:
            facets = await self.search_relay.facets(self.settings.facet_size)
        except SearchFailedError as e:
            return _error(500, "Failed to load facets", str(e))
        return web.json_response(facets)

    async def _handle_search(self, request: web.Request) -> web.Response:
        """
        Handle search requests.

        Expects JSON: {"query": "...", "filters": {...}, "size": 10}
        """
        data = await _read_json(request)
        if data is None:
            return _error(400, "Request body must be a JSON object")

        query = data.get("query")
        if not isinstance(query, str) or not query.strip():
            return _error(400, "Query is required")

        try:
            filters = FilterSet.from_payload(data.get("filters"))
            size = self.search_relay.parse_size(data.get("size"))
        except ValueError as e:
            return _error(400, "Invalid request", str(e))

        try:
            result = await self.search_relay.search(
                query,
                filters,
                size,
                context=self._request_context(request),
                echo_filters=data.get("filters") or {},
            )
        except SearchUnavailableError:
            return _error(
                503,
                "Search temporarily unavailable",
                "The search model is starting up. Please try again in a few seconds.",
                retryable=True,
            )
        except SearchFailedError as e:
            return _error(500, "Search failed", str(e))
        except Exception as e:
            logger.error(f"Error handling search: {e}", exc_info=True)
            return _error(500, "Search failed", str(e))

        return web.json_response(result.to_dict())

    async def _handle_chat_completion(self, request: web.Request) -> web.StreamResponse:
        """
        Stream a chat completion as plain text.

        Expects JSON: {"messages": [{"role": "...", "content": "..."}]}
        """
        data = await _read_json(request)
        if data is None:
            return _error(400, "Messages array is required")
        try:
            messages = validate_messages(data.get("messages"))
        except ValueError as e:
            return _error(400, str(e))

        response: web.StreamResponse | None = None
        try:
            async with self.completion_relay.open_stream(messages) as tokens:
                response = web.StreamResponse(
                    status=200,
                    headers={
                        "Content-Type": "text/plain; charset=utf-8",
                        "Cache-Control": "no-cache",
                        **CORS_HEADERS,
                    },
                )
                await response.prepare(request)
                try:
                    async for token in tokens:
                        await response.write(token.encode("utf-8"))
                except ConnectionResetError:
                    logger.info("Client disconnected mid-stream, closing upstream")
                    return response
            await response.write_eof()
            return response
        except CompletionError as e:
            if response is not None and response.prepared:
                # Status already sent; ending the body is the only signal left
                return response
            return _error(500, "Chat completion failed", str(e))

    async def _track(self, request: web.Request, kind: str) -> web.Response:
        data = await _read_json(request) or {}
        self.telemetry.record(kind, self._request_context(request), data)
        return web.json_response({"success": True})

    async def _handle_telemetry_access(self, request: web.Request) -> web.Response:
        return await self._track(request, "access")

    async def _handle_telemetry_click(self, request: web.Request) -> web.Response:
        return await self._track(request, "click")

    async def _handle_telemetry_stats(self, request: web.Request) -> web.Response:
        try:
            stats = await self.telemetry.get_stats(
                start_date=request.query.get("startDate"),
                end_date=request.query.get("endDate"),
            )
        except (ElasticsearchError, KeyError) as e:
            logger.error(f"Error getting telemetry stats: {e}")
            return _error(500, "Failed to get stats", str(e))
        return web.json_response(stats)

    async def start(self):
        """Start the web server."""
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, self.settings.host, self.port)
        await site.start()
        logger.info(f"Knowledge search running on http://{self.settings.host}:{self.port}")
        return runner

    async def stop(self, runner):
        """Stop the web server."""
        await runner.cleanup()
        logger.info("Web server stopped")
