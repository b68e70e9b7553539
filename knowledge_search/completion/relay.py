"""Completion relay: forward chat messages and stream back the answer text."""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from typing import Any

import httpx

from knowledge_search.elastic import ElasticsearchClient, ElasticsearchError
from .stream import EventStreamParser

logger = logging.getLogger(__name__)

ROLES = ("system", "user", "assistant")


class CompletionError(RuntimeError):
    """Raised when the inference endpoint rejects or fails the request."""


def validate_messages(messages: Any) -> list[dict[str, str]]:
    """Check a conversation before it is sent upstream.

    Raises:
        ValueError: If messages is not a non-empty list of role/content objects
    """
    if not isinstance(messages, list) or not messages:
        raise ValueError("Messages array is required")

    validated = []
    for index, message in enumerate(messages):
        if not isinstance(message, dict):
            raise ValueError(f"messages[{index}] must be an object")
        role = message.get("role")
        content = message.get("content")
        if role not in ROLES:
            raise ValueError(f"messages[{index}].role must be one of: {', '.join(ROLES)}")
        if not isinstance(content, str):
            raise ValueError(f"messages[{index}].content must be a string")
        validated.append({"role": role, "content": content})
    return validated


class CompletionRelay:
    """Streams chat completions from the inference endpoint."""

    def __init__(self, client: ElasticsearchClient, inference_path: str):
        """Initialize completion relay.

        Args:
            client: Shared Elasticsearch client
            inference_path: Streaming chat completion path of the inference endpoint
        """
        self.client = client
        self.inference_path = inference_path
        self.malformed_lines = 0

    @asynccontextmanager
    async def open_stream(self, messages: Any) -> AsyncIterator[AsyncIterator[str]]:
        """Open the upstream stream and yield an iterator over answer text.

        The handshake completes before anything is yielded, so a failing
        endpoint surfaces as CompletionError while the caller can still send
        an error response. Leaving the block closes the upstream connection.

        Raises:
            ValueError: If the messages are invalid
            CompletionError: If the inference endpoint cannot be reached or rejects the request
        """
        messages = validate_messages(messages)
        try:
            async with self.client.stream(self.inference_path, {"messages": messages}) as response:
                async with aclosing(self._relay(response)) as tokens:
                    yield tokens
        except ElasticsearchError as e:
            logger.error(f"Chat completion error: {e}")
            raise CompletionError(f"LLM request failed: {e}") from e

    async def _relay(self, response: httpx.Response) -> AsyncIterator[str]:
        parser = EventStreamParser()
        logger.info("Starting to process LLM stream...")
        try:
            async for chunk in response.aiter_text():
                logger.debug(f"Received LLM chunk: {chunk[:200]}")
                for content in parser.feed(chunk):
                    yield content
            for content in parser.close():
                yield content
        except httpx.HTTPError as e:
            logger.error(f"LLM stream interrupted: {e}")
        finally:
            self.malformed_lines += parser.stats.malformed_lines
            logger.info(
                f"LLM stream complete. Total content sent: {parser.stats.characters} characters "
                f"({parser.stats.malformed_lines} malformed lines skipped)"
            )
