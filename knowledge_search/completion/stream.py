"""Incremental parser for the inference endpoint's server-sent event stream."""

import json
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass
class StreamStats:
    """Counters for one parsed stream."""

    lines: int = 0
    tokens: int = 0
    characters: int = 0
    malformed_lines: int = 0
    done_seen: bool = False


class EventStreamParser:
    """Turns arbitrarily split stream text into content deltas.

    The only state is ``pending``: the trailing fragment of the last chunk
    that has not been terminated by a newline yet. Output therefore does not
    depend on where the network split the stream.
    """

    def __init__(self) -> None:
        self.pending = ""
        self.stats = StreamStats()

    def feed(self, chunk: str) -> list[str]:
        """Consume a chunk and return the deltas of every line it completed."""
        self.pending += chunk
        *lines, self.pending = self.pending.split("\n")
        return self._process(lines)

    def close(self) -> list[str]:
        """Flush an unterminated final line at end of input."""
        rest, self.pending = self.pending, ""
        return self._process([rest]) if rest else []

    def _process(self, lines: list[str]) -> list[str]:
        deltas = []
        for line in lines:
            content = self.parse_line(line)
            if content:
                deltas.append(content)
                self.stats.tokens += 1
                self.stats.characters += len(content)
        return deltas

    def parse_line(self, line: str) -> str | None:
        """Extract ``choices[0].delta.content`` from one complete line.

        Blank lines, comments, other SSE fields and the ``[DONE]`` sentinel
        yield None. Malformed JSON is logged, counted and skipped.
        """
        line = line.rstrip("\r")
        self.stats.lines += 1
        if not line.strip() or not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):]
        if payload.startswith(" "):
            payload = payload[1:]
        if payload.strip() == DONE_SENTINEL:
            self.stats.done_seen = True
            return None

        try:
            event = json.loads(payload)
        except ValueError as e:
            self.stats.malformed_lines += 1
            logger.warning(f"Skipping malformed stream line ({e}): {payload[:200]}")
            return None

        try:
            content = event["choices"][0]["delta"]["content"]
        except (KeyError, IndexError, TypeError):
            logger.debug("No content found in stream event")
            return None
        return content if isinstance(content, str) else None
