"""Tests for the inference event stream parser."""

import json
import random

import pytest

from knowledge_search.completion import EventStreamParser
from tests.conftest import sse

STREAM = (
    ": keep-alive comment\n"
    "event: message\n"
    + sse("The policy ", "covers \"flood\" ", "damage ✓\n", "up to $10,000.")
)
EXPECTED = 'The policy covers "flood" damage ✓\nup to $10,000.'


def run(chunks):
    parser = EventStreamParser()
    out = []
    for chunk in chunks:
        out.extend(parser.feed(chunk))
    out.extend(parser.close())
    return "".join(out), parser


class TestEventStreamParser:
    """Test line buffering and delta extraction."""

    def test_whole_stream(self):
        """Test a stream delivered in one chunk."""
        text, parser = run([STREAM])

        assert text == EXPECTED
        assert parser.stats.tokens == 4
        assert parser.stats.characters == len(EXPECTED)
        assert parser.stats.done_seen is True

    def test_every_single_split_point(self):
        """Test output does not depend on where one split falls."""
        for cut in range(len(STREAM) + 1):
            text, _ = run([STREAM[:cut], STREAM[cut:]])
            assert text == EXPECTED, f"split at {cut}"

    def test_random_fragmentation(self):
        """Test output does not depend on many arbitrary splits."""
        rng = random.Random(1234)
        for _ in range(200):
            cuts = sorted(rng.sample(range(1, len(STREAM)), rng.randint(1, 20)))
            pieces = [STREAM[a:b] for a, b in zip([0, *cuts], [*cuts, len(STREAM)])]
            text, _ = run(pieces)
            assert text == EXPECTED

    def test_character_by_character(self):
        """Test one character per chunk."""
        text, _ = run(list(STREAM))
        assert text == EXPECTED

    def test_partial_line_held_back(self):
        """Test an incomplete line produces nothing until its newline arrives."""
        parser = EventStreamParser()
        line = sse("partial", done=False)

        assert parser.feed(line[:20]) == []
        assert parser.pending == line[:20]
        assert parser.feed(line[20:]) == ["partial"]
        assert parser.pending == ""

    def test_malformed_line_skipped(self):
        """Test invalid JSON is skipped and later lines still produce output."""
        stream = sse("before", done=False) + 'data: {"choices": [{"delta": \n\n' + sse("after")

        text, parser = run([stream])

        assert text == "beforeafter"
        assert parser.stats.malformed_lines == 1

    def test_events_without_content(self):
        """Test role-only, empty and finish events are ignored."""
        stream = (
            'data: {"choices": [{"delta": {"role": "assistant"}}]}\n\n'
            'data: {"choices": [{"delta": {"content": ""}}]}\n\n'
            'data: {"choices": []}\n\n'
            'data: {"choices": [{"delta": {}, "finish_reason": "stop"}]}\n\n'
            'data: {"usage": {"total_tokens": 12}}\n\n'
            'data: {"choices": [{"delta": {"content": 42}}]}\n\n'
        )

        text, parser = run([stream])

        assert text == ""
        assert parser.stats.malformed_lines == 0

    def test_crlf_and_compact_prefix(self):
        """Test CRLF line endings and a data prefix without a space."""
        payload = json.dumps({"choices": [{"delta": {"content": "ok"}}]})
        text, _ = run([f"data:{payload}\r\n\r\ndata: [DONE]\r\n"])
        assert text == "ok"

    def test_stream_without_sentinel(self):
        """Test the stream ends cleanly when no [DONE] line arrives."""
        text, parser = run([sse("no", " sentinel", done=False)])

        assert text == "no sentinel"
        assert parser.stats.done_seen is False

    def test_unterminated_final_line_flushed(self):
        """Test a last line without a trailing newline is still processed."""
        payload = json.dumps({"choices": [{"delta": {"content": "tail"}}]})
        text, _ = run([sse("head", done=False), f"data: {payload}"])
        assert text == "headtail"

    @pytest.mark.parametrize("line", ["", "   ", "id: 7", "retry: 1000", ": ping", "data: [DONE]"])
    def test_non_content_lines(self, line):
        """Test lines that never carry content."""
        assert EventStreamParser().parse_line(line) is None
