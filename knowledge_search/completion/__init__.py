"""Chat completion streaming module."""

from .relay import CompletionError, CompletionRelay, validate_messages
from .stream import EventStreamParser, StreamStats

__all__ = [
    "CompletionError",
    "CompletionRelay",
    "EventStreamParser",
    "StreamStats",
    "validate_messages",
]
