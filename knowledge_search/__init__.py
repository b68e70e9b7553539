"""Knowledge search backend: semantic search, streamed answers and usage telemetry."""

__version__ = "0.1.0"
