"""Elasticsearch transport module."""

from .client import ElasticsearchClient, ElasticsearchError, ElasticsearchTimeoutError

__all__ = ["ElasticsearchClient", "ElasticsearchError", "ElasticsearchTimeoutError"]
