"""Search module: query templating, relay and facets."""

from .models import FILTER_FIELDS, FilterSet, SearchResponse, SearchResult
from .query_builder import PLACEHOLDER, QueryTemplate, QueryTemplateError, build_query
from .relay import SearchError, SearchFailedError, SearchRelay, SearchUnavailableError

__all__ = [
    "FILTER_FIELDS",
    "FilterSet",
    "PLACEHOLDER",
    "QueryTemplate",
    "QueryTemplateError",
    "SearchError",
    "SearchFailedError",
    "SearchRelay",
    "SearchResponse",
    "SearchResult",
    "SearchUnavailableError",
    "build_query",
]
