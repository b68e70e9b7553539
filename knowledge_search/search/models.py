"""Search data structures."""

from dataclasses import dataclass, field
from typing import Any

# Facet fields a client may filter on, mapped to their keyword sub-field in the index
FILTER_FIELDS: dict[str, str] = {
    "author": "attachment.author.keyword",
    "content_type": "attachment.content_type.keyword",
    "creator_tool": "attachment.creator_tool.keyword",
}


@dataclass(frozen=True)
class FilterSet:
    """Facet constraints: values within a field are OR'ed, fields are AND'ed."""

    author: tuple[str, ...] = ()
    content_type: tuple[str, ...] = ()
    creator_tool: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Any) -> "FilterSet":
        """Build a filter set from a request body's ``filters`` member.

        Unknown fields are ignored. Missing or null payloads mean no filters.

        Raises:
            ValueError: If the payload or one of its known fields has the wrong shape
        """
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            raise ValueError("filters must be an object")

        values: dict[str, tuple[str, ...]] = {}
        for name in FILTER_FIELDS:
            raw = payload.get(name)
            if raw is None:
                continue
            if not isinstance(raw, list) or not all(isinstance(v, str) for v in raw):
                raise ValueError(f"filters.{name} must be a list of strings")
            values[name] = tuple(raw)
        return cls(**values)

    def active_fields(self) -> dict[str, tuple[str, ...]]:
        """Fields that carry at least one value, in declaration order."""
        return {name: getattr(self, name) for name in FILTER_FIELDS if getattr(self, name)}

    def term_clauses(self) -> list[dict[str, Any]]:
        """Terms clauses for every non-empty field."""
        return [
            {"terms": {FILTER_FIELDS[name]: list(values)}}
            for name, values in self.active_fields().items()
        ]

    def is_empty(self) -> bool:
        return not self.active_fields()

    def to_dict(self) -> dict[str, list[str]]:
        return {name: list(values) for name, values in self.active_fields().items()}


@dataclass
class SearchResult:
    """A single normalized hit."""

    id: str
    score: float
    source: dict[str, Any]
    highlight: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def from_hit(cls, hit: dict[str, Any]) -> "SearchResult":
        return cls(
            id=hit["_id"],
            score=float(hit.get("_score") or 0.0),
            source=hit.get("_source") or {},
            highlight=hit.get("highlight") or {},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "score": self.score,
            "source": self.source,
            "highlight": self.highlight,
        }


@dataclass
class SearchResponse:
    """Complete result of a search request."""

    total: int
    results: list[SearchResult]
    took: int
    filters: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "results": [result.to_dict() for result in self.results],
            "took": self.took,
            "filters": self.filters,
        }
