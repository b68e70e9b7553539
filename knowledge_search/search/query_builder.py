"""Query template loading and query composition."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .models import FilterSet

logger = logging.getLogger(__name__)

PLACEHOLDER = "{{query}}"


class QueryTemplateError(RuntimeError):
    """Raised when the query template is unusable."""


@dataclass(frozen=True)
class QueryTemplate:
    """Immutable search body holding exactly one ``{{query}}`` placeholder.

    The placeholder must sit inside a JSON string; the user's text is
    JSON-escaped before substitution so it always stays data.
    """

    text: str

    @classmethod
    def from_text(cls, text: str) -> "QueryTemplate":
        """Parse and validate a template.

        Raises:
            QueryTemplateError: If the template is not a valid JSON object or does
                not hold exactly one placeholder
        """
        try:
            document = json.loads(text)
        except ValueError as e:
            raise QueryTemplateError(f"Query template is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise QueryTemplateError("Query template must be a JSON object")

        canonical = json.dumps(document)
        count = canonical.count(PLACEHOLDER)
        if count != 1:
            raise QueryTemplateError(f"Query template must contain {PLACEHOLDER} exactly once (found {count})")

        return cls(canonical)

    @classmethod
    def load(cls, path: Path) -> "QueryTemplate":
        """Read a template file."""
        try:
            text = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise QueryTemplateError(f"Failed to read query template {path}: {e}") from e
        template = cls.from_text(text)
        logger.info(f"Loaded query template from {path}")
        return template

    def render(self, raw_query: str) -> dict[str, Any]:
        """Substitute the user's query and return a fresh query body."""
        escaped = json.dumps(raw_query)[1:-1]
        try:
            return json.loads(self.text.replace(PLACEHOLDER, escaped, 1))
        except ValueError as e:
            raise QueryTemplateError(f"Query template failed to parse after substitution: {e}") from e


def _apply_filters(body: dict[str, Any], clauses: list[dict[str, Any]]) -> None:
    retriever = body.get("retriever")
    if isinstance(retriever, dict):
        standard = retriever.get("standard")
        if not isinstance(standard, dict) or "query" not in standard:
            raise QueryTemplateError("Query template retriever has no standard.query to filter")
        body["retriever"] = {
            "standard": {
                **standard,
                "query": {"bool": {"must": standard["query"], "filter": clauses}},
            }
        }
    elif "query" in body:
        body["query"] = {"bool": {"must": body["query"], "filter": clauses}}
    else:
        raise QueryTemplateError("Query template has neither a retriever nor a query to filter")


def build_query(template: QueryTemplate, raw_query: str, filters: FilterSet | None = None) -> dict[str, Any]:
    """Compose a search body from the template, the user's text and facet filters.

    Args:
        template: Loaded query template
        raw_query: Non-empty user query
        filters: Facet constraints; None or empty leaves the template untouched

    Returns:
        Search body ready for the _search API
    """
    body = template.render(raw_query)
    clauses = filters.term_clauses() if filters else []
    if clauses:
        _apply_filters(body, clauses)
    return body
