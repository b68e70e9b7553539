"""Facet aggregation queries and bucket normalization."""

from typing import Any

from .models import FILTER_FIELDS

MISSING_LABELS: dict[str, str] = {
    "author": "Unknown Author",
    "content_type": "Unknown Type",
    "creator_tool": "Unknown Tool",
}

# Creator tools from these vendors/products report a version suffix that splits one tool into many buckets
COLLAPSE_PREFIXES = ("Adobe",)
COLLAPSE_PRODUCTS = ("Acrobat",)


def build_facet_query(size: int = 5) -> dict[str, Any]:
    """Aggregation-only search body with one terms aggregation per facet field."""
    return {
        "size": 0,
        "aggs": {
            f"{name}_facet": {
                "terms": {
                    "field": field,
                    "size": size,
                    "order": {"_count": "desc"},
                    "missing": MISSING_LABELS[name],
                }
            }
            for name, field in FILTER_FIELDS.items()
        },
    }


def collapse_creator_tool(value: str) -> str:
    """Reduce a versioned creator tool name to its first two words.

    >>> collapse_creator_tool("Adobe Acrobat Pro DC 2021")
    'Adobe Acrobat'
    """
    if value.startswith(COLLAPSE_PREFIXES) or any(product in value for product in COLLAPSE_PRODUCTS):
        words = value.split(" ")
        if len(words) >= 2:
            return " ".join(words[:2])
    return value


def merge_creator_tool_buckets(buckets: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Collapse creator tool buckets and re-aggregate their counts, highest first."""
    counts: dict[str, int] = {}
    for bucket in buckets:
        value = collapse_creator_tool(str(bucket["key"]))
        counts[value] = counts.get(value, 0) + int(bucket["doc_count"])

    facets = [{"value": value, "count": count} for value, count in counts.items()]
    return sorted(facets, key=lambda facet: facet["count"], reverse=True)


def _plain_buckets(buckets: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {"value": bucket["key"], "count": bucket["doc_count"]}
        for bucket in buckets
        if bucket.get("key") and str(bucket["key"]).strip()
    ]


def shape_facets(aggregations: dict[str, Any]) -> dict[str, list[dict[str, Any]]]:
    """Turn a facet aggregation response into value/count lists per field."""

    def buckets(name: str) -> list[dict[str, Any]]:
        return (aggregations.get(f"{name}_facet") or {}).get("buckets") or []

    return {
        "author": _plain_buckets(buckets("author")),
        "content_type": _plain_buckets(buckets("content_type")),
        "creator_tool": merge_creator_tool_buckets(buckets("creator_tool")),
    }
