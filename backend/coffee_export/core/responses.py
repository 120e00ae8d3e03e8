"""Standardized API response helpers.

List endpoints return ``{"items": [...], "total": <int>}``; search endpoints
add ``page``, ``limit``, ``total_pages`` and ``has_more``. Single records are
returned directly in their JSON form.
"""

from typing import Any, Dict, List, Optional

from coffee_export.schemas.pagination import SearchResult


def list_response(items: list, total: Optional[int] = None) -> dict:
    return {
        "items": items,
        "total": total if total is not None else len(items),
    }


def search_response(result: SearchResult) -> Dict[str, Any]:
    """Serialize a page of entity records into the standard envelope."""
    items: List[dict] = [item.to_dict() for item in result.items]
    return {
        "items": items,
        "total": result.total,
        "page": result.page,
        "limit": result.limit,
        "total_pages": result.total_pages,
        "has_more": result.has_more,
    }
