from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from .query import Page


# PUBLIC_INTERFACE
def pagination_envelope(items: Union[Sequence[Any], Iterable[Any]], page: Page) -> Dict[str, Any]:
    """
    Build the standard envelope for list endpoints.

    Args:
        items: The list/iterable of items for the current page.
        page: Window and totals computed by query.paginate.

    Returns:
        Dict with keys: success, data, pagination.
    """
    # Ensure items is materialized as a list (in case an iterator is passed)
    materialized: List[Any] = list(items) if not isinstance(items, list) else items
    return {"success": True, "data": materialized, "pagination": page.meta()}


# PUBLIC_INTERFACE
def error_envelope(message: str, errors: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    """Failure body: {success: false, message, errors?}."""
    body: Dict[str, Any] = {"success": False, "message": message}
    if errors is not None:
        body["errors"] = errors
    return body


def validation_errors(raw: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Flatten pydantic/FastAPI error details into [{field, message}].
    The location prefix ('body', 'query') is dropped from the field path.
    """
    out: List[Dict[str, Any]] = []
    for err in raw:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "header")]
        out.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})
    return out
