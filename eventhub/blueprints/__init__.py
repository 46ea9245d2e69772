"""
EventHub Planning Service
Shared helpers for the API blueprints.
"""

from flask import request

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 500


def _bounded_int_arg(name, default, *, lowest, highest=None):
    value = request.args.get(name, type=int)
    if value is None:
        return default
    value = max(value, lowest)
    return min(value, highest) if highest is not None else value


def paginated(query, serialize):
    """Run ``query`` with ``?limit=&offset=`` applied and wrap the page.

    Returns:
        {"items": [...], "total": int, "limit": int, "offset": int}
    """
    limit = _bounded_int_arg("limit", DEFAULT_PAGE_SIZE, lowest=1, highest=MAX_PAGE_SIZE)
    offset = _bounded_int_arg("offset", 0, lowest=0)
    total = query.count()
    rows = query.limit(limit).offset(offset).all()
    return {
        "items": [serialize(row) for row in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }
