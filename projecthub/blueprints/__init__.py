"""
ProjectHub
Blueprint registry and shared request helpers.
"""

from flask import request


def _limit_offset(default_limit, max_limit):
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return max(limit, 0), offset


def paginate_list(items, default_limit=200, max_limit=1000):
    """Apply limit/offset query-param pagination to a materialised list.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (page_items, total_count)
    """
    limit, offset = _limit_offset(default_limit, max_limit)
    return items[offset:offset + limit], len(items)


def json_body():
    """Request JSON object, or {} for a missing / non-object body."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
