"""
Pagination helpers shared by list endpoints
"""

from __future__ import annotations


def get_page_params(args, default_limit: int = 20, max_limit: int = 100) -> tuple[int, int, int]:
    """Read page/limit from the query string; returns (page, limit, skip)"""
    try:
        page = max(int(args.get('page', 1)), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get('limit', default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    limit = min(max(limit, 1), max_limit)
    return page, limit, (page - 1) * limit


def pagination_dict(page: int, limit: int, total: int) -> dict:
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': (total + limit - 1) // limit
    }
