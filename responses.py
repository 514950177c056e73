"""Response envelope: {success, message?, data} plus list pagination."""

import math
from typing import Any, Dict, Optional, Tuple

from fastapi import Query


def ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def pagination(page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "hasPrev": page > 1,
    }


class PageParams:
    """Query dependency for ?page=&limit= with per-route default limits."""

    def __init__(self, default_limit: int = 20, max_limit: int = 100):
        self.default_limit = default_limit
        self.max_limit = max_limit

    def __call__(
        self,
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
    ) -> Tuple[int, int]:
        if limit is None:
            limit = self.default_limit
        return page, min(limit, self.max_limit)


def skip_for(page: int, limit: int) -> int:
    return (page - 1) * limit
