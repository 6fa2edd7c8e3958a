# fleet_api/common/paging.py
from typing import Optional, Sequence, Tuple

from flask import request

DEFAULT_SIZE = 20
MAX_SIZE = 100


def arg_int(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def page_limit() -> Tuple[int, int]:
    """?page=&size= clamped to sane bounds."""
    page = max(arg_int("page", 1), 1)
    size = max(1, min(arg_int("size", DEFAULT_SIZE), MAX_SIZE))
    return page, size


def paginate(rows: Sequence) -> Tuple[Sequence, dict]:
    """Slice an already-loaded result list; returns (chunk, meta)."""
    page, size = page_limit()
    chunk = rows[(page - 1) * size: page * size]
    return chunk, {"page": page, "size": size, "total": len(rows)}
