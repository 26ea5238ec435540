# Overview: Pagination and search helpers for the list endpoints.

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_


def paginate(base_query, page: int | None, per_page: int | None, serialize) -> dict:
    """
    Run ``base_query`` with optional pagination.

    page=None returns every row; otherwise per_page defaults to
    DEFAULT_PAGE_SIZE and is capped at MAX_PAGE_SIZE.
    """
    if page is None:
        rows = base_query.all()
        return {"items": [serialize(r) for r in rows], "count": len(rows)}

    default_size = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    max_size = current_app.config.get("MAX_PAGE_SIZE", 100)
    per_page = min(per_page or default_size, max_size)
    per_page = max(per_page, 1)
    page = max(page, 1)

    total = base_query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def search_filter(term: str, *columns):
    """Case-insensitive substring match over any of ``columns``."""
    pattern = f"%{term.strip()}%"
    return or_(*(col.ilike(pattern) for col in columns))


def sort_column(model, sort_by: str | None, allowed: set[str], default: str):
    name = sort_by if sort_by in allowed else default
    return getattr(model, name)
