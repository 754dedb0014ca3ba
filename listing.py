"""Pagination, free-text search, filtering and sorting for list endpoints.

Every user-supplied value ends up as a bound parameter in a SQLAlchemy
expression. The sort column is the only identifier that comes from the
request, so it is resolved through an allow-list of column names.
"""
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from fastapi import Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from exceptions import ValidationError

DEFAULT_LIMIT = 10
MAX_LIMIT = 100
DEFAULT_SORT = "created_at"


@dataclass
class ListParams:
    page: int = 1
    limit: int = DEFAULT_LIMIT
    search: Optional[str] = None
    sort_by: str = DEFAULT_SORT
    sort_order: str = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def descending(self) -> bool:
        return self.sort_order != "asc"


def list_params(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    search: Optional[str] = None,
    sortBy: str = DEFAULT_SORT,
    sortOrder: str = "desc",
) -> ListParams:
    """FastAPI dependency collecting the common list query string."""
    return ListParams(
        page=page,
        limit=limit,
        search=search,
        sort_by=sortBy,
        sort_order=(sortOrder or "").lower(),
    )


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_conditions(search_columns: Sequence, search: Optional[str], filters: Dict) -> list:
    """Return the conjunctive predicate list for a search string and exact-match filters.

    Empty search text and empty filter values add nothing to the predicate.
    """
    conditions = []
    if search:
        pattern = _like_pattern(search)
        conditions.append(or_(*[column.ilike(pattern, escape="\\") for column in search_columns]))
    for column, value in filters.items():
        if value not in (None, ""):
            conditions.append(column == value)
    return conditions


def resolve_sort_column(model, sort_by: str, sortable: Iterable[str]):
    if sort_by not in sortable:
        raise ValidationError(f"Invalid sort field: {sort_by}")
    return getattr(model, sort_by)


def paginate(
    db: Session,
    model,
    params: ListParams,
    search_columns: Sequence,
    sortable: Iterable[str],
    filters: Optional[Dict] = None,
) -> Tuple[List, int]:
    """Return ``(rows, total)`` where ``total`` counts the unpaginated filtered set."""
    sort_column = resolve_sort_column(model, params.sort_by, sortable)
    conditions = build_conditions(search_columns, params.search, filters or {})

    query = db.query(model)
    if conditions:
        query = query.filter(*conditions)

    total = query.count()

    if params.descending:
        query = query.order_by(sort_column.desc(), model.id.desc())
    else:
        query = query.order_by(sort_column.asc(), model.id.asc())
    rows = query.offset(params.offset).limit(params.limit).all()
    return rows, total


def pagination_meta(params: ListParams, total: int) -> dict:
    return {
        "page": params.page,
        "limit": params.limit,
        "total": total,
        "pages": math.ceil(total / params.limit) if params.limit else 0,
    }
