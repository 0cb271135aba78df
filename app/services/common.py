from __future__ import annotations

import uuid

from fastapi import HTTPException


def coerce_uuid(value: uuid.UUID | str | None) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid id: {value}") from exc


def apply_ordering(query, order_by: str | None, order_dir: str | None, allowed_columns: dict):
    if order_by not in allowed_columns:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid order_by. Allowed: {', '.join(sorted(allowed_columns))}",
        )
    column = allowed_columns[order_by]
    if (order_dir or "desc").lower() == "asc":
        return query.order_by(column.asc())
    return query.order_by(column.desc())


def apply_pagination(query, limit: int | None, offset: int | None):
    if offset:
        query = query.offset(offset)
    if limit:
        query = query.limit(limit)
    return query
