from __future__ import annotations
from typing import Iterable, Optional, Tuple
from flask import request, abort
from sqlalchemy import func, select

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def normalize_pagination(limit_raw, offset_raw) -> Tuple[int, int]:
    try:
        limit = int(limit_raw) if limit_raw is not None else DEFAULT_LIMIT
        offset = int(offset_raw) if offset_raw is not None else 0
    except ValueError:
        raise ValueError('limit/offset must be int')
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset)
    return limit, offset


def validate_choice(value: Optional[str], allowed: Iterable[str], field_name: str = 'status') -> Optional[str]:
    """Return ``value`` when it is None or inside ``allowed``; abort with 400 otherwise."""
    if value is not None and value not in allowed:
        abort(400, description=f"{field_name} invalid")
    return value


def paginate(session, stmt):
    """Run ``stmt`` with limit/offset from the query string; returns (rows, total, limit, offset)."""
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'))
    except ValueError as e:
        abort(400, description=str(e))
    total = session.execute(select(func.count()).select_from(stmt.order_by(None).subquery())).scalar_one()
    rows = session.execute(stmt.limit(limit).offset(offset)).scalars().all()
    return rows, total, limit, offset


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }
