"""List endpoint plumbing: filters, multi-field sort, pagination and conditional GET."""
from __future__ import annotations
from typing import Any, Dict, Iterable, Optional, Tuple
from flask import request, make_response, current_app
from sqlalchemy.orm import Query
from fixmarket.config.settings import normalize_pagination
from fixmarket.errors import ValidationError
import hashlib
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime

TIMESTAMP_TOLERANCE = timedelta(seconds=1)


def canonicalize_timestamp(dt: datetime) -> datetime:
    """Return UTC tz-aware timestamp truncated to whole seconds."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.replace(microsecond=0)


def apply_filters(query, specs: Dict[str, Dict[str, Any]], params):
    """specs: { param_name: { 'op': callable(query, value)->query, 'coerce': callable, 'validate': callable } }"""
    for name, meta in specs.items():
        val = params.get(name)
        if val is None:
            continue
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except (TypeError, ValueError):
                raise ValidationError(name, f'{name} invalid')
        if 'validate' in meta and not meta['validate'](val):
            raise ValidationError(name, f'{name} invalid')
        query = meta['op'](query, val)
    return query


def apply_multi_sort(query, sort_expr: Optional[str], allowed: dict, tie_breaker):
    """sort_expr: comma-separated keys, '-' prefix for descending."""
    if not sort_expr:
        return query.order_by(tie_breaker.asc())
    clauses = []
    for raw in sort_expr.split(','):
        token = raw.strip()
        if not token:
            continue
        desc = token.startswith('-')
        key = token[1:] if desc else token
        col = allowed.get(key)
        if col is None:
            raise ValidationError('sort', f'Invalid sort field {key}')
        clauses.append(col.desc() if desc else col.asc())
    clauses.append(tie_breaker.asc())
    return query.order_by(*clauses)


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(
            request.args.get('limit'), request.args.get('offset'),
            current_app.config.get('PAGINATION_DEFAULT_LIMIT', 50),
            current_app.config.get('PAGINATION_MAX_LIMIT', 200),
        )
    except ValueError as e:
        raise ValidationError('limit', str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def compute_etag(ids: Iterable[int], total: int, limit: int, offset: int, latest_ts: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]


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


def _http_date(dt: datetime) -> str:
    return format_datetime(dt, usegmt=True)


def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    try:
        dt = datetime.fromisoformat(header_val.replace('Z', '+00:00'))
    except ValueError:
        try:
            dt = parsedate_to_datetime(header_val)
        except (TypeError, ValueError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _not_modified(etag_value: str, latest_c: Optional[datetime]):
    resp = make_response('', 304)
    resp.headers['ETag'] = etag_value
    if latest_c:
        resp.headers['Last-Modified'] = _http_date(latest_c)
    return resp


def list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None):
    """Build the paginated JSON response, or a bare 304 when the client copy is current.

    If-None-Match takes precedence over If-Modified-Since.
    """
    ids = [r.get('id') for r in rows]
    latest_c = canonicalize_timestamp(latest_ts) if isinstance(latest_ts, datetime) else None
    latest_iso = latest_c.isoformat().replace('+00:00', 'Z') if latest_c else ''
    etag = compute_etag(ids, total, limit, offset, latest_iso)
    inm = request.headers.get('If-None-Match')
    if inm:
        if inm.strip('"') == etag:
            return _not_modified(etag, latest_c)
    else:
        ims_raw = request.headers.get('If-Modified-Since')
        ims = _parse_if_modified_since(ims_raw) if ims_raw else None
        if ims and latest_c and latest_c <= canonicalize_timestamp(ims) + TIMESTAMP_TOLERANCE:
            return _not_modified(etag, latest_c)
    resp = make_response(build_list_payload(rows, total, limit, offset))
    resp.headers['ETag'] = etag
    if latest_c:
        resp.headers['Last-Modified'] = _http_date(latest_c)
    return resp


def paginated(q: Query, serialize, timestamp_attr: str = 'updated_at'):
    """Paginate ``q``, serialize rows and wrap them with caching validators."""
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    stamps = [getattr(r, timestamp_attr) for r in rows if getattr(r, timestamp_attr, None) is not None]
    latest_ts = max((canonicalize_timestamp(s) for s in stamps), default=None)
    return list_response([serialize(r) for r in rows], total, limit, offset, latest_ts)


def resource_response(body: Dict[str, Any], latest_ts: Optional[datetime] = None):
    """Single-resource GET/HEAD with the same ETag / Last-Modified validators as lists."""
    latest_c = canonicalize_timestamp(latest_ts) if isinstance(latest_ts, datetime) else None
    latest_iso = latest_c.isoformat().replace('+00:00', 'Z') if latest_c else ''
    etag = compute_etag([body.get('id')], 1, 1, 0, latest_iso)
    inm = request.headers.get('If-None-Match')
    if inm and inm.strip('"') == etag:
        return _not_modified(etag, latest_c)
    resp = make_response(body)
    resp.headers['ETag'] = etag
    if latest_c:
        resp.headers['Last-Modified'] = _http_date(latest_c)
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp
