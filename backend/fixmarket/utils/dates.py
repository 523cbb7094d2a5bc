"""Datetime helpers. All persisted datetimes are naive UTC."""
from __future__ import annotations
from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_datetime(value, field: str) -> Optional[datetime]:
    """Parse an ISO 8601 string (``Z`` suffix allowed) into naive UTC; None passes through."""
    from fixmarket.errors import ValidationError
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if not isinstance(value, str):
        raise ValidationError(field, f'{field} must be an ISO 8601 datetime')
    try:
        dt = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError(field, f'{field} must be an ISO 8601 datetime')
    return to_naive_utc(dt)


def parse_date(value, field: str) -> Optional[date]:
    from fixmarket.errors import ValidationError
    if value is None or value == '':
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError(field, f'{field} must be an ISO 8601 date')


def iso(dt) -> Optional[str]:
    if dt is None:
        return None
    if isinstance(dt, datetime):
        return to_naive_utc(dt).replace(microsecond=0).isoformat() + 'Z'
    return dt.isoformat()
