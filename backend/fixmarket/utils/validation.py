"""Request payload validation helpers.

Every helper raises ``ValidationError`` naming the offending field, so handlers can
read a JSON body top to bottom without scattered ``abort`` calls.
"""
from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Optional
from fixmarket.errors import ValidationError


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed.

    Returns the status (to enable inline usage) or raises ValidationError.
    """
    if new_status not in allowed:
        raise ValidationError(field_name, f"{field_name} invalid")
    return new_status


def require_text(data: Mapping[str, Any], field: str, max_length: Optional[int] = None) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field)
    value = value.strip()
    if max_length and len(value) > max_length:
        raise ValidationError(field, f'{field} must be at most {max_length} characters')
    return value


def optional_text(data: Mapping[str, Any], field: str) -> Optional[str]:
    value = data.get(field)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(field, f'{field} must be a string')
    return value.strip() or None


def parse_cents(value: Any, field: str, required: bool = True) -> Optional[int]:
    """Money crosses the API as integer minor units; integer strings are accepted too."""
    if value is None or value == '':
        if required:
            raise ValidationError(field)
        return None
    if isinstance(value, bool):
        raise ValidationError(field, f'{field} must be an integer amount in cents')
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise ValidationError(field, f'{field} must be an integer amount in cents')
    if not isinstance(value, int):
        raise ValidationError(field, f'{field} must be an integer amount in cents')
    if value < 0:
        raise ValidationError(field, f'{field} must be >= 0')
    return value


def parse_decimal(value: Any, field: str, required: bool = True, places: Optional[int] = None) -> Optional[Decimal]:
    """Non-negative decimal; ``places`` rounds half-up to the scale of the column it is stored in."""
    if value is None or value == '':
        if required:
            raise ValidationError(field)
        return None
    if isinstance(value, bool):
        raise ValidationError(field, f'{field} must be numeric')
    try:
        d = Decimal(str(value).strip()) if isinstance(value, (int, float, str)) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(field, f'{field} must be numeric')
    if not d.is_finite():
        raise ValidationError(field, f'{field} must be numeric')
    if d < 0:
        raise ValidationError(field, f'{field} must be >= 0')
    if places is not None:
        try:
            d = d.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise ValidationError(field, f'{field} is too large')
    return d


def parse_id(value: Any, field: str, required: bool = True) -> Optional[int]:
    if value is None or value == '':
        if required:
            raise ValidationError(field)
        return None
    if isinstance(value, bool):
        raise ValidationError(field, f'{field} must be an integer id')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(field, f'{field} must be an integer id')


def parse_bool(value: Any, field: str, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ('true', '1', 'yes'):
        return True
    if isinstance(value, str) and value.lower() in ('false', '0', 'no'):
        return False
    raise ValidationError(field, f'{field} must be a boolean')

__all__ = ['validate_status', 'require_text', 'optional_text', 'parse_cents', 'parse_decimal', 'parse_id', 'parse_bool']
