"""Typed, versioned schema for the parts / other-charges lists stored on work orders and bids.

Stored shape (version 1)::

    {"version": 1, "items": [{"name": "Valve", "quantity": "2", "cost_cents": 2000, "part_id": 7}]}

Older rows hold a bare list (or a JSON string of one) with ``cost``/``amount`` in major
units, sometimes ``estimatedCost``. Reading is forgiving: an unreadable blob becomes an
empty list and an unreadable entry is dropped, both logged, so a page can still render.
Writing (``*_from_payload``) is strict and names the bad field.
"""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from fixmarket.errors import ValidationError
from fixmarket.services.costing import CENT, non_negative, to_cents, from_cents, format_quantity
from fixmarket.utils.validation import parse_cents

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


def _quantity(value: Any, field: str) -> Decimal:
    # Stored as a two-place string, so totals must be computed from the same value
    try:
        return non_negative(value, field).quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(field, f'{field} is too large')


@dataclass(frozen=True)
class PartLine:
    name: str
    quantity: Decimal
    cost: Decimal
    part_id: Optional[int] = None

    @property
    def line_total(self) -> Decimal:
        return self.cost * self.quantity

    def to_json(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'quantity': format_quantity(self.quantity),
            'cost_cents': to_cents(self.cost),
            'part_id': self.part_id,
        }


@dataclass(frozen=True)
class ChargeLine:
    description: str
    amount: Decimal

    def to_json(self) -> Dict[str, Any]:
        return {'description': self.description, 'amount_cents': to_cents(self.amount)}


def _unwrap(raw: Any, label: str) -> Tuple[List[Any], int]:
    """Return (entries, schema_version); version 0 means the legacy bare-list shape."""
    if raw is None or raw == '':
        return [], SCHEMA_VERSION
    if isinstance(raw, (bytes, str)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning('Unparseable %s blob defaulted to empty list', label)
            return [], SCHEMA_VERSION
    if isinstance(raw, dict):
        if not raw:
            return [], SCHEMA_VERSION
        items = raw.get('items')
        if raw.get('version') == SCHEMA_VERSION and isinstance(items, list):
            return items, SCHEMA_VERSION
        logger.warning('Unknown %s envelope %r defaulted to empty list', label, raw.get('version'))
        return [], SCHEMA_VERSION
    if isinstance(raw, list):
        return raw, 0
    logger.warning('Unexpected %s blob type %s defaulted to empty list', label, type(raw).__name__)
    return [], SCHEMA_VERSION


def load_parts(raw: Any) -> List[PartLine]:
    entries, version = _unwrap(raw, 'parts')
    out: List[PartLine] = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning('Dropping malformed part entry %r', entry)
            continue
        try:
            if version == 0:
                cost = non_negative(entry.get('cost', entry.get('estimatedCost')), 'cost')
            else:
                cost = non_negative(from_cents(entry.get('cost_cents') or 0), 'cost_cents')
            part_id = entry.get('part_id', entry.get('partId'))
            out.append(PartLine(
                name=str(entry.get('name') or ''),
                quantity=_quantity(entry.get('quantity'), 'quantity'),
                cost=cost,
                part_id=int(part_id) if part_id is not None else None,
            ))
        except (ValidationError, TypeError, ValueError):
            logger.warning('Dropping malformed part entry %r', entry)
    return out


def load_charges(raw: Any) -> List[ChargeLine]:
    entries, version = _unwrap(raw, 'other_charges')
    out: List[ChargeLine] = []
    for entry in entries:
        if not isinstance(entry, dict):
            logger.warning('Dropping malformed charge entry %r', entry)
            continue
        try:
            if version == 0:
                amount = non_negative(entry.get('amount'), 'amount')
            else:
                amount = non_negative(from_cents(entry.get('amount_cents') or 0), 'amount_cents')
            out.append(ChargeLine(description=str(entry.get('description') or ''), amount=amount))
        except (ValidationError, TypeError, ValueError):
            logger.warning('Dropping malformed charge entry %r', entry)
    return out


def dump_parts(lines: List[PartLine]) -> Dict[str, Any]:
    return {'version': SCHEMA_VERSION, 'items': [line.to_json() for line in lines]}


def dump_charges(lines: List[ChargeLine]) -> Dict[str, Any]:
    return {'version': SCHEMA_VERSION, 'items': [line.to_json() for line in lines]}


def parts_from_payload(items: Any, field: str = 'parts') -> List[PartLine]:
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError(field, f'{field} must be a list')
    out = []
    for idx, item in enumerate(items):
        prefix = f'{field}[{idx}]'
        if not isinstance(item, dict):
            raise ValidationError(prefix, f'{prefix} must be an object')
        name = item.get('name')
        if not isinstance(name, str) or not name.strip():
            raise ValidationError(f'{prefix}.name')
        quantity = _quantity(item.get('quantity', 1), f'{prefix}.quantity')
        cost_cents = parse_cents(item.get('cost_cents'), f'{prefix}.cost_cents')
        part_id = item.get('part_id')
        out.append(PartLine(
            name=name.strip(),
            quantity=quantity,
            cost=from_cents(cost_cents),
            part_id=int(part_id) if isinstance(part_id, int) and not isinstance(part_id, bool) else None,
        ))
    return out


def charges_from_payload(items: Any, field: str = 'other_charges') -> List[ChargeLine]:
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError(field, f'{field} must be a list')
    out = []
    for idx, item in enumerate(items):
        prefix = f'{field}[{idx}]'
        if not isinstance(item, dict):
            raise ValidationError(prefix, f'{prefix} must be an object')
        description = item.get('description')
        if not isinstance(description, str) or not description.strip():
            raise ValidationError(f'{prefix}.description')
        amount_cents = parse_cents(item.get('amount_cents'), f'{prefix}.amount_cents')
        out.append(ChargeLine(description=description.strip(), amount=from_cents(amount_cents)))
    return out
