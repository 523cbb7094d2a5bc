"""Money/cost calculator.

Pure, deterministic functions shared by bids, work orders, the parts catalog and the
invoice assembler. Amounts are ``Decimal`` in major currency units (dollars). Inputs
may be int, float, Decimal or numeric strings; floats go through ``str`` first so
``0.1`` stays ``0.1``.

Negative operands are clamped to zero everywhere (the same guard the mobile and web
forms applied with ``Math.max(0, ...)``). Nothing here rounds: rounding to cents only
happens in ``to_cents`` / ``format_money`` at storage and presentation boundaries.
"""
from __future__ import annotations
from decimal import Decimal, InvalidOperation, ROUND_CEILING, ROUND_HALF_UP
from typing import Any, Iterable, Mapping

from fixmarket.errors import ValidationError

ZERO = Decimal('0')
ONE = Decimal('1')
HUNDRED = Decimal('100')
CENT = Decimal('0.01')

TAX_SCOPE_TOTAL = 'total'
TAX_SCOPE_PARTS = 'parts'
TAX_SCOPE_LABOR = 'labor'
TAX_SCOPES = (TAX_SCOPE_TOTAL, TAX_SCOPE_PARTS, TAX_SCOPE_LABOR)


def to_decimal(value: Any, field: str = 'amount') -> Decimal:
    if value is None or value == '':
        return ZERO
    if isinstance(value, bool):
        raise ValidationError(field, f'{field} must be numeric')
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, (int, float, str)):
        try:
            d = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(field, f'{field} must be numeric')
    else:
        raise ValidationError(field, f'{field} must be numeric')
    if not d.is_finite():
        raise ValidationError(field, f'{field} must be numeric')
    return d


def non_negative(value: Any, field: str = 'amount') -> Decimal:
    d = to_decimal(value, field)
    return d if d > ZERO else ZERO


def _get(item: Any, key: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(key, default)
    return getattr(item, key, default)


def labor_cost(hours: Any, hourly_rate: Any) -> Decimal:
    return non_negative(hours, 'hours') * non_negative(hourly_rate, 'hourly_rate')


def parts_cost(parts: Iterable[Any]) -> Decimal:
    """Sum of cost x quantity; entries may be mappings or objects with ``cost``/``quantity``."""
    total = ZERO
    for part in parts or ():
        total += non_negative(_get(part, 'cost'), 'cost') * non_negative(_get(part, 'quantity'), 'quantity')
    return total


def other_charges_total(charges: Iterable[Any]) -> Decimal:
    total = ZERO
    for charge in charges or ():
        total += non_negative(_get(charge, 'amount'), 'amount')
    return total


def selling_price(cost: Any, markup_percentage: Any, round_to_ninety_nine: bool = False) -> Decimal:
    """cost x (1 + markup/100), optionally pushed to a .99 price point.

    The .99 rule is ``ceil(price) - 0.01``: 12.00 -> 11.99, 12.34 -> 12.99 and a
    price already at x.99 stays put.
    """
    price = non_negative(cost, 'cost') * (ONE + non_negative(markup_percentage, 'markup_percentage') / HUNDRED)
    if round_to_ninety_nine and price > ZERO:
        price = price.to_integral_value(rounding=ROUND_CEILING) - CENT
    return price


def tax_base(scope: str, labor: Any, parts: Any) -> Decimal:
    if scope == TAX_SCOPE_PARTS:
        return non_negative(parts)
    if scope == TAX_SCOPE_LABOR:
        return non_negative(labor)
    if scope == TAX_SCOPE_TOTAL:
        return non_negative(labor) + non_negative(parts)
    raise ValidationError('tax_scope', f"tax_scope must be one of {', '.join(TAX_SCOPES)}")


def tax_amount(base: Any, percentage: Any) -> Decimal:
    return non_negative(base, 'tax_base') * non_negative(percentage, 'tax_percentage') / HUNDRED


def invoice_total(subtotal: Any, tax: Any, discount: Any) -> Decimal:
    total = non_negative(subtotal, 'subtotal') + non_negative(tax, 'tax') - non_negative(discount, 'discount')
    return total if total > ZERO else ZERO


def work_order_total(hours: Any, hourly_rate: Any, parts: Iterable[Any], other_charges: Iterable[Any]) -> Decimal:
    return labor_cost(hours, hourly_rate) + parts_cost(parts) + other_charges_total(other_charges)


def to_cents(amount: Any) -> int:
    return int((to_decimal(amount) * HUNDRED).quantize(ONE, rounding=ROUND_HALF_UP))


def from_cents(cents: Any) -> Decimal:
    if cents is None:
        return ZERO
    return Decimal(int(cents)) / HUNDRED


def format_money(amount: Any) -> str:
    return str(to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP))


def format_quantity(value: Any) -> str:
    return str(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))

__all__ = [
    'TAX_SCOPES', 'TAX_SCOPE_TOTAL', 'TAX_SCOPE_PARTS', 'TAX_SCOPE_LABOR',
    'to_decimal', 'non_negative', 'labor_cost', 'parts_cost', 'other_charges_total',
    'selling_price', 'tax_base', 'tax_amount', 'invoice_total', 'work_order_total',
    'to_cents', 'from_cents', 'format_money', 'format_quantity',
]
