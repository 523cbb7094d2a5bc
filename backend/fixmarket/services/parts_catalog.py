from __future__ import annotations
from decimal import Decimal
from typing import Any, List, Mapping

from flask import current_app

from fixmarket.errors import NotFound
from fixmarket.models.part import Part, PartPriceHistory
from fixmarket.models.vendor import MaintenanceVendor
from fixmarket.services import costing
from fixmarket.services.policy import Actor, assert_vendor_staff
from fixmarket.utils.validation import optional_text, parse_bool, parse_cents, parse_decimal, require_text


def selling_price_cents(cost_cents: int, markup_percentage: Any, round_to_ninety_nine: bool) -> int:
    price = costing.selling_price(costing.from_cents(cost_cents), markup_percentage, round_to_ninety_nine)
    return costing.to_cents(price)


def part_price_cents(part: Part) -> int:
    return selling_price_cents(part.cost_cents, part.markup_percentage, part.round_to_ninety_nine)


def get_part(session, part_id: int) -> Part:
    part = session.get(Part, part_id)
    if not part:
        raise NotFound('Part', part_id)
    return part


def create_part(session, actor: Actor, vendor_id: int, data: Mapping[str, Any]) -> Part:
    assert_vendor_staff(actor, vendor_id)
    if not session.get(MaintenanceVendor, vendor_id):
        raise NotFound('MaintenanceVendor', vendor_id)
    part = Part(
        maintenance_vendor_id=vendor_id,
        name=require_text(data, 'name', max_length=150),
        description=optional_text(data, 'description'),
        cost_cents=parse_cents(data.get('cost_cents'), 'cost_cents'),
        markup_percentage=parse_decimal(data.get('markup_percentage'), 'markup_percentage', required=False, places=2) or Decimal('0'),
        round_to_ninety_nine=parse_bool(data.get('round_to_ninety_nine'), 'round_to_ninety_nine'),
        created_by=actor.user_id,
    )
    session.add(part)
    session.flush()
    return part


def update_part(session, actor: Actor, part: Part, data: Mapping[str, Any]) -> Part:
    """Apply edits; any pricing change appends one PartPriceHistory row."""
    assert_vendor_staff(actor, part.maintenance_vendor_id)
    old_cost = part.cost_cents
    old_markup = Decimal(part.markup_percentage or 0)
    old_round = bool(part.round_to_ninety_nine)
    old_price = part_price_cents(part)

    if 'name' in data:
        part.name = require_text(data, 'name', max_length=150)
    if 'description' in data:
        part.description = optional_text(data, 'description')
    if 'is_active' in data:
        part.is_active = parse_bool(data.get('is_active'), 'is_active')
    if 'cost_cents' in data:
        part.cost_cents = parse_cents(data.get('cost_cents'), 'cost_cents')
    if 'markup_percentage' in data:
        part.markup_percentage = parse_decimal(data.get('markup_percentage'), 'markup_percentage', places=2)
    if 'round_to_ninety_nine' in data:
        part.round_to_ninety_nine = parse_bool(data.get('round_to_ninety_nine'), 'round_to_ninety_nine')

    new_markup = Decimal(part.markup_percentage or 0)
    if (part.cost_cents, new_markup, bool(part.round_to_ninety_nine)) != (old_cost, old_markup, old_round):
        new_price = part_price_cents(part)
        session.add(PartPriceHistory(
            part_id=part.id,
            old_cost_cents=old_cost,
            new_cost_cents=part.cost_cents,
            old_price_cents=old_price,
            new_price_cents=new_price,
            markup_percentage=new_markup,
            round_to_ninety_nine=bool(part.round_to_ninety_nine),
            changed_by=actor.user_id,
        ))
        current_app.logger.info('Part %s repriced %s -> %s cents', part.id, old_price, new_price)
    session.flush()
    return part


def price_history(session, part: Part) -> List[PartPriceHistory]:
    return (
        session.query(PartPriceHistory)
        .filter(PartPriceHistory.part_id == part.id)
        .order_by(PartPriceHistory.changed_at.desc(), PartPriceHistory.id.desc())
        .all()
    )

__all__ = ['selling_price_cents', 'part_price_cents', 'get_part', 'create_part', 'update_part', 'price_history']
