from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping

from flask import current_app

from fixmarket.errors import ValidationError
from fixmarket.models.authz import User
from fixmarket.models.ticket import Ticket
from fixmarket.models.work_order import WorkOrder
from fixmarket.services import costing
from fixmarket.services.assignment import complete_ticket
from fixmarket.services.line_items import charges_from_payload, dump_charges, dump_parts, load_charges, load_parts, parts_from_payload
from fixmarket.services.policy import Actor
from fixmarket.utils.validation import optional_text, parse_cents, parse_decimal, require_text, validate_status


@dataclass(frozen=True)
class WorkOrderCosts:
    labor: Decimal
    parts: Decimal
    other: Decimal

    @property
    def total(self) -> Decimal:
        return self.labor + self.parts + self.other


def recompute_costs(wo: WorkOrder) -> WorkOrderCosts:
    """Costs derived from the stored hours, rate and line items, never the stored totals."""
    return WorkOrderCosts(
        labor=costing.labor_cost(wo.hours_worked, costing.from_cents(wo.hourly_rate_cents)),
        parts=costing.parts_cost(load_parts(wo.parts)),
        other=costing.other_charges_total(load_charges(wo.other_charges)),
    )


def apply_costs(wo: WorkOrder) -> WorkOrderCosts:
    costs = recompute_costs(wo)
    wo.labor_cost_cents = costing.to_cents(costs.labor)
    wo.parts_cost_cents = costing.to_cents(costs.parts)
    wo.other_charges_cents = costing.to_cents(costs.other)
    wo.total_cost_cents = costing.to_cents(costs.total)
    return costs


def _images(value: Any):
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValidationError('images', 'images must be a list of URLs')
    return value


def create_work_order(session, actor: Actor, ticket: Ticket, data: Mapping[str, Any]) -> WorkOrder:
    """Record a visit and move the ticket to the reported completion status."""
    completion_status = validate_status(data.get('completion_status'), WorkOrder.ALL_STATUSES, 'completion_status')
    rate = parse_cents(data.get('hourly_rate_cents'), 'hourly_rate_cents', required=False)
    if rate is None:
        rate = current_app.config.get('DEFAULT_HOURLY_RATE_CENTS', 7500)
    technician_name = optional_text(data, 'technician_name')
    if technician_name is None:
        user = session.get(User, actor.user_id)
        technician_name = user.name if user else f'user {actor.user_id}'
    wo = WorkOrder(
        ticket_id=ticket.id,
        technician_id=actor.user_id if actor.is_technician else ticket.assignee_id,
        technician_name=technician_name,
        work_description=require_text(data, 'work_description'),
        completion_status=completion_status,
        hours_worked=parse_decimal(data.get('hours_worked'), 'hours_worked', places=2),
        hourly_rate_cents=rate,
        parts=dump_parts(parts_from_payload(data.get('parts'))),
        other_charges=dump_charges(charges_from_payload(data.get('other_charges'))),
        completion_notes=optional_text(data, 'completion_notes'),
        images=_images(data.get('images')),
        created_by=actor.user_id,
    )
    # Ticket checks run first so a refused visit leaves nothing behind
    complete_ticket(session, actor, ticket, completion_status)
    apply_costs(wo)
    session.add(wo)
    session.flush()
    current_app.logger.info('Work order %s recorded on ticket %s (%s cents)', wo.id, ticket.id, wo.total_cost_cents)
    return wo

__all__ = ['WorkOrderCosts', 'recompute_costs', 'apply_costs', 'create_work_order']
