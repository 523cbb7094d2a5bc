from __future__ import annotations
from flask import Blueprint, request
from fixmarket import get_db
from fixmarket.decorators.auth import require_permissions
from fixmarket.decorators.audit import audit_log
from fixmarket.errors import NotFound
from fixmarket.models.work_order import WorkOrder
from fixmarket.routes.tickets import load_visible_ticket
from fixmarket.services import costing
from fixmarket.services.line_items import load_charges, load_parts
from fixmarket.services.policy import current_actor
from fixmarket.services.work_orders import create_work_order, recompute_costs
from fixmarket.utils.dates import iso
from fixmarket.utils.listing import apply_multi_sort, paginated, resource_response
from fixmarket.utils.validation import parse_id

work_orders_bp = Blueprint('work_orders', __name__)

WORK_ORDER_SORT_FIELDS = {
    'id': WorkOrder.id,
    'created_at': WorkOrder.created_at,
    'total_cost_cents': WorkOrder.total_cost_cents,
}


def work_order_json(wo: WorkOrder):
    costs = recompute_costs(wo)
    return {
        'id': wo.id,
        'ticket_id': wo.ticket_id,
        'technician_id': wo.technician_id,
        'technician_name': wo.technician_name,
        'work_description': wo.work_description,
        'completion_status': wo.completion_status,
        'hours_worked': costing.format_quantity(wo.hours_worked),
        'hourly_rate_cents': wo.hourly_rate_cents,
        'parts': [p.to_json() for p in load_parts(wo.parts)],
        'other_charges': [c.to_json() for c in load_charges(wo.other_charges)],
        'labor_cost_cents': costing.to_cents(costs.labor),
        'parts_cost_cents': costing.to_cents(costs.parts),
        'other_charges_cents': costing.to_cents(costs.other),
        'total_cost_cents': costing.to_cents(costs.total),
        'completion_notes': wo.completion_notes,
        'images': wo.images or [],
        'created_by': wo.created_by,
        'created_at': iso(wo.created_at),
    }


@work_orders_bp.post('/work-orders')
@require_permissions('WO.CREATE')
@audit_log('WO.CREATE', entity='WorkOrder', entity_id_key='id', meta_keys=['ticket_id', 'completion_status', 'total_cost_cents'])
def create():
    session = get_db()
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    ticket = load_visible_ticket(session, actor, parse_id(data.get('ticket_id'), 'ticket_id'))
    wo = create_work_order(session, actor, ticket, data)
    session.commit()
    return work_order_json(wo), 201


@work_orders_bp.route('/work-orders/<int:work_order_id>', methods=['GET', 'HEAD'])
@require_permissions('WO.READ')
def get_work_order(work_order_id: int):
    session = get_db()
    actor = current_actor()
    wo = session.get(WorkOrder, work_order_id)
    if not wo:
        raise NotFound('WorkOrder', work_order_id)
    load_visible_ticket(session, actor, wo.ticket_id)
    return resource_response(work_order_json(wo), wo.created_at)


@work_orders_bp.get('/tickets/<int:ticket_id>/work-orders')
@require_permissions('WO.READ')
def ticket_work_orders(ticket_id: int):
    session = get_db()
    ticket = load_visible_ticket(session, current_actor(), ticket_id)
    q = session.query(WorkOrder).filter(WorkOrder.ticket_id == ticket.id)
    q = apply_multi_sort(q, request.args.get('sort'), WORK_ORDER_SORT_FIELDS, WorkOrder.id)
    return paginated(q, work_order_json, timestamp_attr='created_at')
