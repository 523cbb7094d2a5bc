from __future__ import annotations
from flask import Blueprint, request
from fixmarket import get_db
from fixmarket.decorators.auth import require_permissions
from fixmarket.decorators.audit import audit_log
from fixmarket.errors import NotFound, PermissionDenied
from fixmarket.models.ticket import Ticket
from fixmarket.models.vendor import MaintenanceVendor
from fixmarket.services.assignment import (
    accept_ticket, assign_technician, assignment_from_payload, complete_ticket, parse_schedule,
    reject_ticket, start_ticket,
)
from fixmarket.services.policy import assert_ticket_visible, current_actor, ticket_visibility_filter
from fixmarket.utils.dates import iso
from fixmarket.utils.listing import apply_filters, apply_multi_sort, paginated, resource_response
from fixmarket.utils.validation import parse_bool, parse_id, require_text, validate_status

tickets_bp = Blueprint('tickets', __name__)

TICKET_SORT_FIELDS = {
    'id': Ticket.id,
    'title': Ticket.title,
    'priority': Ticket.priority,
    'status': Ticket.status,
    'created_at': Ticket.created_at,
    'updated_at': Ticket.updated_at,
}

TICKET_FILTERS = {
    'status': {
        'validate': lambda v: v in Ticket.ALL_STATUSES,
        'op': lambda q, v: q.filter(Ticket.status == v),
    },
    'priority': {
        'validate': lambda v: v in Ticket.ALL_PRIORITIES,
        'op': lambda q, v: q.filter(Ticket.priority == v),
    },
    'maintenance_vendor_id': {
        'coerce': int,
        'op': lambda q, v: q.filter(Ticket.maintenance_vendor_id == v),
    },
    'assignee_id': {
        'coerce': int,
        'op': lambda q, v: q.filter(Ticket.assignee_id == v),
    },
    'is_marketplace': {
        'coerce': lambda v: parse_bool(v, 'is_marketplace'),
        'op': lambda q, v: q.filter(Ticket.is_marketplace.is_(v)),
    },
}


def ticket_json(t: Ticket):
    return {
        'id': t.id,
        'organization_id': t.organization_id,
        'title': t.title,
        'description': t.description,
        'priority': t.priority,
        'status': t.status,
        'reporter_id': t.reporter_id,
        'maintenance_vendor_id': t.maintenance_vendor_id,
        'assignee_id': t.assignee_id,
        'is_marketplace': t.is_marketplace,
        'rejection_reason': t.rejection_reason,
        'scheduled_start': iso(t.scheduled_start),
        'scheduled_end': iso(t.scheduled_end),
        'estimated_duration_minutes': t.estimated_duration_minutes,
        'created_at': iso(t.created_at),
    }


def load_visible_ticket(session, actor, ticket_id: int) -> Ticket:
    t = session.get(Ticket, ticket_id)
    if not t:
        raise NotFound('Ticket', ticket_id)
    assert_ticket_visible(session, actor, t)
    return t


def _prefetch_ticket(ticket_id: int):
    t = get_db().get(Ticket, ticket_id)
    if not t:
        return {}
    return {
        'status': t.status,
        'maintenance_vendor_id': t.maintenance_vendor_id,
        'assignee_id': t.assignee_id,
        'is_marketplace': t.is_marketplace,
    }


_ASSIGNMENT_KEYS = ['status', 'maintenance_vendor_id', 'assignee_id', 'is_marketplace']


@tickets_bp.get('/tickets')
@require_permissions('TKT.READ')
def list_tickets():
    session = get_db()
    actor = current_actor()
    q = session.query(Ticket)
    scope = ticket_visibility_filter(session, actor)
    if scope is not None:
        q = q.filter(scope)
    q = apply_filters(q, TICKET_FILTERS, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), TICKET_SORT_FIELDS, Ticket.id)
    return paginated(q, ticket_json)


@tickets_bp.post('/tickets')
@require_permissions('TKT.CREATE')
@audit_log('TKT.CREATE', entity='Ticket', entity_id_key='id', meta_keys=['organization_id', 'priority', 'maintenance_vendor_id'])
def create_ticket():
    session = get_db()
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    if actor.is_root:
        organization_id = parse_id(data.get('organization_id'), 'organization_id')
    elif actor.is_organization_user and actor.organization_id is not None:
        organization_id = actor.organization_id
    else:
        raise PermissionDenied(description='Only organization users may raise tickets')
    priority = validate_status(data.get('priority') or Ticket.PRIORITY_MEDIUM, Ticket.ALL_PRIORITIES, 'priority')
    vendor_id = parse_id(data.get('maintenance_vendor_id'), 'maintenance_vendor_id', required=False)
    if vendor_id is not None and not session.get(MaintenanceVendor, vendor_id):
        raise NotFound('MaintenanceVendor', vendor_id)
    t = Ticket(
        organization_id=organization_id,
        title=require_text(data, 'title', max_length=200),
        description=require_text(data, 'description'),
        priority=priority,
        status=Ticket.STATUS_OPEN,
        reporter_id=actor.user_id,
        # Optional vendor the ticket is addressed to before acceptance
        maintenance_vendor_id=vendor_id,
        is_marketplace=False,
    )
    session.add(t)
    session.commit()
    return ticket_json(t), 201


@tickets_bp.route('/tickets/<int:ticket_id>', methods=['GET', 'HEAD'])
@require_permissions('TKT.READ')
def get_ticket(ticket_id: int):
    t = load_visible_ticket(get_db(), current_actor(), ticket_id)
    return resource_response(ticket_json(t), t.updated_at)


@tickets_bp.post('/tickets/<int:ticket_id>/accept')
@require_permissions('TKT.ACCEPT')
@audit_log('TKT.ACCEPT', entity='Ticket', entity_id_key='id', diff_keys=_ASSIGNMENT_KEYS,
           pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')), meta_keys=['status'])
def accept(ticket_id: int):
    session = get_db()
    actor = current_actor()
    t = load_visible_ticket(session, actor, ticket_id)
    accept_ticket(session, actor, t, assignment_from_payload(request.get_json(silent=True) or {}))
    session.commit()
    return ticket_json(t)


@tickets_bp.post('/tickets/<int:ticket_id>/reject')
@require_permissions('TKT.REJECT')
@audit_log('TKT.REJECT', entity='Ticket', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')), meta_keys=['rejection_reason'])
def reject(ticket_id: int):
    session = get_db()
    actor = current_actor()
    t = load_visible_ticket(session, actor, ticket_id)
    data = request.get_json(silent=True) or {}
    reject_ticket(session, actor, t, data.get('rejection_reason'))
    session.commit()
    return ticket_json(t)


@tickets_bp.post('/tickets/<int:ticket_id>/start')
@require_permissions('TKT.START')
@audit_log('TKT.START', entity='Ticket', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def start(ticket_id: int):
    session = get_db()
    actor = current_actor()
    t = load_visible_ticket(session, actor, ticket_id)
    start_ticket(session, actor, t)
    session.commit()
    return ticket_json(t)


@tickets_bp.post('/tickets/<int:ticket_id>/complete')
@require_permissions('TKT.COMPLETE')
@audit_log('TKT.COMPLETE', entity='Ticket', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def complete(ticket_id: int):
    session = get_db()
    actor = current_actor()
    t = load_visible_ticket(session, actor, ticket_id)
    data = request.get_json(silent=True) or {}
    complete_ticket(session, actor, t, data.get('status') or Ticket.STATUS_COMPLETED)
    session.commit()
    return ticket_json(t)


@tickets_bp.post('/tickets/<int:ticket_id>/assign-technician')
@require_permissions('TKT.DISPATCH')
@audit_log('TKT.DISPATCH', entity='Ticket', entity_id_key='id', diff_keys=_ASSIGNMENT_KEYS,
           pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')), meta_keys=['assignee_id', 'scheduled_start', 'scheduled_end'])
def dispatch(ticket_id: int):
    session = get_db()
    actor = current_actor()
    t = load_visible_ticket(session, actor, ticket_id)
    data = request.get_json(silent=True) or {}
    technician_id = parse_id(data.get('assignee_id'), 'assignee_id')
    ignore = parse_bool(data.get('ignore_conflicts'), 'ignore_conflicts')
    assign_technician(session, actor, t, technician_id, parse_schedule(data), ignore)
    session.commit()
    return ticket_json(t)
