from __future__ import annotations
from flask import Blueprint, request
from fixmarket import get_db
from fixmarket.decorators.auth import require_permissions
from fixmarket.decorators.audit import audit_log
from fixmarket.errors import PermissionDenied, ValidationError
from fixmarket.models.bid import MarketplaceBid
from fixmarket.models.ticket import Ticket
from fixmarket.routes.tickets import load_visible_ticket, ticket_json
from fixmarket.services.bid_lifecycle import accept_bid, approve_bid, counter_bid, reject_bid, respond_to_counter
from fixmarket.services.bid_store import (
    bid_draft_from_payload, get_bid, get_bid_history, get_bids_for_ticket, get_ticket, place_bid, update_bid,
)
from fixmarket.services.line_items import load_parts
from fixmarket.services.policy import current_actor, vendor_has_marketplace_access
from fixmarket.utils.dates import iso
from fixmarket.utils.listing import apply_filters, apply_multi_sort, paginated
from fixmarket.utils.validation import parse_bool, parse_id

marketplace_bp = Blueprint('marketplace', __name__)

BID_SORT_FIELDS = {
    'id': MarketplaceBid.id,
    'ticket_id': MarketplaceBid.ticket_id,
    'status': MarketplaceBid.status,
    'total_amount_cents': MarketplaceBid.total_amount_cents,
    'created_at': MarketplaceBid.created_at,
    'updated_at': MarketplaceBid.updated_at,
}

BID_FILTERS = {
    'status': {
        'validate': lambda v: v in MarketplaceBid.ALL_STATUSES,
        'op': lambda q, v: q.filter(MarketplaceBid.status == v),
    },
    'ticket_id': {
        'coerce': int,
        'op': lambda q, v: q.filter(MarketplaceBid.ticket_id == v),
    },
}

MARKET_SORT_FIELDS = {
    'id': Ticket.id,
    'priority': Ticket.priority,
    'created_at': Ticket.created_at,
    'updated_at': Ticket.updated_at,
}


def bid_json(b: MarketplaceBid):
    return {
        'id': b.id,
        'ticket_id': b.ticket_id,
        'maintenance_vendor_id': b.maintenance_vendor_id,
        'submitted_by': b.submitted_by,
        'hourly_rate_cents': b.hourly_rate_cents,
        'estimated_hours': str(b.estimated_hours) if b.estimated_hours is not None else None,
        'response_time': b.response_time,
        'parts': [p.to_json() for p in load_parts(b.parts)],
        'total_amount_cents': b.total_amount_cents,
        'additional_notes': b.additional_notes,
        'status': b.status,
        'rejection_reason': b.rejection_reason,
        'counter_offer_cents': b.counter_offer_cents,
        'counter_notes': b.counter_notes,
        'decided_by': b.decided_by,
        'decided_at': iso(b.decided_at),
        'approved': b.approved,
        'approved_by': b.approved_by,
        'approved_at': iso(b.approved_at),
        'version': b.version,
        'is_superseded': b.is_superseded,
        'superseded_by_bid_id': b.superseded_by_bid_id,
        'previous_bid_id': b.previous_bid_id,
        'created_at': iso(b.created_at),
    }


def _assert_bid_visible(session, actor, bid: MarketplaceBid):
    if actor.maintenance_vendor_id is not None and actor.maintenance_vendor_id == bid.maintenance_vendor_id:
        return
    ticket = get_ticket(session, bid.ticket_id)
    if actor.is_root or (actor.is_organization_user and actor.organization_id == ticket.organization_id):
        return
    raise PermissionDenied(description='Bid access denied')


def _load_bid(session, actor, bid_id: int) -> MarketplaceBid:
    bid = get_bid(session, bid_id)
    _assert_bid_visible(session, actor, bid)
    return bid


def _bidding_vendor(actor, data) -> int:
    if actor.is_root:
        return parse_id(data.get('maintenance_vendor_id'), 'maintenance_vendor_id')
    if actor.maintenance_vendor_id is None:
        raise PermissionDenied(description='Only vendor staff may bid')
    return actor.maintenance_vendor_id


@marketplace_bp.get('/marketplace/tickets')
@require_permissions('BID.READ')
def marketplace_tickets():
    """Tickets currently open for bidding, visible to marketplace-tier vendors."""
    session = get_db()
    actor = current_actor()
    if not actor.is_root and not vendor_has_marketplace_access(session, actor.maintenance_vendor_id):
        raise PermissionDenied(description='Marketplace tier required')
    q = session.query(Ticket).filter(
        Ticket.is_marketplace.is_(True),
        Ticket.status == Ticket.STATUS_ACCEPTED,
        Ticket.maintenance_vendor_id.is_(None),
    )
    q = apply_multi_sort(q, request.args.get('sort'), MARKET_SORT_FIELDS, Ticket.id)
    return paginated(q, ticket_json)


@marketplace_bp.post('/marketplace/bids')
@require_permissions('BID.PLACE')
@audit_log('BID.PLACE', entity='MarketplaceBid', entity_id_key='id', meta_keys=['ticket_id', 'maintenance_vendor_id', 'total_amount_cents'])
def place():
    session = get_db()
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    ticket = get_ticket(session, parse_id(data.get('ticket_id'), 'ticket_id'))
    vendor_id = _bidding_vendor(actor, data)
    bid = place_bid(session, actor, ticket, vendor_id, bid_draft_from_payload(data))
    session.commit()
    return bid_json(bid), 201


@marketplace_bp.put('/marketplace/bids/<int:bid_id>')
@require_permissions('BID.PLACE')
@audit_log('BID.UPDATE', entity='MarketplaceBid', entity_id_key='id', meta_keys=['previous_bid_id', 'version', 'total_amount_cents'])
def update(bid_id: int):
    session = get_db()
    actor = current_actor()
    bid = _load_bid(session, actor, bid_id)
    new = update_bid(session, actor, bid, bid_draft_from_payload(request.get_json(silent=True) or {}))
    session.commit()
    return bid_json(new), 201


@marketplace_bp.post('/marketplace/bids/<int:bid_id>/accept')
@require_permissions('BID.DECIDE')
@audit_log('BID.ACCEPT', entity='MarketplaceBid', entity_id_arg='bid_id', meta_keys=['ticket_id', 'rejected_sibling_ids'])
def accept(bid_id: int):
    session = get_db()
    actor = current_actor()
    result = accept_bid(session, actor, _load_bid(session, actor, bid_id))
    session.commit()
    body = bid_json(result.bid)
    body['ticket'] = ticket_json(result.ticket)
    body['rejected_sibling_ids'] = result.rejected_sibling_ids
    return body


@marketplace_bp.post('/marketplace/bids/<int:bid_id>/reject')
@require_permissions('BID.DECIDE')
@audit_log('BID.REJECT', entity='MarketplaceBid', entity_id_key='id', meta_keys=['rejection_reason'])
def reject(bid_id: int):
    session = get_db()
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    bid = reject_bid(session, actor, _load_bid(session, actor, bid_id), data.get('rejection_reason'))
    session.commit()
    return bid_json(bid)


@marketplace_bp.post('/marketplace/bids/<int:bid_id>/counter')
@require_permissions('BID.DECIDE')
@audit_log('BID.COUNTER', entity='MarketplaceBid', entity_id_key='id', meta_keys=['counter_offer_cents'])
def counter(bid_id: int):
    session = get_db()
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    bid = counter_bid(session, actor, _load_bid(session, actor, bid_id),
                      data.get('counter_offer_cents'), data.get('counter_notes'))
    session.commit()
    return bid_json(bid)


@marketplace_bp.post('/marketplace/bids/<int:bid_id>/approve')
@require_permissions('BID.APPROVE')
@audit_log('BID.APPROVE', entity='MarketplaceBid', entity_id_key='id', meta_keys=['approved_by'])
def approve(bid_id: int):
    session = get_db()
    actor = current_actor()
    bid = approve_bid(session, actor, _load_bid(session, actor, bid_id))
    session.commit()
    return bid_json(bid)


@marketplace_bp.post('/marketplace/bids/<int:bid_id>/respond')
@require_permissions('BID.PLACE')
@audit_log('BID.RESPOND', entity='MarketplaceBid', entity_id_arg='bid_id',
           meta_builder=lambda data, rv, a, kw: {'action': (request.get_json(silent=True) or {}).get('action'),
                                                  'result_bid_id': data.get('id'), 'status': data.get('status')})
def respond(bid_id: int):
    session = get_db()
    actor = current_actor()
    data = request.get_json(silent=True) or {}
    result = respond_to_counter(session, actor, _load_bid(session, actor, bid_id), data.get('action'),
                                data.get('amount_cents'), data.get('notes'))
    session.commit()
    return bid_json(result)


@marketplace_bp.get('/marketplace/bids/<int:bid_id>/history')
@require_permissions('BID.READ')
def history(bid_id: int):
    session = get_db()
    actor = current_actor()
    bid = _load_bid(session, actor, bid_id)
    return {'data': [bid_json(b) for b in get_bid_history(session, bid)]}


@marketplace_bp.get('/marketplace/vendor-bids')
@require_permissions('BID.READ')
def vendor_bids():
    session = get_db()
    actor = current_actor()
    q = session.query(MarketplaceBid)
    if actor.is_root:
        vendor_id = parse_id(request.args.get('maintenance_vendor_id'), 'maintenance_vendor_id', required=False)
        if vendor_id is not None:
            q = q.filter(MarketplaceBid.maintenance_vendor_id == vendor_id)
    elif actor.maintenance_vendor_id is not None:
        q = q.filter(MarketplaceBid.maintenance_vendor_id == actor.maintenance_vendor_id)
    else:
        raise PermissionDenied(description='Only vendor staff have vendor bids')
    if not parse_bool(request.args.get('include_superseded'), 'include_superseded'):
        q = q.filter(MarketplaceBid.is_superseded.is_(False))
    q = apply_filters(q, BID_FILTERS, request.args)
    q = apply_multi_sort(q, request.args.get('sort') or '-created_at', BID_SORT_FIELDS, MarketplaceBid.id)
    return paginated(q, bid_json)


@marketplace_bp.get('/tickets/<int:ticket_id>/bids')
@require_permissions('BID.READ')
def ticket_bids(ticket_id: int):
    """All versions on the ticket, newest first per vendor; vendors only see their own."""
    session = get_db()
    actor = current_actor()
    ticket = load_visible_ticket(session, actor, ticket_id)
    bids = get_bids_for_ticket(session, ticket.id)
    if not actor.is_root and not actor.is_organization_user:
        bids = [b for b in bids if b.maintenance_vendor_id == actor.maintenance_vendor_id]
    if not parse_bool(request.args.get('include_superseded'), 'include_superseded', default=True):
        bids = [b for b in bids if not b.is_superseded]
    status = request.args.get('status')
    if status is not None:
        if status not in MarketplaceBid.ALL_STATUSES:
            raise ValidationError('status', 'status invalid')
        bids = [b for b in bids if b.status == status]
    return {'data': [bid_json(b) for b in bids]}
