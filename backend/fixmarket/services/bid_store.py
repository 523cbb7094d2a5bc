"""Bid record store: versioned marketplace bids keyed by (ticket, vendor).

A vendor holds at most one live (non-superseded) version per ticket. Updating a bid
supersedes the live row and inserts ``version + 1`` pointing back through
``previous_bid_id``; both writes happen in the caller's transaction, and the partial
unique index ``uq_marketplace_bids_active_version`` rejects a second live version if
two writers race.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from fixmarket.constants.permissions import TIER_MARKETPLACE
from fixmarket.errors import DuplicateActiveBid, InvalidTransition, NotFound, PermissionDenied, StaleBidVersion, ValidationError
from fixmarket.models.bid import MarketplaceBid
from fixmarket.models.ticket import Ticket
from fixmarket.services import costing
from fixmarket.services.line_items import PartLine, dump_parts, load_parts, parts_from_payload
from fixmarket.services.policy import Actor, vendor_has_marketplace_access
from fixmarket.utils.validation import optional_text, parse_cents, parse_decimal


@dataclass
class BidDraft:
    total_amount_cents: int
    hourly_rate_cents: Optional[int] = None
    estimated_hours: Optional[Decimal] = None
    response_time: Optional[str] = None
    parts: List[PartLine] = field(default_factory=list)
    additional_notes: Optional[str] = None


def compute_bid_total(hourly_rate_cents: Optional[int], estimated_hours: Optional[Decimal], parts: List[PartLine]) -> int:
    labor = costing.labor_cost(estimated_hours, costing.from_cents(hourly_rate_cents))
    return costing.to_cents(labor + costing.parts_cost(parts))


def bid_draft_from_payload(data: Mapping[str, Any]) -> BidDraft:
    """Itemized bids (rate, hours or parts present) are totalled here; flat bids must send a total."""
    rate = parse_cents(data.get('hourly_rate_cents'), 'hourly_rate_cents', required=False)
    hours = parse_decimal(data.get('estimated_hours'), 'estimated_hours', required=False, places=2)
    parts = parts_from_payload(data.get('parts'))
    if rate is not None or hours is not None or parts:
        total = compute_bid_total(rate, hours, parts)
    else:
        total = parse_cents(data.get('total_amount_cents'), 'total_amount_cents')
    return BidDraft(
        total_amount_cents=total,
        hourly_rate_cents=rate,
        estimated_hours=hours,
        response_time=optional_text(data, 'response_time'),
        parts=parts,
        additional_notes=optional_text(data, 'additional_notes'),
    )


def draft_from_bid(bid: MarketplaceBid, **overrides) -> BidDraft:
    draft = BidDraft(
        total_amount_cents=bid.total_amount_cents,
        hourly_rate_cents=bid.hourly_rate_cents,
        estimated_hours=bid.estimated_hours,
        response_time=bid.response_time,
        parts=load_parts(bid.parts),
        additional_notes=bid.additional_notes,
    )
    for key, value in overrides.items():
        setattr(draft, key, value)
    return draft


def get_bid(session, bid_id: int) -> MarketplaceBid:
    bid = session.get(MarketplaceBid, bid_id)
    if not bid:
        raise NotFound('Bid', bid_id)
    return bid


def get_ticket(session, ticket_id: int) -> Ticket:
    ticket = session.get(Ticket, ticket_id)
    if not ticket:
        raise NotFound('Ticket', ticket_id)
    return ticket


def get_active_bid_for_vendor_ticket(session, ticket_id: int, vendor_id: int) -> Optional[MarketplaceBid]:
    return session.execute(
        select(MarketplaceBid).where(
            MarketplaceBid.ticket_id == ticket_id,
            MarketplaceBid.maintenance_vendor_id == vendor_id,
            MarketplaceBid.is_superseded.is_(False),
        )
    ).scalar_one_or_none()


def get_bids_for_ticket(session, ticket_id: int) -> List[MarketplaceBid]:
    """Every version on the ticket, grouped by vendor with the newest version first."""
    return list(session.execute(
        select(MarketplaceBid)
        .where(MarketplaceBid.ticket_id == ticket_id)
        .order_by(MarketplaceBid.maintenance_vendor_id.asc(), MarketplaceBid.version.desc(), MarketplaceBid.id.desc())
    ).scalars())


def current_version(session, bid: MarketplaceBid) -> MarketplaceBid:
    """Follow the supersession chain forward to the live version."""
    head = bid
    seen = {head.id}
    while head.superseded_by_bid_id is not None and head.superseded_by_bid_id not in seen:
        head = get_bid(session, head.superseded_by_bid_id)
        seen.add(head.id)
    return head


def get_bid_history(session, bid: MarketplaceBid) -> List[MarketplaceBid]:
    """Full version chain oldest -> newest, rebuilt from previous_bid_id back-references."""
    chain = []
    node: Optional[MarketplaceBid] = current_version(session, bid)
    seen = set()
    while node is not None and node.id not in seen:
        seen.add(node.id)
        chain.append(node)
        node = get_bid(session, node.previous_bid_id) if node.previous_bid_id is not None else None
    chain.reverse()
    return chain


def assert_current(session, bid: MarketplaceBid):
    if bid.is_superseded:
        raise StaleBidVersion(bid.id, current_version(session, bid).id)


def is_open_for_bidding(ticket: Ticket) -> bool:
    return (
        ticket.is_marketplace
        and ticket.status == Ticket.STATUS_ACCEPTED
        and ticket.maintenance_vendor_id is None
    )


def assert_open_for_bidding(ticket: Ticket):
    if not is_open_for_bidding(ticket):
        raise InvalidTransition(description=f'Ticket {ticket.id} is not open for marketplace bidding')


def assert_can_bid(session, actor: Actor, vendor_id: int):
    if not actor.is_root:
        if not actor.is_vendor_admin or actor.maintenance_vendor_id != vendor_id:
            raise PermissionDenied(description='Only the vendor\'s maintenance admin may bid for it')
    if not vendor_has_marketplace_access(session, vendor_id):
        raise PermissionDenied(description=f'Vendor {vendor_id} lacks the {TIER_MARKETPLACE} tier')


def _new_row(ticket_id: int, vendor_id: int, actor: Actor, draft: BidDraft, **extra) -> MarketplaceBid:
    return MarketplaceBid(
        ticket_id=ticket_id,
        maintenance_vendor_id=vendor_id,
        submitted_by=actor.user_id,
        hourly_rate_cents=draft.hourly_rate_cents,
        estimated_hours=draft.estimated_hours,
        response_time=draft.response_time,
        parts=dump_parts(draft.parts),
        total_amount_cents=draft.total_amount_cents,
        additional_notes=draft.additional_notes,
        **extra,
    )


def place_bid(session, actor: Actor, ticket: Ticket, vendor_id: int, draft: BidDraft) -> MarketplaceBid:
    assert_can_bid(session, actor, vendor_id)
    assert_open_for_bidding(ticket)
    existing = get_active_bid_for_vendor_ticket(session, ticket.id, vendor_id)
    if existing:
        raise DuplicateActiveBid(ticket.id, vendor_id, existing.id)
    bid = _new_row(ticket.id, vendor_id, actor, draft, status=MarketplaceBid.STATUS_PENDING, version=1)
    session.add(bid)
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        winner = get_active_bid_for_vendor_ticket(session, ticket.id, vendor_id)
        raise DuplicateActiveBid(ticket.id, vendor_id, winner.id if winner else 0)
    current_app.logger.info('Bid %s placed on ticket %s by vendor %s (%s cents)',
                            bid.id, ticket.id, vendor_id, bid.total_amount_cents)
    return bid


def supersede(session, actor: Actor, old: MarketplaceBid, draft: BidDraft,
              status: str = MarketplaceBid.STATUS_PENDING) -> MarketplaceBid:
    """Retire ``old`` and insert its successor; only linkage fields change on ``old``."""
    assert_current(session, old)
    old.is_superseded = True
    try:
        session.flush()
        new = _new_row(old.ticket_id, old.maintenance_vendor_id, actor, draft,
                       status=status, version=old.version + 1, previous_bid_id=old.id)
        session.add(new)
        session.flush()
    except IntegrityError:
        session.rollback()
        raise StaleBidVersion(old.id, None)
    old.superseded_by_bid_id = new.id
    session.flush()
    current_app.logger.info('Bid %s superseded by %s (version %s)', old.id, new.id, new.version)
    return new


def update_bid(session, actor: Actor, bid: MarketplaceBid, draft: BidDraft) -> MarketplaceBid:
    assert_current(session, bid)
    assert_can_bid(session, actor, bid.maintenance_vendor_id)
    if bid.status == MarketplaceBid.STATUS_ACCEPTED:
        raise InvalidTransition(description=f'Bid {bid.id} is accepted and can no longer be revised')
    assert_open_for_bidding(get_ticket(session, bid.ticket_id))
    return supersede(session, actor, bid, draft)


def submit_bid(session, actor: Actor, ticket_id: int, vendor_id: int, draft: BidDraft,
               bid_id: Optional[int] = None) -> MarketplaceBid:
    """Place a first bid (``bid_id`` None) or version the live bid ``bid_id``."""
    ticket = get_ticket(session, ticket_id)
    if bid_id is None:
        return place_bid(session, actor, ticket, vendor_id, draft)
    bid = get_bid(session, bid_id)
    if bid.ticket_id != ticket_id or bid.maintenance_vendor_id != vendor_id:
        raise ValidationError('bid_id', f'Bid {bid_id} does not belong to ticket {ticket_id} and vendor {vendor_id}')
    return update_bid(session, actor, bid, draft)

__all__ = [
    'BidDraft', 'bid_draft_from_payload', 'draft_from_bid', 'compute_bid_total',
    'get_bid', 'get_ticket', 'get_active_bid_for_vendor_ticket', 'get_bids_for_ticket',
    'current_version', 'get_bid_history', 'assert_current', 'is_open_for_bidding',
    'assert_open_for_bidding', 'place_bid', 'supersede', 'update_bid', 'submit_bid',
]
