"""Bid lifecycle: organization decisions (accept, reject, counter, approve) and the
vendor's response to a counter offer.

Every action first checks the bid is the live version; a superseded bid raises
StaleBidVersion before anything is mutated.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

from flask import current_app
from sqlalchemy import select

from fixmarket.constants.permissions import ROLE_ROOT, ROLE_ORG_ADMIN
from fixmarket.errors import InvalidTransition, PermissionDenied, ValidationError
from fixmarket.models.bid import MarketplaceBid
from fixmarket.models.ticket import Ticket
from fixmarket.services.bid_store import (
    assert_current, assert_open_for_bidding, draft_from_bid, get_ticket, supersede,
)
from fixmarket.services.policy import Actor, assert_organization_access, assert_vendor_staff
from fixmarket.utils.dates import utcnow
from fixmarket.utils.fsm import TransitionValidator
from fixmarket.utils.validation import parse_cents

BID_FSM = TransitionValidator({
    MarketplaceBid.STATUS_PENDING: {MarketplaceBid.STATUS_ACCEPTED, MarketplaceBid.STATUS_REJECTED, MarketplaceBid.STATUS_COUNTER},
    # A counter waits on the vendor; it can still be withdrawn or lose to a sibling
    MarketplaceBid.STATUS_COUNTER: {MarketplaceBid.STATUS_REJECTED},
    MarketplaceBid.STATUS_ACCEPTED: set(),
    MarketplaceBid.STATUS_REJECTED: set(),
}, entity='bid')

RESPOND_ACCEPT = 'accept'
RESPOND_REJECT = 'reject'
RESPOND_RECOUNTER = 'recounter'
RESPOND_ACTIONS = (RESPOND_ACCEPT, RESPOND_REJECT, RESPOND_RECOUNTER)


@dataclass
class AcceptResult:
    bid: MarketplaceBid
    ticket: Ticket
    rejected_sibling_ids: List[int] = field(default_factory=list)


def _require_text(value, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field_name)
    return value.strip()


def _decide(bid: MarketplaceBid, actor: Actor, status: str):
    BID_FSM.assert_can_transition(bid.status, status)
    bid.status = status
    bid.decided_by = actor.user_id
    bid.decided_at = utcnow()


def _open_ticket_for_decision(session, actor: Actor, bid: MarketplaceBid) -> Ticket:
    assert_current(session, bid)
    ticket = get_ticket(session, bid.ticket_id)
    assert_organization_access(actor, ticket.organization_id)
    assert_open_for_bidding(ticket)
    return ticket


def reject_siblings(session, actor: Actor, winner: MarketplaceBid) -> List[int]:
    reason = current_app.config.get('SIBLING_BID_REJECTION_REASON', 'Ticket awarded to another vendor')
    siblings = session.execute(
        select(MarketplaceBid).where(
            MarketplaceBid.ticket_id == winner.ticket_id,
            MarketplaceBid.id != winner.id,
            MarketplaceBid.is_superseded.is_(False),
            MarketplaceBid.status.in_(MarketplaceBid.OPEN_STATUSES),
        )
    ).scalars().all()
    for sibling in siblings:
        _decide(sibling, actor, MarketplaceBid.STATUS_REJECTED)
        sibling.rejection_reason = reason
    ids = sorted(s.id for s in siblings)
    if ids:
        current_app.logger.info('Ticket %s awarded; auto-rejected sibling bids %s', winner.ticket_id, ids)
    return ids


def _award(session, actor: Actor, bid: MarketplaceBid, ticket: Ticket) -> AcceptResult:
    _decide(bid, actor, MarketplaceBid.STATUS_ACCEPTED)
    ticket.maintenance_vendor_id = bid.maintenance_vendor_id
    ticket.assignee_id = None
    ticket.is_marketplace = False
    rejected = reject_siblings(session, actor, bid)
    session.flush()
    current_app.logger.info('Bid %s accepted; ticket %s assigned to vendor %s',
                            bid.id, ticket.id, bid.maintenance_vendor_id)
    return AcceptResult(bid=bid, ticket=ticket, rejected_sibling_ids=rejected)


def accept_bid(session, actor: Actor, bid: MarketplaceBid) -> AcceptResult:
    ticket = _open_ticket_for_decision(session, actor, bid)
    return _award(session, actor, bid, ticket)


def reject_bid(session, actor: Actor, bid: MarketplaceBid, rejection_reason) -> MarketplaceBid:
    _open_ticket_for_decision(session, actor, bid)
    reason = _require_text(rejection_reason, 'rejection_reason')
    _decide(bid, actor, MarketplaceBid.STATUS_REJECTED)
    bid.rejection_reason = reason
    session.flush()
    current_app.logger.info('Bid %s rejected', bid.id)
    return bid


def counter_bid(session, actor: Actor, bid: MarketplaceBid, counter_offer_cents, counter_notes) -> MarketplaceBid:
    _open_ticket_for_decision(session, actor, bid)
    amount = parse_cents(counter_offer_cents, 'counter_offer_cents')
    notes = _require_text(counter_notes, 'counter_notes')
    BID_FSM.assert_can_transition(bid.status, MarketplaceBid.STATUS_COUNTER)
    bid.status = MarketplaceBid.STATUS_COUNTER
    bid.counter_offer_cents = amount
    bid.counter_notes = notes
    bid.decided_by = actor.user_id
    bid.decided_at = utcnow()
    session.flush()
    current_app.logger.info('Bid %s countered at %s cents', bid.id, amount)
    return bid


def approve_bid(session, actor: Actor, bid: MarketplaceBid) -> MarketplaceBid:
    """Organization sign-off on an already accepted bid; status is left unchanged."""
    assert_current(session, bid)
    if actor.role not in (ROLE_ROOT, ROLE_ORG_ADMIN):
        raise PermissionDenied(description='Only organization admins may approve bids')
    ticket = get_ticket(session, bid.ticket_id)
    assert_organization_access(actor, ticket.organization_id)
    if bid.status != MarketplaceBid.STATUS_ACCEPTED:
        raise InvalidTransition(description=f'Bid {bid.id} must be accepted before approval')
    if bid.approved:
        raise InvalidTransition(description=f'Bid {bid.id} is already approved')
    bid.approved = True
    bid.approved_by = actor.user_id
    bid.approved_at = utcnow()
    session.flush()
    current_app.logger.info('Bid %s approved by user %s', bid.id, actor.user_id)
    return bid


def respond_to_counter(session, actor: Actor, bid: MarketplaceBid, action: str,
                       amount_cents=None, notes=None) -> MarketplaceBid:
    """Vendor answer to a counter offer. Returns the bid version carrying the outcome."""
    assert_current(session, bid)
    assert_vendor_staff(actor, bid.maintenance_vendor_id)
    if action not in RESPOND_ACTIONS:
        raise ValidationError('action', f"action must be one of {', '.join(RESPOND_ACTIONS)}")
    if bid.status != MarketplaceBid.STATUS_COUNTER:
        raise InvalidTransition(description=f'Bid {bid.id} has no counter offer awaiting a response')
    ticket = get_ticket(session, bid.ticket_id)
    assert_open_for_bidding(ticket)
    if action == RESPOND_REJECT:
        reason = _require_text(notes, 'notes')
        _decide(bid, actor, MarketplaceBid.STATUS_REJECTED)
        bid.rejection_reason = reason
        session.flush()
        current_app.logger.info('Counter on bid %s declined by vendor', bid.id)
        return bid
    if action == RESPOND_ACCEPT:
        new = supersede(session, actor, bid, draft_from_bid(bid, total_amount_cents=bid.counter_offer_cents or 0))
        _award(session, actor, new, ticket)
        return new
    amount = parse_cents(amount_cents, 'amount_cents')
    text = _require_text(notes, 'notes')
    new = supersede(session, actor, bid, draft_from_bid(bid, total_amount_cents=amount, additional_notes=text))
    current_app.logger.info('Vendor re-countered bid %s with %s cents', new.id, amount)
    return new

__all__ = [
    'BID_FSM', 'RESPOND_ACTIONS', 'AcceptResult', 'accept_bid', 'reject_bid', 'counter_bid',
    'approve_bid', 'respond_to_counter', 'reject_siblings',
]
