"""Ticket assignment resolver and ticket status flow.

Accepting a ticket picks exactly one assignment mode:

* ``vendor``      direct to a maintenance vendor (organization users)
* ``technician``  direct to a technician, optionally scheduled (maintenance admins, own staff only)
* ``marketplace`` no assignee; vendors with the marketplace tier bid on it

The schedule conflict check is advisory: callers may pass ``ignore_conflicts``.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Mapping, Optional

from flask import current_app
from sqlalchemy import select

from fixmarket.constants.permissions import ROLE_TECHNICIAN
from fixmarket.errors import NotFound, PermissionDenied, ScheduleConflict, ValidationError
from fixmarket.models.authz import User
from fixmarket.models.ticket import Ticket
from fixmarket.models.vendor import MaintenanceVendor
from fixmarket.services.policy import Actor, assert_organization_access, assert_vendor_staff, can_open_marketplace
from fixmarket.utils.dates import parse_datetime
from fixmarket.utils.fsm import TransitionValidator
from fixmarket.utils.validation import optional_text, parse_bool, parse_id

TICKET_FSM = TransitionValidator({
    Ticket.STATUS_OPEN: {Ticket.STATUS_ACCEPTED, Ticket.STATUS_REJECTED},
    Ticket.STATUS_ACCEPTED: {Ticket.STATUS_IN_PROGRESS},
    Ticket.STATUS_IN_PROGRESS: {Ticket.STATUS_COMPLETED, Ticket.STATUS_RETURN_NEEDED},
    Ticket.STATUS_RETURN_NEEDED: {Ticket.STATUS_IN_PROGRESS},
    Ticket.STATUS_COMPLETED: set(),
    Ticket.STATUS_REJECTED: set(),
}, entity='ticket')

MODE_VENDOR = 'vendor'
MODE_TECHNICIAN = 'technician'
MODE_MARKETPLACE = 'marketplace'
ASSIGNMENT_MODES = (MODE_VENDOR, MODE_TECHNICIAN, MODE_MARKETPLACE)


@dataclass
class Schedule:
    start: datetime
    end: datetime
    duration_minutes: int


@dataclass
class AssignmentRequest:
    mode: str
    vendor_id: Optional[int] = None
    technician_id: Optional[int] = None
    schedule: Optional[Schedule] = None
    ignore_conflicts: bool = False


def parse_schedule(data: Mapping[str, Any]) -> Optional[Schedule]:
    start = parse_datetime(data.get('scheduled_start'), 'scheduled_start')
    end = parse_datetime(data.get('scheduled_end'), 'scheduled_end')
    if start is None and end is None:
        return None
    if start is None:
        raise ValidationError('scheduled_start')
    if end is None:
        raise ValidationError('scheduled_end')
    if end <= start:
        raise ValidationError('scheduled_end', 'scheduled_end must be after scheduled_start')
    duration = data.get('estimated_duration_minutes')
    if duration is None:
        duration = int((end - start).total_seconds() // 60)
    elif isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise ValidationError('estimated_duration_minutes', 'estimated_duration_minutes must be a positive integer')
    return Schedule(start=start, end=end, duration_minutes=duration)


def assignment_from_payload(data: Mapping[str, Any]) -> AssignmentRequest:
    """Read the mode explicitly or infer it from the single target supplied."""
    vendor_id = parse_id(data.get('maintenance_vendor_id'), 'maintenance_vendor_id', required=False)
    technician_id = parse_id(data.get('assignee_id'), 'assignee_id', required=False)
    marketplace = parse_bool(data.get('is_marketplace'), 'is_marketplace')
    mode = data.get('mode')
    if mode is None:
        chosen = [m for m, on in ((MODE_VENDOR, vendor_id is not None and technician_id is None),
                                  (MODE_TECHNICIAN, technician_id is not None),
                                  (MODE_MARKETPLACE, marketplace)) if on]
        if len(chosen) != 1:
            raise ValidationError('mode', 'exactly one of maintenance_vendor_id, assignee_id or is_marketplace is required')
        mode = chosen[0]
    if mode not in ASSIGNMENT_MODES:
        raise ValidationError('mode', f"mode must be one of {', '.join(ASSIGNMENT_MODES)}")
    if mode == MODE_VENDOR and vendor_id is None:
        raise ValidationError('maintenance_vendor_id')
    if mode == MODE_TECHNICIAN and technician_id is None:
        raise ValidationError('assignee_id')
    if mode == MODE_MARKETPLACE and (vendor_id is not None or technician_id is not None):
        raise ValidationError('mode', 'marketplace tickets cannot carry a direct assignee')
    return AssignmentRequest(
        mode=mode,
        vendor_id=vendor_id,
        technician_id=technician_id,
        schedule=parse_schedule(data) if mode == MODE_TECHNICIAN else None,
        ignore_conflicts=parse_bool(data.get('ignore_conflicts'), 'ignore_conflicts'),
    )


def find_schedule_conflicts(session, technician_id: int, start: datetime, end: datetime,
                            exclude_ticket_id: Optional[int] = None) -> List[int]:
    """Ids of the technician's live scheduled tickets overlapping [start, end)."""
    q = select(Ticket.id).where(
        Ticket.assignee_id == technician_id,
        Ticket.status.notin_(Ticket.TERMINAL_STATUSES),
        Ticket.scheduled_start.is_not(None),
        Ticket.scheduled_end.is_not(None),
        Ticket.scheduled_start < end,
        Ticket.scheduled_end > start,
    )
    if exclude_ticket_id is not None:
        q = q.where(Ticket.id != exclude_ticket_id)
    return list(session.execute(q).scalars())


def _active_vendor(session, vendor_id: int) -> MaintenanceVendor:
    vendor = session.get(MaintenanceVendor, vendor_id)
    if not vendor:
        raise NotFound('MaintenanceVendor', vendor_id)
    if vendor.status != MaintenanceVendor.STATUS_ACTIVE:
        raise ValidationError('maintenance_vendor_id', f'Vendor {vendor_id} is inactive')
    return vendor


def _technician_for(session, actor: Actor, technician_id: int) -> User:
    tech = session.get(User, technician_id)
    if not tech or tech.role != ROLE_TECHNICIAN or not tech.is_active:
        raise NotFound('Technician', technician_id)
    if tech.maintenance_vendor_id is None:
        raise ValidationError('assignee_id', f'Technician {technician_id} has no vendor')
    if not actor.is_root and (not actor.is_vendor_admin or actor.maintenance_vendor_id != tech.maintenance_vendor_id):
        raise PermissionDenied(description='Technicians can only be assigned by their own vendor admin')
    return tech


def _place_technician(session, ticket: Ticket, tech: User, schedule: Optional[Schedule], ignore_conflicts: bool):
    if schedule is not None and not ignore_conflicts:
        conflicts = find_schedule_conflicts(session, tech.id, schedule.start, schedule.end, ticket.id)
        if conflicts:
            raise ScheduleConflict(tech.id, conflicts)
    ticket.assignee_id = tech.id
    ticket.maintenance_vendor_id = tech.maintenance_vendor_id
    ticket.is_marketplace = False
    if schedule is not None:
        ticket.scheduled_start = schedule.start
        ticket.scheduled_end = schedule.end
        ticket.estimated_duration_minutes = schedule.duration_minutes


def accept_ticket(session, actor: Actor, ticket: Ticket, req: AssignmentRequest) -> Ticket:
    TICKET_FSM.assert_can_transition(ticket.status, Ticket.STATUS_ACCEPTED)
    if req.mode == MODE_TECHNICIAN:
        tech = _technician_for(session, actor, req.technician_id)
        if ticket.maintenance_vendor_id is not None and ticket.maintenance_vendor_id != tech.maintenance_vendor_id:
            raise PermissionDenied(description=f'Ticket {ticket.id} is addressed to another vendor')
        if not actor.is_root and ticket.maintenance_vendor_id is None:
            raise PermissionDenied(description=f'Ticket {ticket.id} is not addressed to your vendor')
        _place_technician(session, ticket, tech, req.schedule, req.ignore_conflicts)
    else:
        assert_organization_access(actor, ticket.organization_id)
        if req.mode == MODE_VENDOR:
            vendor = _active_vendor(session, req.vendor_id)
            ticket.maintenance_vendor_id = vendor.id
            ticket.assignee_id = None
            ticket.is_marketplace = False
        else:
            if not can_open_marketplace(actor):
                raise PermissionDenied(description='Marketplace tier required to open tickets for bidding')
            ticket.maintenance_vendor_id = None
            ticket.assignee_id = None
            ticket.is_marketplace = True
    ticket.status = Ticket.STATUS_ACCEPTED
    session.flush()
    current_app.logger.info('Ticket %s accepted in %s mode', ticket.id, req.mode)
    return ticket


def assign_technician(session, actor: Actor, ticket: Ticket, technician_id: int,
                      schedule: Optional[Schedule] = None, ignore_conflicts: bool = False) -> Ticket:
    """Dispatch one of the vendor's technicians to a ticket already awarded to that vendor."""
    if ticket.status not in (Ticket.STATUS_ACCEPTED, Ticket.STATUS_RETURN_NEEDED):
        raise ValidationError('status', f'Ticket {ticket.id} cannot be dispatched while {ticket.status}')
    if ticket.maintenance_vendor_id is None:
        raise PermissionDenied(description=f'Ticket {ticket.id} has not been awarded to a vendor')
    assert_vendor_staff(actor, ticket.maintenance_vendor_id)
    tech = _technician_for(session, actor, technician_id)
    if tech.maintenance_vendor_id != ticket.maintenance_vendor_id:
        raise PermissionDenied(description=f'Technician {technician_id} does not work for the assigned vendor')
    _place_technician(session, ticket, tech, schedule, ignore_conflicts)
    session.flush()
    current_app.logger.info('Technician %s dispatched to ticket %s', tech.id, ticket.id)
    return ticket


def reject_ticket(session, actor: Actor, ticket: Ticket, reason) -> Ticket:
    assert_organization_access(actor, ticket.organization_id)
    TICKET_FSM.assert_can_transition(ticket.status, Ticket.STATUS_REJECTED)
    text = optional_text({'rejection_reason': reason}, 'rejection_reason')
    if not text:
        raise ValidationError('rejection_reason')
    ticket.status = Ticket.STATUS_REJECTED
    ticket.rejection_reason = text
    session.flush()
    current_app.logger.info('Ticket %s rejected', ticket.id)
    return ticket


def _assert_worker(actor: Actor, ticket: Ticket):
    if actor.is_root:
        return
    if actor.is_technician and ticket.assignee_id == actor.user_id:
        return
    if actor.is_vendor_admin and ticket.maintenance_vendor_id == actor.maintenance_vendor_id:
        return
    raise PermissionDenied(description=f'Not assigned to ticket {ticket.id}')


def start_ticket(session, actor: Actor, ticket: Ticket) -> Ticket:
    TICKET_FSM.assert_can_transition(ticket.status, Ticket.STATUS_IN_PROGRESS)
    if ticket.is_marketplace or not ticket.is_directly_assigned:
        raise ValidationError('assignee_id', f'Ticket {ticket.id} has no vendor or technician assigned')
    _assert_worker(actor, ticket)
    ticket.status = Ticket.STATUS_IN_PROGRESS
    session.flush()
    current_app.logger.info('Ticket %s started', ticket.id)
    return ticket


def complete_ticket(session, actor: Actor, ticket: Ticket, status: str = Ticket.STATUS_COMPLETED) -> Ticket:
    if status not in (Ticket.STATUS_COMPLETED, Ticket.STATUS_RETURN_NEEDED):
        raise ValidationError('status', 'status must be completed or return_needed')
    _assert_worker(actor, ticket)
    TICKET_FSM.assert_can_transition(ticket.status, status)
    ticket.status = status
    session.flush()
    current_app.logger.info('Ticket %s marked %s', ticket.id, status)
    return ticket

__all__ = [
    'TICKET_FSM', 'ASSIGNMENT_MODES', 'MODE_VENDOR', 'MODE_TECHNICIAN', 'MODE_MARKETPLACE',
    'Schedule', 'AssignmentRequest', 'parse_schedule', 'assignment_from_payload',
    'find_schedule_conflicts', 'accept_ticket', 'assign_technician', 'reject_ticket',
    'start_ticket', 'complete_ticket',
]
