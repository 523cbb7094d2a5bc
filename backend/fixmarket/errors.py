"""Domain error taxonomy.

Each error is a Werkzeug HTTPException so services can raise it directly and the
unified handler in ``create_app`` renders the standard JSON error shape.
``error_code`` is a stable machine-readable tag surfaced as ``error.code``.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, Optional
from werkzeug.exceptions import BadRequest, Conflict, Forbidden, NotFound as _NotFound


class ValidationError(BadRequest):
    error_code = 'VALIDATION_ERROR'

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(description=message or f'{field} required')


class PermissionDenied(Forbidden):
    error_code = 'PERMISSION_DENIED'


class NotFound(_NotFound):
    error_code = 'NOT_FOUND'

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        detail = f'{entity} {entity_id} not found' if entity_id is not None else f'{entity} not found'
        super().__init__(description=detail)


class StaleBidVersion(Conflict):
    error_code = 'STALE_BID_VERSION'

    def __init__(self, bid_id: int, current_bid_id: Optional[int] = None):
        self.bid_id = bid_id
        self.current_bid_id = current_bid_id
        detail = f'Bid {bid_id} has been superseded; re-fetch the current version'
        if current_bid_id is not None:
            detail += f' (bid {current_bid_id})'
        super().__init__(description=detail)

    def extra(self) -> Dict[str, Any]:
        return {'current_bid_id': self.current_bid_id}


class DuplicateActiveBid(Conflict):
    error_code = 'DUPLICATE_ACTIVE_BID'

    def __init__(self, ticket_id: int, vendor_id: int, active_bid_id: int):
        self.active_bid_id = active_bid_id
        super().__init__(description=(
            f'Vendor {vendor_id} already has an active bid ({active_bid_id}) on ticket {ticket_id}; '
            'update it instead'
        ))

    def extra(self) -> Dict[str, Any]:
        return {'active_bid_id': self.active_bid_id}


class ScheduleConflict(Conflict):
    error_code = 'SCHEDULE_CONFLICT'

    def __init__(self, technician_id: int, ticket_ids: Iterable[int]):
        self.conflicting_ticket_ids = sorted(ticket_ids)
        super().__init__(description=f'Technician {technician_id} is already booked in that window')

    def extra(self) -> Dict[str, Any]:
        return {'conflicting_ticket_ids': self.conflicting_ticket_ids}


class InvalidTransition(Conflict):
    error_code = 'INVALID_TRANSITION'


__all__ = [
    'ValidationError', 'PermissionDenied', 'NotFound', 'StaleBidVersion',
    'DuplicateActiveBid', 'ScheduleConflict', 'InvalidTransition',
]
