"""Simple finite state machine utility for enforcing allowed status transitions.

Used by the lifecycle models (Ticket, MarketplaceBid, Invoice).
Usage:
    from fixmarket.utils.fsm import TransitionValidator
    TICKET_FSM = TransitionValidator({
        'open': {'accepted', 'rejected'},
        'accepted': {'in-progress'},
        ...
    }, entity='Ticket')
    TICKET_FSM.assert_can_transition(current_status, target_status)

Raises InvalidTransition (409) if the edge is not in the graph.
"""
from __future__ import annotations
from typing import Dict, Set
from fixmarket.errors import InvalidTransition


class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], entity: str = 'record', field_name: str = 'status'):
        self.graph = graph
        self.entity = entity
        self.field_name = field_name

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            raise InvalidTransition(description=f"Invalid {self.entity} {self.field_name} transition {current} -> {target}")
        return True

    def is_terminal(self, status: str) -> bool:
        return not self.graph.get(status)

    def states(self):
        return list(self.graph.keys())

__all__ = ['TransitionValidator']
