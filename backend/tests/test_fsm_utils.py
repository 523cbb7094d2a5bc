import pytest
from fixmarket.errors import InvalidTransition
from fixmarket.utils.fsm import TransitionValidator
from fixmarket.services.assignment import TICKET_FSM
from fixmarket.services.bid_lifecycle import BID_FSM
from fixmarket.services.invoicing import INVOICE_FSM


def test_fsm_allows_valid_transition():
    fsm = TransitionValidator({'open': {'accepted'}, 'accepted': set()})
    assert fsm.assert_can_transition('open', 'accepted') is True


def test_fsm_rejects_invalid_transition():
    fsm = TransitionValidator({'open': {'accepted'}, 'accepted': set()}, entity='ticket')
    with pytest.raises(InvalidTransition) as exc:
        fsm.assert_can_transition('accepted', 'open')
    assert exc.value.code == 409
    assert 'accepted -> open' in exc.value.description


def test_ticket_flow_allows_return_visits():
    assert TICKET_FSM.can_transition('in-progress', 'return_needed')
    assert TICKET_FSM.can_transition('return_needed', 'in-progress')
    assert not TICKET_FSM.can_transition('open', 'in-progress')
    assert TICKET_FSM.is_terminal('completed') and TICKET_FSM.is_terminal('rejected')


def test_bid_counter_cannot_be_accepted_directly():
    assert BID_FSM.can_transition('pending', 'counter')
    assert not BID_FSM.can_transition('counter', 'accepted')
    assert BID_FSM.can_transition('counter', 'rejected')
    assert BID_FSM.is_terminal('accepted')


def test_invoice_paid_is_terminal():
    assert INVOICE_FSM.can_transition('sent', 'paid')
    assert INVOICE_FSM.is_terminal('paid')
    assert set(INVOICE_FSM.states()) == {'sent', 'paid'}
