"""Transition table and transition executor."""
import uuid
from itertools import product

import pytest

from queue_service.core.errors import IllegalTransition, TicketNotFound
from queue_service.models.queue_ticket import TicketStatus
from queue_service.services.event_log import EventLog
from queue_service.services.ticket_state_machine import (
    OCCUPYING_STATUSES,
    TERMINAL_STATUSES,
    TICKET_TRANSITIONS,
    describe_state_machine,
    get_allowed_transitions,
    get_transition_action,
    is_legal_transition,
    is_occupying,
    is_terminal,
    releases_capacity,
    validate_transition,
    TicketStateMachine,
)


LEGAL_EDGES = {
    (TicketStatus.WAITING, TicketStatus.CALLED),
    (TicketStatus.WAITING, TicketStatus.CANCELLED),
    (TicketStatus.CALLED, TicketStatus.SERVING),
    (TicketStatus.CALLED, TicketStatus.NO_SHOW),
    (TicketStatus.SERVING, TicketStatus.COMPLETED),
    (TicketStatus.SERVING, TicketStatus.CANCELLED),
}


# ==================== TABLE ====================

def test_every_status_has_a_table_entry():
    assert set(TICKET_TRANSITIONS) == set(TicketStatus)


@pytest.mark.parametrize("current,target", list(product(TicketStatus, TicketStatus)))
def test_legality_matches_the_lifecycle_graph(current, target):
    assert is_legal_transition(current, target) == ((current, target) in LEGAL_EDGES)


def test_self_transitions_are_illegal():
    for status in TicketStatus:
        assert not is_legal_transition(status, status)


def test_terminal_and_occupying_sets():
    assert TERMINAL_STATUSES == {TicketStatus.COMPLETED, TicketStatus.CANCELLED, TicketStatus.NO_SHOW}
    assert OCCUPYING_STATUSES == {TicketStatus.WAITING, TicketStatus.CALLED, TicketStatus.SERVING}
    assert is_terminal("NO_SHOW")
    assert not is_terminal(TicketStatus.CALLED)
    assert is_occupying("SERVING")
    assert not is_occupying(TicketStatus.COMPLETED)


def test_capacity_released_only_when_leaving_for_a_terminal_status():
    assert releases_capacity(TicketStatus.SERVING, TicketStatus.COMPLETED)
    assert releases_capacity(TicketStatus.WAITING, TicketStatus.CANCELLED)
    assert releases_capacity(TicketStatus.CALLED, TicketStatus.NO_SHOW)
    assert not releases_capacity(TicketStatus.WAITING, TicketStatus.CALLED)
    assert not releases_capacity(TicketStatus.CALLED, TicketStatus.SERVING)


def test_allowed_transitions_in_declaration_order():
    assert get_allowed_transitions(TicketStatus.WAITING) == [TicketStatus.CALLED, TicketStatus.CANCELLED]
    assert get_allowed_transitions("SERVING") == [TicketStatus.COMPLETED, TicketStatus.CANCELLED]
    assert get_allowed_transitions(TicketStatus.COMPLETED) == []


def test_transition_action_labels():
    assert get_transition_action(TicketStatus.WAITING, TicketStatus.CALLED) == "Call Ticket"
    assert get_transition_action(TicketStatus.CALLED, TicketStatus.NO_SHOW) == "Mark No-Show"
    assert get_transition_action(TicketStatus.COMPLETED, TicketStatus.WAITING) == "COMPLETED -> WAITING"


def test_validate_transition_reports_allowed_targets():
    with pytest.raises(IllegalTransition) as exc_info:
        validate_transition(TicketStatus.WAITING, TicketStatus.SERVING)

    assert exc_info.value.details == {
        "current_status": "WAITING",
        "requested_status": "SERVING",
        "allowed": ["CALLED", "CANCELLED"],
    }


def test_validate_transition_from_terminal_state():
    with pytest.raises(IllegalTransition) as exc_info:
        validate_transition(TicketStatus.CANCELLED, TicketStatus.WAITING)

    assert "terminal state" in exc_info.value.message
    assert exc_info.value.details["allowed"] == []


def test_describe_state_machine_lists_every_status():
    text = describe_state_machine()
    for status in TicketStatus:
        assert status.value in text
    assert "COMPLETED: [TERMINAL STATE]" in text
    assert "-> CALLED (Call Ticket)" in text


# ==================== EXECUTOR ====================

async def test_transition_sets_first_write_timestamp_and_records_event(db, make_branch, issue):
    branch = await make_branch()
    ticket = await issue(branch.id)

    machine = TicketStateMachine(db)
    updated, event = await machine.transition(ticket.id, TicketStatus.CALLED, actor_staff_id="staff-7", notes="Counter 2")
    await db.commit()

    assert updated.status == "CALLED"
    assert updated.called_at is not None
    assert updated.served_at is None
    assert updated.updated_at == updated.called_at
    assert event.event_type == "CALLED"
    assert event.from_status == "WAITING"
    assert event.staff_id == "staff-7"
    assert event.notes == "Counter 2"
    assert event.event_time == updated.called_at


async def test_transition_unknown_ticket(db):
    machine = TicketStateMachine(db)

    with pytest.raises(TicketNotFound):
        await machine.transition(uuid.uuid4(), TicketStatus.CALLED)


async def test_event_times_never_run_backwards(db, make_branch, issue, move):
    branch = await make_branch()
    ticket = await issue(branch.id)
    await move(ticket.id, "CALLED", "SERVING", "COMPLETED")

    events = await EventLog(db).for_ticket(ticket.id)

    assert [e.event_type for e in events] == ["CREATED", "CALLED", "SERVING", "COMPLETED"]
    times = [e.event_time for e in events]
    assert times == sorted(times)
