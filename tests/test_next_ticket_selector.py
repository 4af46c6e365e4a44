"""Next-ticket selection: priority band first, FIFO within a band."""
import uuid

from queue_service.core.errors import ErrorCode
from queue_service.schemas.queue_ticket import TicketStatusUpdate
from queue_service.services.next_ticket_selector import NextTicketSelector


async def test_higher_priority_is_served_first(queue_engine, make_branch, issue):
    branch = await make_branch()
    high = await issue(branch.id, priority=5)
    await issue(branch.id, priority=1)

    selected = (await queue_engine.select_next(branch.id)).unwrap()

    assert selected.id == high.id


async def test_priority_beats_arrival_order(queue_engine, make_branch, issue):
    branch = await make_branch()
    await issue(branch.id, priority=1)
    late_high = await issue(branch.id, priority=5)

    selected = (await queue_engine.select_next(branch.id)).unwrap()

    assert selected.id == late_high.id


async def test_same_priority_is_fifo(queue_engine, make_branch, issue):
    branch = await make_branch()
    first = await issue(branch.id)
    second = await issue(branch.id)

    selected = (await queue_engine.select_next(branch.id)).unwrap()

    assert selected.id == first.id
    assert first.issued_at <= second.issued_at


async def test_only_waiting_tickets_are_candidates(queue_engine, make_branch, issue, move):
    branch = await make_branch()
    called = await issue(branch.id, priority=9)
    waiting = await issue(branch.id, priority=2)
    await move(called.id, "CALLED")

    selected = (await queue_engine.select_next(branch.id)).unwrap()

    assert selected.id == waiting.id


async def test_service_type_filter(queue_engine, make_branch, issue):
    branch = await make_branch()
    await issue(branch.id, service_type="DEPOSIT", priority=9)
    loans = await issue(branch.id, service_type="LOANS", priority=1)

    selected = (await queue_engine.select_next(branch.id, service_type="LOANS")).unwrap()

    assert selected.id == loans.id


async def test_empty_queue_returns_none(queue_engine, make_branch):
    branch = await make_branch()

    outcome = await queue_engine.select_next(branch.id)

    assert outcome.ok
    assert outcome.value is None


async def test_other_branches_are_ignored(queue_engine, make_branch, issue):
    branch = await make_branch()
    other = await make_branch()
    await issue(other.id, priority=10)

    assert (await queue_engine.select_next(branch.id)).unwrap() is None
    assert (await queue_engine.select_next(uuid.uuid4())).unwrap() is None


async def test_selection_does_not_change_state(db, make_branch, issue, get_branch):
    branch = await make_branch()
    ticket = await issue(branch.id)

    first = await NextTicketSelector(db).select_next(branch.id)
    again = await NextTicketSelector(db).select_next(branch.id)

    assert first.id == again.id == ticket.id
    assert first.status == "WAITING"
    assert (await get_branch(branch.id)).occupied == 1


async def test_calling_a_ticket_someone_else_called_is_illegal(queue_engine, make_branch, issue):
    branch = await make_branch()
    await issue(branch.id)
    selected = (await queue_engine.select_next(branch.id)).unwrap()

    assert (await queue_engine.transition(selected.id, TicketStatusUpdate(status="CALLED"))).ok
    second_call = await queue_engine.transition(selected.id, TicketStatusUpdate(status="CALLED"))

    assert second_call.error.code == ErrorCode.ILLEGAL_TRANSITION
