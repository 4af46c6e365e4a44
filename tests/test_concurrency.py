"""
Concurrent issue and transition against one branch.

Each engine runs on its own session (and database connection), so the
attempts really race on the database rather than on a shared session.
"""
import asyncio
import random

from sqlalchemy import func, select

from queue_service.core.errors import ErrorCode
from queue_service.models.branch import Branch
from queue_service.models.queue_ticket import QueueEvent, QueueTicket, TicketStatus
from queue_service.schemas.queue_ticket import TicketCreate, TicketStatusUpdate
from queue_service.services.ticket_state_machine import is_occupying


async def test_last_slot_goes_to_exactly_one_caller(make_engine, make_branch, get_branch):
    branch = await make_branch(max_capacity=1)
    engines = [make_engine(), make_engine()]

    outcomes = await asyncio.gather(*[
        engine.issue_ticket(TicketCreate(branch_id=branch.id, service_type="DEPOSIT"))
        for engine in engines
    ])

    assert sum(1 for o in outcomes if o.ok) == 1
    assert [o.error.code for o in outcomes if not o.ok] == [ErrorCode.CAPACITY_EXCEEDED]
    assert (await get_branch(branch.id)).occupied == 1


async def test_burst_of_issues_never_overfills_branch(make_engine, make_branch, get_branch, db):
    branch = await make_branch(max_capacity=5)

    outcomes = await asyncio.gather(*[
        make_engine().issue_ticket(TicketCreate(branch_id=branch.id, service_type="DEPOSIT"))
        for _ in range(12)
    ])

    succeeded = [o.value for o in outcomes if o.ok]
    assert len(succeeded) == 5
    assert all(o.error.code == ErrorCode.CAPACITY_EXCEEDED for o in outcomes if not o.ok)
    assert sorted(t.ticket_number for t in succeeded) == [1, 2, 3, 4, 5]

    stored = await get_branch(branch.id)
    assert stored.occupied == 5
    assert await db.scalar(
        select(func.count(QueueTicket.id)).where(QueueTicket.branch_id == branch.id)
    ) == 5


async def test_competing_transitions_release_capacity_once(make_engine, make_branch, issue, move, get_branch, db):
    branch = await make_branch(max_capacity=3)
    ticket = await issue(branch.id)
    await issue(branch.id)
    await move(ticket.id, "CALLED", "SERVING")

    outcomes = await asyncio.gather(
        make_engine().transition(ticket.id, TicketStatusUpdate(status="COMPLETED")),
        make_engine().transition(ticket.id, TicketStatusUpdate(status="CANCELLED")),
    )

    assert sum(1 for o in outcomes if o.ok) == 1
    assert [o.error.code for o in outcomes if not o.ok] == [ErrorCode.ILLEGAL_TRANSITION]
    assert (await get_branch(branch.id)).occupied == 1

    terminal_events = await db.scalar(
        select(func.count(QueueEvent.id)).where(
            QueueEvent.ticket_id == ticket.id,
            QueueEvent.event_type.in_(["COMPLETED", "CANCELLED"]),
        )
    )
    assert terminal_events == 1


async def test_different_tickets_transition_in_parallel(make_engine, make_branch, issue, get_branch):
    branch = await make_branch(max_capacity=4)
    tickets = [await issue(branch.id) for _ in range(4)]

    outcomes = await asyncio.gather(*[
        make_engine().transition(t.id, TicketStatusUpdate(status="CANCELLED"))
        for t in tickets
    ])

    assert all(o.ok for o in outcomes)
    assert (await get_branch(branch.id)).occupied == 0


async def test_random_interleavings_keep_occupancy_consistent(make_engine, make_branch, session_factory):
    rng = random.Random(20260301)
    branch = await make_branch(max_capacity=4)
    statuses = [s.value for s in TicketStatus]
    ticket_ids = []
    applied = 0

    for _ in range(40):
        calls, issues = [], []
        for _ in range(4):
            engine = make_engine()
            if not ticket_ids or rng.random() < 0.4:
                issues.append(True)
                calls.append(engine.issue_ticket(
                    TicketCreate(branch_id=branch.id, service_type="DEPOSIT", priority=rng.randint(1, 10))
                ))
            else:
                # Any target, including illegal ones and the current status
                issues.append(False)
                calls.append(engine.transition(
                    rng.choice(ticket_ids), TicketStatusUpdate(status=rng.choice(statuses))
                ))

        outcomes = await asyncio.gather(*calls)

        for is_issue, outcome in zip(issues, outcomes):
            if not outcome.ok:
                assert outcome.error.code in (ErrorCode.CAPACITY_EXCEEDED, ErrorCode.ILLEGAL_TRANSITION)
                continue
            applied += 1
            if is_issue:
                ticket_ids.append(outcome.value.id)

        async with session_factory() as session:
            stored = await session.get(Branch, branch.id)
            tickets = (await session.scalars(
                select(QueueTicket).where(QueueTicket.branch_id == branch.id)
            )).all()
            events = await session.scalar(
                select(func.count(QueueEvent.id)).where(QueueEvent.branch_id == branch.id)
            )

        occupying = sum(1 for t in tickets if is_occupying(t.status))
        assert 0 <= stored.occupied <= stored.max_capacity
        assert stored.occupied == occupying
        assert len(tickets) == len(ticket_ids)
        assert events == applied
