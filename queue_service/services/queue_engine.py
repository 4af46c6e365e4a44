"""
Queue Engine

Facade over the ticket lifecycle components. Each public method is one unit
of work: it either commits everything it wrote or rolls all of it back, and
it reports the result as an Outcome instead of raising for expected
conditions (full branch, illegal transition, unknown ticket).

USAGE:
    engine = QueueEngine(db)
    outcome = await engine.issue_ticket(TicketCreate(branch_id=..., service_type="DEPOSIT"))
    if outcome.ok:
        ticket = outcome.value
    elif outcome.error.code == ErrorCode.CAPACITY_EXCEEDED:
        ...
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Tuple
import uuid

from pydantic import ValidationError
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from queue_service.core.errors import (
    EngineError,
    ErrorCode,
    ErrorKind,
    InvalidInput,
    Outcome,
    QueueError,
    TicketNotFound,
)
from queue_service.db_types import utc_now
from queue_service.models.queue_ticket import QueueEvent, QueueEventType, QueueTicket, TicketStatus
from queue_service.schemas.queue_ticket import (
    AnalyticsRange,
    CapacityResponse,
    TicketAnalyticsResponse,
    TicketCreate,
    TicketStatusUpdate,
)
from queue_service.services.analytics_service import AnalyticsAggregator
from queue_service.services.capacity_guard import CapacityGuard
from queue_service.services.event_log import EventLog
from queue_service.services.event_publisher import EventPublisher, get_event_publisher
from queue_service.services.next_ticket_selector import NextTicketSelector
from queue_service.services.ticket_state_machine import TicketStateMachine
from queue_service.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)


# PostgreSQL SQLSTATEs worth retrying: serialization failure, deadlock,
# lock not available, statement timeout, admin shutdown, cannot connect now.
TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03", "57014", "57P01", "57P03"}

# SQLite contention and connect-time failures carry no SQLSTATE
TRANSIENT_MESSAGES = (
    "database is locked",
    "database table is locked",
    "database is busy",
    "could not connect",
    "server closed the connection",
)


def is_transient_storage_error(exc: SQLAlchemyError) -> bool:
    """True for lock, busy, deadlock, serialization and connection failures."""
    if isinstance(exc, PoolTimeoutError):
        return True
    if not isinstance(exc, DBAPIError):
        return False
    if exc.connection_invalidated:
        return True
    if not isinstance(exc, OperationalError):
        return False
    sqlstate = getattr(exc.orig, "sqlstate", None)
    if sqlstate:
        # Class 08 is "connection exception"
        return sqlstate in TRANSIENT_SQLSTATES or sqlstate.startswith("08")
    message = str(exc.orig).lower()
    return any(text in message for text in TRANSIENT_MESSAGES)


def classify_storage_error(exc: SQLAlchemyError) -> EngineError:
    """
    Map a database exception onto the engine's error taxonomy.

    Lock timeouts, deadlocks, serialization failures, dropped connections and
    SQLite's "database is locked" are transient. A violated occupancy CHECK
    constraint is a consistency failure. Everything else, including schema
    errors such as a missing table, is internal.
    """
    if is_transient_storage_error(exc):
        return EngineError(ErrorCode.STORAGE_UNAVAILABLE, "Storage temporarily unavailable")
    if isinstance(exc, IntegrityError) and "ck_branches_occupied" in str(exc.orig):
        return EngineError(ErrorCode.CAPACITY_INVARIANT_VIOLATION, "Branch occupancy counter is inconsistent")
    return EngineError(ErrorCode.INTERNAL_ERROR, "Internal error")


class QueueEngine:
    """
    Issue tickets, move them through their lifecycle, pick the next one, report.

    A failed operation rolls back the session, which expires every ORM object
    earlier operations on the same session returned. Keep ids (or re-read
    through get_ticket) rather than touching those objects after a failure.
    """

    def __init__(self, db: AsyncSession, publisher: Optional[EventPublisher] = None):
        self.db = db
        self.store = TicketStore(db)
        self.event_log = EventLog(db)
        self.capacity_guard = CapacityGuard(db)
        self.state_machine = TicketStateMachine(
            db,
            store=self.store,
            event_log=self.event_log,
            capacity_guard=self.capacity_guard,
        )
        self.selector = NextTicketSelector(db, store=self.store)
        self.analytics = AnalyticsAggregator(db, store=self.store, event_log=self.event_log)
        self.publisher = publisher or get_event_publisher()

    # ==================== UNIT OF WORK ====================

    async def _run(self, operation: str, work: Callable[[], Awaitable[Any]]) -> Outcome:
        """Run work in the session's transaction; commit on success, roll back on any failure."""
        try:
            result = await work()
            await self.db.commit()
        except QueueError as e:
            await self.db.rollback()
            error = e.to_error()
            if error.kind == ErrorKind.CONSISTENCY:
                logger.error(f"{operation} aborted on consistency failure: {error.message} {error.details}")
            return Outcome.failure(error)
        except SQLAlchemyError as e:
            await self.db.rollback()
            error = classify_storage_error(e)
            if error.retryable:
                logger.warning(f"{operation} hit a transient storage error: {e}")
            else:
                logger.error(f"{operation} failed with storage error: {e}")
            return Outcome.failure(error)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Unexpected error in {operation}: {e}")
            raise
        return Outcome.success(result)

    # ==================== COMMANDS ====================

    async def issue_ticket(self, data: TicketCreate) -> Outcome[QueueTicket]:
        """Reserve a slot at the branch and create a WAITING ticket with its CREATED event."""

        async def work() -> Tuple[QueueTicket, QueueEvent]:
            reservation = await self.capacity_guard.reserve(data.branch_id)
            issued_at = utc_now()
            ticket = await self.store.insert(
                reservation,
                data,
                priority=data.effective_priority,
                issued_at=issued_at,
            )
            event = await self.event_log.append(
                ticket_id=ticket.id,
                branch_id=ticket.branch_id,
                event_type=QueueEventType.CREATED.value,
                event_time=issued_at,
                notes="Ticket created",
            )
            logger.info(
                f"Issued ticket #{ticket.ticket_number} ({ticket.id}) at branch {data.branch_id} "
                f"[{reservation.occupied}/{reservation.max_capacity}]"
            )
            return ticket, event

        outcome = await self._run("issue_ticket", work)
        if not outcome.ok:
            return outcome

        ticket, event = outcome.value
        await self.publisher.publish_events([event])
        return Outcome.success(ticket)

    async def transition(self, ticket_id: uuid.UUID, data: TicketStatusUpdate) -> Outcome[QueueTicket]:
        """Apply a status change requested by staff."""

        async def work() -> Tuple[QueueTicket, QueueEvent]:
            return await self.state_machine.transition(
                ticket_id,
                data.status,
                actor_staff_id=data.staff_id,
                notes=data.notes,
            )

        outcome = await self._run("transition", work)
        if not outcome.ok:
            return outcome

        ticket, event = outcome.value
        await self.publisher.publish_events([event])
        return Outcome.success(ticket)

    # ==================== QUERIES ====================

    async def select_next(
        self,
        branch_id: uuid.UUID,
        service_type: Optional[str] = None,
    ) -> Outcome[Optional[QueueTicket]]:
        """Ticket that should be called next, or None when nobody is waiting."""
        return await self._run(
            "select_next",
            lambda: self.selector.select_next(branch_id, service_type),
        )

    async def get_ticket_analytics(
        self,
        branch_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Outcome[TicketAnalyticsResponse]:
        try:
            window = AnalyticsRange(start=start, end=end)
        except ValidationError as e:
            return Outcome.failure(
                InvalidInput("Invalid analytics date range", errors=_validation_messages(e)).to_error()
            )

        return await self._run(
            "get_ticket_analytics",
            lambda: self.analytics.get_ticket_analytics(branch_id, window.start, window.end),
        )

    async def get_ticket(self, ticket_id: uuid.UUID) -> Outcome[QueueTicket]:
        """Ticket with its event history loaded."""

        async def work() -> QueueTicket:
            ticket = await self.store.get(ticket_id, include_events=True)
            if ticket is None:
                raise TicketNotFound(f"Ticket {ticket_id} not found", ticket_id=str(ticket_id))
            return ticket

        return await self._run("get_ticket", work)

    async def list_branch_queue(
        self,
        branch_id: uuid.UUID,
        status: Optional[TicketStatus] = None,
        service_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Outcome[Tuple[List[QueueTicket], int]]:
        """A branch's tickets in serving order with the total match count."""
        return await self._run(
            "list_branch_queue",
            lambda: self.store.list_for_branch(
                branch_id,
                status=status,
                service_type=service_type,
                skip=skip,
                limit=limit,
            ),
        )

    async def get_capacity(self, branch_id: uuid.UUID) -> Outcome[CapacityResponse]:
        """
        Capacity snapshot checked against the live ticket count.

        A mismatch is reported (consistent=False) and logged, never repaired.
        """

        async def work() -> CapacityResponse:
            snapshot = await self.capacity_guard.snapshot(branch_id)
            occupying = await self.store.count_occupying(branch_id)
            consistent = occupying == snapshot.occupied
            if not consistent:
                logger.error(
                    f"Branch {branch_id} occupancy counter is {snapshot.occupied} "
                    f"but {occupying} tickets hold a slot"
                )
            return CapacityResponse(
                branch_id=branch_id,
                max_capacity=snapshot.max_capacity,
                occupied=snapshot.occupied,
                available=snapshot.available,
                is_operational=snapshot.is_operational,
                occupying_tickets=occupying,
                consistent=consistent,
            )

        return await self._run("get_capacity", work)

    async def list_events(
        self,
        after_id: int = 0,
        branch_id: Optional[uuid.UUID] = None,
        limit: int = 100,
    ) -> Outcome[List[QueueEvent]]:
        """Page of the ordered event stream for subscriber services."""
        return await self._run(
            "list_events",
            lambda: self.event_log.since(after_id=after_id, branch_id=branch_id, limit=limit),
        )


def _validation_messages(exc: ValidationError) -> List[str]:
    return [error["msg"] for error in exc.errors()]
