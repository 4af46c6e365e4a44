"""Ticket persistence: the only module that writes queue_tickets rows."""
from datetime import datetime
from typing import List, Optional, Tuple
import uuid

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from queue_service.models.queue_ticket import QueueTicket, TicketStatus
from queue_service.schemas.queue_ticket import TicketCreate
from queue_service.services.capacity_guard import Reservation

# Serving order: priority band first, then FIFO. ticket_number is unique per
# branch and assigned under the capacity reservation, so it breaks any tie
# left by identical issued_at values.
QUEUE_ORDER = (
    QueueTicket.priority.desc(),
    QueueTicket.issued_at.asc(),
    QueueTicket.ticket_number.asc(),
)

OCCUPYING_STATUS_VALUES = (
    TicketStatus.WAITING.value,
    TicketStatus.CALLED.value,
    TicketStatus.SERVING.value,
)


class TicketStore:
    """Reads and writes QueueTicket rows within the caller's transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(
        self,
        reservation: Reservation,
        data: TicketCreate,
        priority: int,
        issued_at: datetime,
    ) -> QueueTicket:
        """Persist a new WAITING ticket bound to a capacity reservation."""
        ticket = QueueTicket(
            ticket_number=reservation.ticket_number,
            branch_id=reservation.branch_id,
            service_type=data.service_type,
            customer_id=data.customer_id,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            customer_email=data.customer_email,
            priority=priority,
            status=TicketStatus.WAITING.value,
            notes=data.notes,
            issued_at=issued_at,
            updated_at=issued_at,
        )
        self.db.add(ticket)
        await self.db.flush()
        return ticket

    async def get(self, ticket_id: uuid.UUID, include_events: bool = False) -> Optional[QueueTicket]:
        """Get ticket by ID."""
        query = select(QueueTicket).where(QueueTicket.id == ticket_id)
        if include_events:
            query = query.options(selectinload(QueueTicket.events)).execution_options(
                populate_existing=True
            )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_for_update(self, ticket_id: uuid.UUID) -> Optional[QueueTicket]:
        """
        Get ticket by ID holding its row lock until the transaction ends.

        SQLite ignores FOR UPDATE; there the compare-and-set in
        compare_and_set_status() is what serialises writers.
        """
        result = await self.db.execute(
            select(QueueTicket)
            .where(QueueTicket.id == ticket_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def compare_and_set_status(
        self,
        ticket_id: uuid.UUID,
        expected_status: TicketStatus,
        new_status: TicketStatus,
        **changes,
    ) -> bool:
        """
        Write new_status only if the row still holds expected_status.

        Returns False when another transaction changed the status first.
        """
        result = await self.db.execute(
            update(QueueTicket)
            .where(
                QueueTicket.id == ticket_id,
                QueueTicket.status == TicketStatus(expected_status).value,
            )
            .values(status=TicketStatus(new_status).value, **changes)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def refresh(self, ticket: QueueTicket) -> QueueTicket:
        await self.db.refresh(ticket)
        return ticket

    async def list_for_branch(
        self,
        branch_id: uuid.UUID,
        status: Optional[TicketStatus] = None,
        service_type: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[QueueTicket], int]:
        """Get a branch's tickets in serving order, with the unpaginated total."""
        conditions = [QueueTicket.branch_id == branch_id]
        if status:
            conditions.append(QueueTicket.status == TicketStatus(status).value)
        if service_type:
            conditions.append(QueueTicket.service_type == service_type)

        query = select(QueueTicket).where(and_(*conditions))

        # Count
        count_query = select(func.count()).select_from(query.subquery())
        total = await self.db.scalar(count_query)

        # Paginate
        query = query.order_by(*QUEUE_ORDER).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total or 0

    async def first_waiting(
        self,
        branch_id: uuid.UUID,
        service_type: Optional[str] = None,
    ) -> Optional[QueueTicket]:
        """Head of the WAITING queue for a branch (optionally one service type)."""
        conditions = [
            QueueTicket.branch_id == branch_id,
            QueueTicket.status == TicketStatus.WAITING.value,
        ]
        if service_type:
            conditions.append(QueueTicket.service_type == service_type)

        result = await self.db.execute(
            select(QueueTicket)
            .where(and_(*conditions))
            .order_by(*QUEUE_ORDER)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_occupying(self, branch_id: uuid.UUID) -> int:
        """Live count of the branch's tickets that hold a capacity slot."""
        total = await self.db.scalar(
            select(func.count(QueueTicket.id)).where(
                QueueTicket.branch_id == branch_id,
                QueueTicket.status.in_(OCCUPYING_STATUS_VALUES),
            )
        )
        return total or 0

    async def list_issued_between(
        self,
        branch_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[QueueTicket]:
        """Tickets of a branch whose issued_at falls within [start, end]."""
        conditions = [QueueTicket.branch_id == branch_id]
        if start:
            conditions.append(QueueTicket.issued_at >= start)
        if end:
            conditions.append(QueueTicket.issued_at <= end)

        result = await self.db.execute(
            select(QueueTicket).where(and_(*conditions)).order_by(QueueTicket.issued_at)
        )
        return list(result.scalars().all())
