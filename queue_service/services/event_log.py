"""Append-only log of ticket lifecycle events."""
from datetime import datetime
from typing import List, Optional
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from queue_service.models.queue_ticket import QueueEvent, QueueTicket


class EventLog:
    """
    Writes and reads QueueEvent rows.

    Events are never updated or deleted once appended.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        ticket_id: uuid.UUID,
        branch_id: uuid.UUID,
        event_type: str,
        event_time: datetime,
        from_status: Optional[str] = None,
        staff_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> QueueEvent:
        """Record one lifecycle event."""
        event = QueueEvent(
            ticket_id=ticket_id,
            branch_id=branch_id,
            event_type=event_type,
            from_status=from_status,
            event_time=event_time,
            staff_id=staff_id,
            notes=notes,
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def for_ticket(self, ticket_id: uuid.UUID) -> List[QueueEvent]:
        """A ticket's history, oldest first."""
        result = await self.db.execute(
            select(QueueEvent)
            .where(QueueEvent.ticket_id == ticket_id)
            .order_by(QueueEvent.event_time.asc(), QueueEvent.id.asc())
        )
        return list(result.scalars().all())

    async def since(
        self,
        after_id: int = 0,
        branch_id: Optional[uuid.UUID] = None,
        limit: int = 100,
    ) -> List[QueueEvent]:
        """Events with id greater than after_id, in stream order."""
        query = select(QueueEvent).where(QueueEvent.id > after_id)
        if branch_id:
            query = query.where(QueueEvent.branch_id == branch_id)

        result = await self.db.execute(query.order_by(QueueEvent.id.asc()).limit(limit))
        return list(result.scalars().all())

    async def count_for_issued_between(
        self,
        branch_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> int:
        """Number of events recorded for tickets issued within [start, end]."""
        ticket_ids = select(QueueTicket.id).where(QueueTicket.branch_id == branch_id)
        if start:
            ticket_ids = ticket_ids.where(QueueTicket.issued_at >= start)
        if end:
            ticket_ids = ticket_ids.where(QueueTicket.issued_at <= end)

        total = await self.db.scalar(
            select(func.count(QueueEvent.id)).where(QueueEvent.ticket_id.in_(ticket_ids))
        )
        return total or 0
