"""
Ticket Analytics

Read-only aggregation over the ticket store and the event log:

    total             tickets issued in the window
    by_status         current status counts (observed statuses only)
    by_service_type   ticket counts per service type
    avg_wait_time     mean seconds issued -> called, over tickets that reached SERVING
    avg_service_time  mean seconds serving -> completed, over COMPLETED tickets
    events_total      lifecycle events recorded for those tickets

An empty window yields zeroed aggregates, never an error.
"""

from collections import Counter
from datetime import datetime
from statistics import fmean
from typing import List, Optional
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from queue_service.models.queue_ticket import QueueTicket, TicketStatus
from queue_service.schemas.queue_ticket import TicketAnalyticsResponse
from queue_service.services.event_log import EventLog
from queue_service.services.ticket_store import TicketStore


def _mean_seconds(durations: List[float]) -> float:
    if not durations:
        return 0.0
    return round(fmean(durations), 2)


def wait_times(tickets: List[QueueTicket]) -> List[float]:
    """Seconds from issue to call for tickets that reached SERVING."""
    return [
        (t.called_at - t.issued_at).total_seconds()
        for t in tickets
        if t.served_at is not None and t.called_at is not None
    ]


def service_times(tickets: List[QueueTicket]) -> List[float]:
    """Seconds from service start to completion for COMPLETED tickets."""
    return [
        (t.completed_at - t.served_at).total_seconds()
        for t in tickets
        if t.status == TicketStatus.COMPLETED.value
        and t.completed_at is not None
        and t.served_at is not None
    ]


class AnalyticsAggregator:
    """Service for branch queue analytics."""

    def __init__(
        self,
        db: AsyncSession,
        store: Optional[TicketStore] = None,
        event_log: Optional[EventLog] = None,
    ):
        self.store = store or TicketStore(db)
        self.event_log = event_log or EventLog(db)

    async def get_ticket_analytics(
        self,
        branch_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> TicketAnalyticsResponse:
        tickets = await self.store.list_issued_between(branch_id, start, end)

        if not tickets:
            return TicketAnalyticsResponse(branch_id=branch_id, start=start, end=end)

        return TicketAnalyticsResponse(
            branch_id=branch_id,
            start=start,
            end=end,
            total=len(tickets),
            by_status=dict(Counter(t.status for t in tickets)),
            by_service_type=dict(Counter(t.service_type for t in tickets)),
            avg_wait_time=_mean_seconds(wait_times(tickets)),
            avg_service_time=_mean_seconds(service_times(tickets)),
            events_total=await self.event_log.count_for_issued_between(branch_id, start, end),
        )
