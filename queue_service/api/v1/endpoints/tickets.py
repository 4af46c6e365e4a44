"""Queue Ticket API endpoints."""
from typing import Optional
import uuid
from math import ceil
from datetime import datetime

from fastapi import APIRouter, Query, status

from queue_service.api.deps import Engine, run_with_retry
from queue_service.api.errors import error_response
from queue_service.models.queue_ticket import TicketStatus
from queue_service.schemas.queue_ticket import (
    CapacityResponse,
    EventFeedResponse,
    QueueEventResponse,
    TicketAnalyticsResponse,
    TicketCreate,
    TicketDetail,
    TicketListResponse,
    TicketResponse,
    TicketStatusUpdate,
)
from queue_service.services.ticket_state_machine import get_allowed_transitions


router = APIRouter(tags=["Queue Tickets"])


# ==================== COLLECTION ROUTES ====================

@router.post(
    "",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
)
async def issue_ticket(
    data: TicketCreate,
    engine: Engine,
):
    """
    Issue a ticket at a branch.

    Fails with 409 when the branch is full or not operational.
    """
    outcome = await run_with_retry(lambda: engine.issue_ticket(data))
    if not outcome.ok:
        return error_response(outcome.error)

    return TicketResponse.model_validate(outcome.value)


@router.get(
    "/events",
    response_model=EventFeedResponse,
)
async def list_events(
    engine: Engine,
    after_id: int = Query(0, ge=0),
    branch_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
):
    """
    Ordered lifecycle event feed.

    Pass the returned last_id as after_id to continue.
    """
    outcome = await run_with_retry(
        lambda: engine.list_events(after_id=after_id, branch_id=branch_id, limit=limit)
    )
    if not outcome.ok:
        return error_response(outcome.error)

    events = outcome.value
    return EventFeedResponse(
        items=[QueueEventResponse.model_validate(e) for e in events],
        last_id=events[-1].id if events else after_id,
    )


@router.get(
    "/branch/{branch_id}",
    response_model=TicketListResponse,
)
async def list_branch_queue(
    branch_id: uuid.UUID,
    engine: Engine,
    status: Optional[TicketStatus] = Query(None),
    service_type: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(50, ge=1, le=200),
):
    """Get a branch's tickets in serving order (priority, then FIFO)."""
    skip = (page - 1) * size

    outcome = await run_with_retry(
        lambda: engine.list_branch_queue(
            branch_id,
            status=status,
            service_type=service_type,
            skip=skip,
            limit=size,
        )
    )
    if not outcome.ok:
        return error_response(outcome.error)

    tickets, total = outcome.value
    return TicketListResponse(
        items=[TicketResponse.model_validate(t) for t in tickets],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get(
    "/analytics/{branch_id}",
    response_model=TicketAnalyticsResponse,
)
async def get_ticket_analytics(
    branch_id: uuid.UUID,
    engine: Engine,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
):
    """Ticket counts and average wait/service times, in seconds."""
    outcome = await run_with_retry(
        lambda: engine.get_ticket_analytics(branch_id, start=start, end=end)
    )
    if not outcome.ok:
        return error_response(outcome.error)

    return outcome.value


@router.get(
    "/next/{branch_id}",
    response_model=Optional[TicketResponse],
)
async def get_next_ticket(
    branch_id: uuid.UUID,
    engine: Engine,
    service_type: Optional[str] = Query(None),
):
    """
    Ticket the branch should call next, or null if nobody is waiting.

    Nothing is reserved: call the ticket with PATCH /{ticket_id}/status.
    """
    outcome = await run_with_retry(lambda: engine.select_next(branch_id, service_type))
    if not outcome.ok:
        return error_response(outcome.error)

    if outcome.value is None:
        return None
    return TicketResponse.model_validate(outcome.value)


@router.get(
    "/capacity/{branch_id}",
    response_model=CapacityResponse,
)
async def get_branch_capacity(
    branch_id: uuid.UUID,
    engine: Engine,
):
    """Branch occupancy with a check against the live ticket count."""
    outcome = await run_with_retry(lambda: engine.get_capacity(branch_id))
    if not outcome.ok:
        return error_response(outcome.error)

    return outcome.value


# ==================== SINGLE TICKET ROUTES ====================

@router.get(
    "/{ticket_id}",
    response_model=TicketDetail,
)
async def get_ticket(
    ticket_id: uuid.UUID,
    engine: Engine,
):
    """Get ticket with its event history."""
    outcome = await run_with_retry(lambda: engine.get_ticket(ticket_id))
    if not outcome.ok:
        return error_response(outcome.error)

    ticket = outcome.value
    return TicketDetail.model_validate(ticket).model_copy(
        update={"allowed_transitions": [s.value for s in get_allowed_transitions(ticket.status)]}
    )


@router.patch(
    "/{ticket_id}/status",
    response_model=TicketResponse,
)
async def update_ticket_status(
    ticket_id: uuid.UUID,
    data: TicketStatusUpdate,
    engine: Engine,
):
    """
    Move a ticket to a new status.

    WAITING -> CALLED | CANCELLED
    CALLED -> SERVING | NO_SHOW
    SERVING -> COMPLETED | CANCELLED
    """
    outcome = await run_with_retry(lambda: engine.transition(ticket_id, data))
    if not outcome.ok:
        return error_response(outcome.error)

    return TicketResponse.model_validate(outcome.value)
