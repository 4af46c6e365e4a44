"""
Queue Ticket State Machine

This module is the SINGLE SOURCE OF TRUTH for all ticket status transitions.
All status changes must go through TicketStateMachine.transition().

    WAITING ──► CALLED ──► SERVING ──► COMPLETED
       │          │           │
       ▼          ▼           ▼
   CANCELLED   NO_SHOW     CANCELLED

WAITING, CALLED and SERVING occupy a branch capacity slot. Entering a
terminal status from one of them releases the slot, inside the same
transaction as the status write.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from queue_service.core.errors import IllegalTransition, TicketNotFound
from queue_service.db_types import utc_now
from queue_service.models.queue_ticket import QueueEvent, QueueTicket, TicketStatus
from queue_service.services.capacity_guard import CapacityGuard
from queue_service.services.event_log import EventLog
from queue_service.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_status -> allowed next statuses
TICKET_TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.WAITING: frozenset({
        TicketStatus.CALLED,        # Call to a counter
        TicketStatus.CANCELLED,     # Customer leaves the queue
    }),
    TicketStatus.CALLED: frozenset({
        TicketStatus.SERVING,       # Customer arrived at the counter
        TicketStatus.NO_SHOW,       # Customer never arrived
    }),
    TicketStatus.SERVING: frozenset({
        TicketStatus.COMPLETED,     # Service finished
        TicketStatus.CANCELLED,     # Service abandoned
    }),
    TicketStatus.COMPLETED: frozenset(),   # Terminal state
    TicketStatus.CANCELLED: frozenset(),   # Terminal state
    TicketStatus.NO_SHOW: frozenset(),     # Terminal state
}

OCCUPYING_STATUSES: FrozenSet[TicketStatus] = frozenset({
    TicketStatus.WAITING,
    TicketStatus.CALLED,
    TicketStatus.SERVING,
})

TERMINAL_STATUSES: FrozenSet[TicketStatus] = frozenset(
    status for status, allowed in TICKET_TRANSITIONS.items() if not allowed
)

# Timestamp column set the first time a ticket enters each status
STATUS_TIMESTAMP_FIELDS: Dict[TicketStatus, str] = {
    TicketStatus.CALLED: "called_at",
    TicketStatus.SERVING: "served_at",
    TicketStatus.COMPLETED: "completed_at",
    TicketStatus.CANCELLED: "cancelled_at",
    TicketStatus.NO_SHOW: "no_show_at",
}

# Human-readable action names for each transition
TRANSITION_ACTIONS: Dict[Tuple[TicketStatus, TicketStatus], str] = {
    (TicketStatus.WAITING, TicketStatus.CALLED): "Call Ticket",
    (TicketStatus.WAITING, TicketStatus.CANCELLED): "Leave Queue",
    (TicketStatus.CALLED, TicketStatus.SERVING): "Start Service",
    (TicketStatus.CALLED, TicketStatus.NO_SHOW): "Mark No-Show",
    (TicketStatus.SERVING, TicketStatus.COMPLETED): "Complete Service",
    (TicketStatus.SERVING, TicketStatus.CANCELLED): "Abandon Service",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def is_legal_transition(current_status: TicketStatus, new_status: TicketStatus) -> bool:
    """Check if a transition is allowed. Self-transitions never are."""
    return TicketStatus(new_status) in TICKET_TRANSITIONS.get(TicketStatus(current_status), frozenset())


def get_allowed_transitions(current_status: TicketStatus) -> List[TicketStatus]:
    """Statuses reachable from current status, in declaration order."""
    allowed = TICKET_TRANSITIONS.get(TicketStatus(current_status), frozenset())
    return [status for status in TicketStatus if status in allowed]


def get_transition_action(current_status: TicketStatus, new_status: TicketStatus) -> str:
    key = (TicketStatus(current_status), TicketStatus(new_status))
    return TRANSITION_ACTIONS.get(key, f"{key[0].value} -> {key[1].value}")


def is_terminal(status: TicketStatus) -> bool:
    return TicketStatus(status) in TERMINAL_STATUSES


def is_occupying(status: TicketStatus) -> bool:
    return TicketStatus(status) in OCCUPYING_STATUSES


def releases_capacity(current_status: TicketStatus, new_status: TicketStatus) -> bool:
    """True when leaving current_status for new_status frees a branch slot."""
    return is_occupying(current_status) and is_terminal(new_status)


def validate_transition(current_status: TicketStatus, new_status: TicketStatus) -> None:
    """Raise IllegalTransition if new_status is not reachable from current_status."""
    current_status = TicketStatus(current_status)
    new_status = TicketStatus(new_status)

    if is_legal_transition(current_status, new_status):
        return

    allowed = get_allowed_transitions(current_status)
    if not allowed:
        raise IllegalTransition(
            f"Ticket in '{current_status.value}' status cannot change. This is a terminal state.",
            current_status=current_status.value,
            requested_status=new_status.value,
            allowed=[],
        )
    raise IllegalTransition(
        f"Cannot change ticket from '{current_status.value}' to '{new_status.value}'. "
        f"Allowed transitions: {', '.join(s.value for s in allowed)}",
        current_status=current_status.value,
        requested_status=new_status.value,
        allowed=[s.value for s in allowed],
    )


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

class TicketStateMachine:
    """
    Validates and applies ticket status transitions.

    Runs inside the caller's transaction; it never commits. Concurrent
    attempts on one ticket are serialised by the row lock taken in
    TicketStore.get_for_update() and, where the backend has no row locks,
    by the compare-and-set status write: the loser sees IllegalTransition.
    """

    def __init__(
        self,
        db: AsyncSession,
        store: Optional[TicketStore] = None,
        event_log: Optional[EventLog] = None,
        capacity_guard: Optional[CapacityGuard] = None,
    ):
        self.db = db
        self.store = store or TicketStore(db)
        self.event_log = event_log or EventLog(db)
        self.capacity_guard = capacity_guard or CapacityGuard(db)

    async def transition(
        self,
        ticket_id: uuid.UUID,
        target_status: TicketStatus,
        actor_staff_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Tuple[QueueTicket, QueueEvent]:
        """
        Move a ticket to target_status.

        1. Lock the ticket row and validate the edge
        2. Compare-and-set the status and first-write timestamp
        3. Append the lifecycle event
        4. Release the branch slot if the ticket just stopped occupying it

        Raises:
            TicketNotFound: no such ticket
            IllegalTransition: edge not allowed, or another caller moved the
                ticket first
            CapacityInvariantViolation: release would make occupancy negative
        """
        target_status = TicketStatus(target_status)

        ticket = await self.store.get_for_update(ticket_id)
        if ticket is None:
            raise TicketNotFound(f"Ticket {ticket_id} not found", ticket_id=str(ticket_id))

        current_status = TicketStatus(ticket.status)
        validate_transition(current_status, target_status)

        # Event times never run backwards for a ticket
        now = max(utc_now(), ticket.updated_at)
        changes = {"updated_at": now}
        timestamp_field = STATUS_TIMESTAMP_FIELDS.get(target_status)
        if timestamp_field and getattr(ticket, timestamp_field) is None:
            changes[timestamp_field] = now

        applied = await self.store.compare_and_set_status(
            ticket_id,
            expected_status=current_status,
            new_status=target_status,
            **changes,
        )
        if not applied:
            logger.warning(
                f"Ticket {ticket_id} left {current_status.value} before "
                f"{target_status.value} could be applied"
            )
            raise IllegalTransition(
                f"Ticket {ticket_id} is no longer '{current_status.value}'",
                current_status=current_status.value,
                requested_status=target_status.value,
            )

        event = await self.event_log.append(
            ticket_id=ticket.id,
            branch_id=ticket.branch_id,
            event_type=target_status.value,
            from_status=current_status.value,
            event_time=now,
            staff_id=actor_staff_id,
            notes=notes,
        )

        if releases_capacity(current_status, target_status):
            await self.capacity_guard.release(ticket.branch_id)

        updated = await self.store.refresh(ticket)
        logger.info(
            f"Ticket #{updated.ticket_number} ({ticket_id}) "
            f"{get_transition_action(current_status, target_status)}: "
            f"{current_status.value} -> {target_status.value}"
        )
        return updated, event


def describe_state_machine() -> str:
    """Text representation of the state machine (for debugging/documentation)."""
    lines = []
    for status in TicketStatus:
        transitions = get_allowed_transitions(status)
        if transitions:
            lines.append(f"{status.value}:")
            for target in transitions:
                lines.append(f"  -> {target.value} ({get_transition_action(status, target)})")
        else:
            lines.append(f"{status.value}: [TERMINAL STATE]")
    return "\n".join(lines)
