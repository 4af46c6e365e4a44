"""Next-ticket selection for a branch counter."""
from typing import Optional
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from queue_service.models.queue_ticket import QueueTicket
from queue_service.services.ticket_store import TicketStore


class NextTicketSelector:
    """
    Read-only query for the ticket a counter should call next.

    Candidates are WAITING tickets of the branch (and service type, when
    given), ordered by priority band then FIFO. No lock is taken: the caller
    follows up with transition(..., CALLED), which re-checks WAITING and
    reports IllegalTransition if someone else called the ticket first.
    """

    def __init__(self, db: AsyncSession, store: Optional[TicketStore] = None):
        self.store = store or TicketStore(db)

    async def select_next(
        self,
        branch_id: uuid.UUID,
        service_type: Optional[str] = None,
    ) -> Optional[QueueTicket]:
        return await self.store.first_waiting(branch_id, service_type)
