from queue_service.models.branch import Branch
from queue_service.models.queue_ticket import QueueEvent, QueueEventType, QueueTicket, TicketStatus

__all__ = [
    "Branch",
    "QueueEvent",
    "QueueEventType",
    "QueueTicket",
    "TicketStatus",
]
