# Services module
from queue_service.services.capacity_guard import CapacityGuard
from queue_service.services.event_log import EventLog
from queue_service.services.ticket_store import TicketStore
from queue_service.services.ticket_state_machine import TicketStateMachine
from queue_service.services.next_ticket_selector import NextTicketSelector
from queue_service.services.analytics_service import AnalyticsAggregator
from queue_service.services.event_publisher import EventPublisher, get_event_publisher
from queue_service.services.queue_engine import QueueEngine

__all__ = [
    "CapacityGuard",
    "EventLog",
    "TicketStore",
    "TicketStateMachine",
    "NextTicketSelector",
    "AnalyticsAggregator",
    "EventPublisher",
    "get_event_publisher",
    # Facade
    "QueueEngine",
]
