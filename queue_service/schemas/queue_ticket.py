"""Queue ticket schemas for API requests/responses."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from queue_service.config import settings
from queue_service.core.enum_utils import VALID_TICKET_STATUSES, normalize_to_uppercase
from queue_service.models.queue_ticket import TicketStatus
from queue_service.schemas.base import BaseInputSchema, BaseResponseSchema


PHONE_PATTERN = r"^\+?[\d\s\-\(\)]+$"


# ==================== REQUEST SCHEMAS ====================

class TicketCreate(BaseInputSchema):
    """Ticket issue request."""
    branch_id: uuid.UUID
    service_type: str = Field(..., min_length=1, max_length=100)
    customer_id: Optional[str] = Field(None, max_length=100)
    customer_name: Optional[str] = Field(None, min_length=2, max_length=100)
    customer_phone: Optional[str] = Field(None, max_length=30, pattern=PHONE_PATTERN)
    customer_email: Optional[EmailStr] = None
    priority: Optional[int] = Field(None, description="Higher serves first; defaults to the lowest band")
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator('priority')
    @classmethod
    def validate_priority(cls, v):
        if v is None:
            return v
        if not settings.MIN_PRIORITY <= v <= settings.MAX_PRIORITY:
            raise ValueError(
                f"Priority must be between {settings.MIN_PRIORITY} and {settings.MAX_PRIORITY}"
            )
        return v

    @property
    def effective_priority(self) -> int:
        return self.priority if self.priority is not None else settings.MIN_PRIORITY


class TicketStatusUpdate(BaseInputSchema):
    """Ticket status change request."""
    status: TicketStatus
    staff_id: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator('status', mode='before')
    @classmethod
    def normalize_status(cls, v):
        return normalize_to_uppercase(v, VALID_TICKET_STATUSES)


class AnalyticsRange(BaseInputSchema):
    """Optional issued_at window for analytics."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @field_validator('start', 'end')
    @classmethod
    def assume_utc(cls, v):
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode='after')
    def validate_range(self):
        if self.start and self.end and self.start > self.end:
            raise ValueError("Start date must be before end date")
        return self


# ==================== RESPONSE SCHEMAS ====================

class QueueEventResponse(BaseResponseSchema):
    """Lifecycle event response schema."""
    id: int
    ticket_id: uuid.UUID
    branch_id: uuid.UUID
    event_type: str
    from_status: Optional[str] = None
    event_time: datetime
    staff_id: Optional[str] = None
    notes: Optional[str] = None


class TicketResponse(BaseResponseSchema):
    """Ticket response schema."""
    id: uuid.UUID
    ticket_number: int
    branch_id: uuid.UUID
    service_type: str
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    priority: int
    status: str  # VARCHAR in DB
    notes: Optional[str] = None
    issued_at: datetime
    called_at: Optional[datetime] = None
    served_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None
    updated_at: datetime


class TicketDetail(TicketResponse):
    """Ticket with its history and the statuses it may move to next."""
    allowed_transitions: List[str] = []
    events: List[QueueEventResponse] = []


class TicketListResponse(BaseModel):
    """Paginated ticket list in serving order."""
    items: List[TicketResponse]
    total: int
    page: int
    size: int
    pages: int


class TicketAnalyticsResponse(BaseModel):
    """Aggregate report for one branch."""
    branch_id: uuid.UUID
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    total: int = 0
    by_status: Dict[str, int] = {}
    by_service_type: Dict[str, int] = {}
    avg_wait_time: float = 0.0  # Seconds from issue to call
    avg_service_time: float = 0.0  # Seconds from service start to completion
    events_total: int = 0


class CapacityResponse(BaseModel):
    """Branch occupancy compared with its live ticket count."""
    branch_id: uuid.UUID
    max_capacity: int
    occupied: int
    available: int
    is_operational: bool
    occupying_tickets: int
    consistent: bool


class EventFeedResponse(BaseModel):
    """Page of the ordered event stream."""
    items: List[QueueEventResponse]
    last_id: int


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorBody
