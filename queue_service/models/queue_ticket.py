"""Queue ticket and lifecycle event models."""
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from queue_service.core.enum_utils import enum_comment
from queue_service.database import Base
from queue_service.db_types import SequenceIdType, UUIDType, UTCDateTime, utc_now


class TicketStatus(str, Enum):
    """Ticket lifecycle status."""
    WAITING = "WAITING"  # In the queue, counts against capacity
    CALLED = "CALLED"  # Called to a counter
    SERVING = "SERVING"  # Being served
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"  # Called but never showed up


class QueueEventType(str, Enum):
    """Event types recorded in the event log."""
    CREATED = "CREATED"
    CALLED = "CALLED"
    SERVING = "SERVING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class QueueTicket(Base):
    """A customer's place in a branch queue."""

    __tablename__ = "queue_tickets"
    __table_args__ = (
        UniqueConstraint("branch_id", "ticket_number", name="uq_queue_tickets_branch_number"),
        # Next-ticket lookup: WAITING tickets of a branch by priority band, FIFO
        Index("ix_queue_tickets_branch_status_priority", "branch_id", "status", "priority", "issued_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    ticket_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Per-branch sequence assigned with the capacity reservation"
    )

    # Queue partition
    branch_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("branches.id"),
        nullable=False,
        index=True
    )
    service_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False
    )

    # Customer contact (all optional)
    customer_id: Mapped[Optional[str]] = mapped_column(String(100))
    customer_name: Mapped[Optional[str]] = mapped_column(String(100))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(30))
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))

    priority: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="Higher serves first"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=TicketStatus.WAITING.value,
        comment=enum_comment(TicketStatus)
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Lifecycle timestamps, each written once
    issued_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )
    called_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    served_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    no_show_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )

    # Relationships
    branch = relationship("Branch", back_populates="tickets", lazy="raise")
    events = relationship(
        "QueueEvent",
        back_populates="ticket",
        order_by="QueueEvent.id",
        lazy="raise",
    )

    def __repr__(self):
        return f"<QueueTicket #{self.ticket_number} {self.status}>"


class QueueEvent(Base):
    """
    Append-only record of one lifecycle change.

    The integer id is assigned on insert and doubles as the position in
    the event feed consumed by other services.
    """

    __tablename__ = "queue_events"

    id: Mapped[int] = mapped_column(
        SequenceIdType,
        primary_key=True,
        autoincrement=True
    )
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("queue_tickets.id"),
        nullable=False,
        index=True
    )
    branch_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        nullable=False,
        index=True
    )
    event_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment=enum_comment(QueueEventType)
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(20))
    event_time: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )
    staff_id: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    ticket = relationship("QueueTicket", back_populates="events", lazy="raise")

    def __repr__(self):
        return f"<QueueEvent {self.id} {self.event_type}>"
