"""Branch capacity record shared with the Branch service."""
import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from queue_service.database import Base
from queue_service.db_types import UUIDType, UTCDateTime, utc_now


class Branch(Base):
    """
    Physical location whose queue capacity is tracked.

    Master data (name, code, max_capacity, is_operational) belongs to the
    Branch service. The occupancy columns are written only by
    CapacityGuard:

        occupied        tickets currently WAITING, CALLED or SERVING
        ticket_counter  last ticket number handed out at this branch
    """
    __tablename__ = "branches"
    __table_args__ = (
        CheckConstraint("max_capacity > 0", name="ck_branches_max_capacity_positive"),
        CheckConstraint("occupied >= 0", name="ck_branches_occupied_non_negative"),
        CheckConstraint("occupied <= max_capacity", name="ck_branches_occupied_within_capacity"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False
    )

    # Capacity
    max_capacity: Mapped[int] = mapped_column(
        Integer,
        nullable=False
    )
    occupied: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Written only by CapacityGuard"
    )
    ticket_counter: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0
    )
    is_operational: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    tickets = relationship("QueueTicket", back_populates="branch", lazy="raise")

    def __repr__(self):
        return f"<Branch {self.code}: {self.occupied}/{self.max_capacity}>"
