"""
Branch Capacity Guard

The ONLY component allowed to write branches.occupied.

Every mutation is a single conditional UPDATE, so the check and the write
happen atomically in the database:

    reserve:  occupied + 1  WHERE is_operational AND occupied < max_capacity
    release:  occupied - 1  WHERE occupied > 0

Neither runs read-then-write from application code. Both execute inside the
caller's transaction so the reservation commits or rolls back together with
the ticket row it pays for.
"""

from dataclasses import dataclass
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from queue_service.core.errors import (
    BranchNotFound,
    BranchNotOperational,
    CapacityExceeded,
    CapacityInvariantViolation,
)
from queue_service.models.branch import Branch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    """One occupancy slot taken for the ticket being created."""
    branch_id: uuid.UUID
    ticket_number: int
    occupied: int
    max_capacity: int


@dataclass(frozen=True)
class CapacitySnapshot:
    branch_id: uuid.UUID
    max_capacity: int
    occupied: int
    is_operational: bool

    @property
    def available(self) -> int:
        return max(self.max_capacity - self.occupied, 0)


class CapacityGuard:
    """Atomic reservation and release of branch occupancy slots."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reserve(self, branch_id: uuid.UUID) -> Reservation:
        """
        Take one slot at the branch and allocate the next ticket number.

        Raises:
            BranchNotFound: unknown branch
            BranchNotOperational: branch is closed for new tickets
            CapacityExceeded: occupied == max_capacity
        """
        result = await self.db.execute(
            update(Branch)
            .where(
                Branch.id == branch_id,
                Branch.is_operational.is_(True),
                Branch.occupied < Branch.max_capacity,
            )
            .values(
                occupied=Branch.occupied + 1,
                ticket_counter=Branch.ticket_counter + 1,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            await self._raise_reservation_failure(branch_id)

        # Our UPDATE holds the row until commit, so this read sees our values
        row = (await self.db.execute(
            select(Branch.ticket_counter, Branch.occupied, Branch.max_capacity)
            .where(Branch.id == branch_id)
        )).one()

        return Reservation(
            branch_id=branch_id,
            ticket_number=row.ticket_counter,
            occupied=row.occupied,
            max_capacity=row.max_capacity,
        )

    async def release(self, branch_id: uuid.UUID) -> int:
        """
        Give back one slot. Returns the new occupancy.

        Raises:
            CapacityInvariantViolation: the counter is already zero, which
                means it disagrees with the ticket set. Never corrected here.
        """
        result = await self.db.execute(
            update(Branch)
            .where(Branch.id == branch_id, Branch.occupied > 0)
            .values(occupied=Branch.occupied - 1)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            logger.error(
                f"Capacity invariant broken: release on branch {branch_id} "
                f"would drive occupancy below zero"
            )
            raise CapacityInvariantViolation(
                "Branch occupancy counter is inconsistent",
                branch_id=str(branch_id),
            )

        occupied = await self.db.scalar(
            select(Branch.occupied).where(Branch.id == branch_id)
        )
        return occupied

    async def snapshot(self, branch_id: uuid.UUID) -> CapacitySnapshot:
        """Read-only view of a branch's capacity."""
        row = (await self.db.execute(
            select(Branch.max_capacity, Branch.occupied, Branch.is_operational)
            .where(Branch.id == branch_id)
        )).one_or_none()

        if row is None:
            raise BranchNotFound(f"Branch {branch_id} not found", branch_id=str(branch_id))

        return CapacitySnapshot(
            branch_id=branch_id,
            max_capacity=row.max_capacity,
            occupied=row.occupied,
            is_operational=row.is_operational,
        )

    async def _raise_reservation_failure(self, branch_id: uuid.UUID) -> None:
        """Work out why the conditional reserve UPDATE matched no row."""
        snapshot = await self.snapshot(branch_id)

        if not snapshot.is_operational:
            raise BranchNotOperational(
                "Branch is not operational",
                branch_id=str(branch_id),
            )

        raise CapacityExceeded(
            "Branch is at maximum capacity",
            branch_id=str(branch_id),
            max_capacity=snapshot.max_capacity,
            occupied=snapshot.occupied,
        )
