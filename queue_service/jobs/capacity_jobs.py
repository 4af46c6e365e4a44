"""
Capacity Audit Job

Compares every branch's occupancy counter with the number of its tickets
that currently hold a slot (WAITING, CALLED, SERVING). Mismatches are logged
at ERROR for an operator to investigate; the counter is never rewritten here.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from queue_service.models.branch import Branch
from queue_service.models.queue_ticket import QueueTicket
from queue_service.services.ticket_store import OCCUPYING_STATUS_VALUES

logger = logging.getLogger(__name__)


async def audit_branch_occupancy(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> List[Dict[str, Any]]:
    """
    Check the occupancy invariant for all branches.

    Returns one report per branch:
        {"branch_id", "code", "occupied", "occupying_tickets", "consistent"}
    """
    if session_factory is None:
        from queue_service.database import async_session_factory
        session_factory = async_session_factory

    occupying = (
        select(
            QueueTicket.branch_id.label("branch_id"),
            func.count(QueueTicket.id).label("occupying_tickets"),
        )
        .where(QueueTicket.status.in_(OCCUPYING_STATUS_VALUES))
        .group_by(QueueTicket.branch_id)
        .subquery()
    )

    async with session_factory() as session:
        result = await session.execute(
            select(
                Branch.id,
                Branch.code,
                Branch.occupied,
                func.coalesce(occupying.c.occupying_tickets, 0).label("occupying_tickets"),
            )
            .outerjoin(occupying, occupying.c.branch_id == Branch.id)
            .order_by(Branch.code)
        )
        rows = result.all()

    reports = []
    for row in rows:
        consistent = row.occupied == row.occupying_tickets
        if not consistent:
            logger.error(
                f"Branch {row.code} ({row.id}) occupancy counter is {row.occupied} "
                f"but {row.occupying_tickets} tickets hold a slot"
            )
        reports.append({
            "branch_id": row.id,
            "code": row.code,
            "occupied": row.occupied,
            "occupying_tickets": row.occupying_tickets,
            "consistent": consistent,
        })

    return reports
