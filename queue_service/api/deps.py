from typing import Annotated, Awaitable, Callable, Optional
import asyncio
import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from queue_service.config import settings
from queue_service.core.errors import Outcome
from queue_service.database import get_db
from queue_service.services.queue_engine import QueueEngine


logger = logging.getLogger(__name__)


DB = Annotated[AsyncSession, Depends(get_db)]


def get_queue_engine(db: DB) -> QueueEngine:
    """Dependency to get a QueueEngine bound to the request's session."""
    return QueueEngine(db)


Engine = Annotated[QueueEngine, Depends(get_queue_engine)]


async def run_with_retry(
    operation: Callable[[], Awaitable[Outcome]],
    attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
) -> Outcome:
    """
    Run an engine operation, retrying while it reports a transient failure.

    Each attempt is a fresh unit of work (the engine has already rolled back
    the failed one). Non-transient outcomes are returned immediately.
    """
    attempts = attempts or settings.STORAGE_RETRY_ATTEMPTS
    base_delay = settings.STORAGE_RETRY_BASE_DELAY if base_delay is None else base_delay

    outcome = await operation()
    for attempt in range(1, attempts):
        if outcome.ok or not outcome.error.retryable:
            return outcome

        delay = base_delay * (2 ** (attempt - 1))
        logger.warning(
            f"Transient failure ({outcome.error.code.value}), "
            f"retry {attempt}/{attempts - 1} in {delay:.2f}s"
        )
        await asyncio.sleep(delay)
        outcome = await operation()

    return outcome
