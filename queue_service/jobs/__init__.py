"""
Background Jobs Module

Handles scheduled tasks for:
- Branch occupancy audit (counter vs. live ticket count)
"""

from queue_service.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from queue_service.jobs.capacity_jobs import audit_branch_occupancy

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "audit_branch_occupancy",
]
