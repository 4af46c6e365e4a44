"""
APScheduler Configuration

Background job scheduler for the queue service. Jobs only observe and report;
none of them change ticket or capacity state.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from queue_service.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


async def run_capacity_audit():
    """Scheduler entry point for the branch occupancy audit."""
    from queue_service.jobs.capacity_jobs import audit_branch_occupancy

    try:
        reports = await audit_branch_occupancy()
        mismatched = sum(1 for report in reports if not report["consistent"])
        logger.info(
            f"Capacity audit completed: {len(reports)} branches checked, "
            f"{mismatched} inconsistent"
        )
    except Exception as e:
        logger.error(f"Capacity audit failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if not scheduler.running:
        # Compare branch occupancy counters with live ticket counts
        scheduler.add_job(
            run_capacity_audit,
            'interval',
            minutes=settings.CAPACITY_AUDIT_INTERVAL_MINUTES,
            id='audit_branch_occupancy',
            name='Audit Branch Occupancy',
            replace_existing=True,
        )

        scheduler.start()
        logger.info("Background job scheduler started")

        # Log all scheduled jobs
        jobs = scheduler.get_jobs()
        for job in jobs:
            logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
