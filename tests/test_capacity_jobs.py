"""Scheduled occupancy audit."""
import logging

from queue_service.jobs.capacity_jobs import audit_branch_occupancy
from queue_service.jobs.scheduler import get_job_status, scheduler


async def test_consistent_branches_pass(session_factory, make_branch, issue, move):
    busy = await make_branch(code="BR-A", max_capacity=5)
    idle = await make_branch(code="BR-B")
    first = await issue(busy.id)
    await issue(busy.id)
    await move(first.id, "CALLED", "SERVING", "COMPLETED")

    reports = await audit_branch_occupancy(session_factory)

    assert [r["code"] for r in reports] == ["BR-A", "BR-B"]
    assert reports[0]["occupied"] == reports[0]["occupying_tickets"] == 1
    assert reports[1]["occupied"] == reports[1]["occupying_tickets"] == 0
    assert all(r["consistent"] for r in reports)
    assert reports[1]["branch_id"] == idle.id


async def test_mismatch_is_logged_and_left_alone(session_factory, make_branch, issue, set_occupied, get_branch, caplog):
    branch = await make_branch(code="BR-X")
    await issue(branch.id)
    await set_occupied(branch.id, 3)

    with caplog.at_level(logging.ERROR, logger="queue_service.jobs.capacity_jobs"):
        reports = await audit_branch_occupancy(session_factory)

    assert reports[0]["consistent"] is False
    assert reports[0]["occupying_tickets"] == 1
    assert "BR-X" in caplog.text
    assert (await get_branch(branch.id)).occupied == 3


def test_scheduler_not_started_in_tests():
    assert not scheduler.running
    assert get_job_status() == []
