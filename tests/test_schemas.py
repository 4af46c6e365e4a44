"""Request schema validation."""
import uuid
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from queue_service.config import Settings
from queue_service.core.enum_utils import enum_comment, normalize_to_uppercase, VALID_TICKET_STATUSES
from queue_service.models.queue_ticket import TicketStatus
from queue_service.schemas.queue_ticket import AnalyticsRange, TicketCreate, TicketStatusUpdate


BRANCH_ID = uuid.uuid4()


def test_minimal_ticket_request_defaults_to_lowest_priority():
    data = TicketCreate(branch_id=BRANCH_ID, service_type="DEPOSIT")

    assert data.priority is None
    assert data.effective_priority == 1


def test_whitespace_is_stripped():
    data = TicketCreate(branch_id=BRANCH_ID, service_type="  LOANS ", customer_name="  Alan Turing ")

    assert data.service_type == "LOANS"
    assert data.customer_name == "Alan Turing"


@pytest.mark.parametrize("phone", ["+1 (555) 010-2030", "0123456789", "+44 20 7946 0958"])
def test_valid_phone_numbers(phone):
    assert TicketCreate(branch_id=BRANCH_ID, service_type="DEPOSIT", customer_phone=phone).customer_phone == phone


@pytest.mark.parametrize("fields", [
    {"service_type": "   "},
    {"customer_name": "X"},
    {"customer_name": "N" * 101},
    {"customer_phone": "555-CALL-NOW"},
    {"customer_email": "someone@"},
    {"priority": 0},
    {"priority": 11},
    {"notes": "n" * 501},
    {"queue": "fast"},
])
def test_invalid_ticket_requests_are_rejected(fields):
    payload = {"branch_id": BRANCH_ID, "service_type": "DEPOSIT", **fields}

    with pytest.raises(ValidationError):
        TicketCreate(**payload)


def test_ticket_request_is_immutable():
    data = TicketCreate(branch_id=BRANCH_ID, service_type="DEPOSIT")

    with pytest.raises(ValidationError):
        data.priority = 5


@pytest.mark.parametrize("raw,expected", [
    ("called", TicketStatus.CALLED),
    (" no_show ", TicketStatus.NO_SHOW),
    ("COMPLETED", TicketStatus.COMPLETED),
])
def test_status_update_normalizes_case(raw, expected):
    assert TicketStatusUpdate(status=raw).status == expected


def test_status_update_rejects_unknown_status():
    with pytest.raises(ValidationError):
        TicketStatusUpdate(status="ON_HOLD")


def test_analytics_range_order():
    start = datetime(2026, 3, 2, tzinfo=timezone.utc)
    end = datetime(2026, 3, 1, tzinfo=timezone.utc)

    with pytest.raises(ValidationError, match="Start date must be before end date"):
        AnalyticsRange(start=start, end=end)

    assert AnalyticsRange(start=end, end=start).start == end
    assert AnalyticsRange().start is None


def test_normalize_to_uppercase_leaves_unknown_values():
    assert normalize_to_uppercase("serving", VALID_TICKET_STATUSES) == "SERVING"
    assert normalize_to_uppercase("unknown", VALID_TICKET_STATUSES) == "unknown"
    assert normalize_to_uppercase(None, VALID_TICKET_STATUSES) is None


def test_enum_comment():
    assert enum_comment(TicketStatus) == "WAITING, CALLED, SERVING, COMPLETED, CANCELLED, NO_SHOW"


def test_settings_parse_cors_and_reject_negative_priority():
    settings = Settings(CORS_ORIGINS="http://a.test, http://b.test")
    assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    with pytest.raises(ValidationError):
        Settings(MIN_PRIORITY=-1)
