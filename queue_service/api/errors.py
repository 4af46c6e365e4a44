"""Mapping of engine errors onto HTTP responses."""
from http import HTTPStatus
from typing import Any, Dict, Optional

from fastapi.responses import JSONResponse

from queue_service.core.errors import EngineError, ErrorCode, ErrorKind
from queue_service.schemas.queue_ticket import ErrorBody, ErrorResponse


ERROR_STATUS: Dict[ErrorCode, HTTPStatus] = {
    ErrorCode.INVALID_INPUT: HTTPStatus.BAD_REQUEST,
    ErrorCode.BRANCH_NOT_FOUND: HTTPStatus.NOT_FOUND,
    ErrorCode.TICKET_NOT_FOUND: HTTPStatus.NOT_FOUND,
    ErrorCode.BRANCH_NOT_OPERATIONAL: HTTPStatus.CONFLICT,
    ErrorCode.CAPACITY_EXCEEDED: HTTPStatus.CONFLICT,
    ErrorCode.ILLEGAL_TRANSITION: HTTPStatus.CONFLICT,
    ErrorCode.CAPACITY_INVARIANT_VIOLATION: HTTPStatus.INTERNAL_SERVER_ERROR,
    ErrorCode.STORAGE_UNAVAILABLE: HTTPStatus.SERVICE_UNAVAILABLE,
    ErrorCode.INTERNAL_ERROR: HTTPStatus.INTERNAL_SERVER_ERROR,
}

# Clients never see internal detail for these
GENERIC_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.CONSISTENCY: "Internal server error",
    ErrorKind.INTERNAL: "Internal server error",
    ErrorKind.TRANSIENT: "Service temporarily unavailable, please retry",
}


def error_payload(code: str, message: str, details: Optional[Any] = None) -> Dict[str, Any]:
    body = ErrorResponse(error=ErrorBody(code=code, message=message, details=details or None))
    return body.model_dump(mode="json", exclude_none=True)


def error_response(error: EngineError) -> JSONResponse:
    """JSON error body with the HTTP status for an engine error."""
    status_code = ERROR_STATUS.get(error.code, HTTPStatus.INTERNAL_SERVER_ERROR)

    generic = GENERIC_MESSAGES.get(error.kind)
    if generic:
        content = error_payload(error.code.value, generic)
    else:
        content = error_payload(error.code.value, error.message, error.details)

    return JSONResponse(status_code=int(status_code), content=content)
