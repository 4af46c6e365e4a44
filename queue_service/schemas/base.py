"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that use `from_attributes=True` MUST inherit from BaseResponseSchema.
Input schemas reject unknown fields so that malformed payloads never reach the engine.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class TicketResponse(BaseResponseSchema):
            id: UUID
            status: str
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseInputSchema(BaseModel):
    """
    Base class for request bodies.

    Validation happens at construction time; unknown keys are an error.
    """
    model_config = ConfigDict(
        extra='forbid',
        str_strip_whitespace=True,
        frozen=True,
    )
