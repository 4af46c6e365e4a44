"""
Enum Utilities for VARCHAR-based Status Fields

CONVENTION:
━━━━━━━━━━━
• Database: VARCHAR(20) - NOT a database ENUM
• SQLAlchemy: String(20) with Mapped[str]
• Pydantic: Python Enum for API validation
• API Response: Use string directly (NO .value needed)
• Case: All enum values stored in UPPERCASE

DATA FLOW:
━━━━━━━━━━
INPUT (API Request):
    Pydantic Enum → .value → String → Database
    Example: TicketStatus.CALLED → "CALLED" → VARCHAR

OUTPUT (API Response):
    Database → String → Return directly

Clients of the older queue endpoints send lowercase statuses
("called", "no_show"); normalize_to_uppercase() accepts those.
"""

from enum import Enum
from typing import Any, Set, Type


def enum_values(enum_class: Type[Enum]) -> list:
    """Get all values from an enum class."""
    return [e.value for e in enum_class]


def enum_comment(enum_class: Type[Enum]) -> str:
    """Comma-separated list of valid values, for VARCHAR column comments."""
    return ", ".join(enum_values(enum_class))


# =============================================================================
# CASE NORMALIZATION FOR PYDANTIC SCHEMAS
# =============================================================================

def normalize_to_uppercase(value: Any, valid_values: Set[str]) -> Any:
    """
    Normalize a string value to UPPERCASE if it's a valid enum value.

    Examples:
        >>> normalize_to_uppercase('no_show', {'NO_SHOW', 'CALLED'})
        'NO_SHOW'
        >>> normalize_to_uppercase('invalid', {'NO_SHOW', 'CALLED'})
        'invalid'  # Returned as-is for Pydantic to raise validation error
    """
    if value is None:
        return value
    if isinstance(value, str):
        upper_v = value.strip().upper()
        if upper_v in valid_values:
            return upper_v
    return value


# =============================================================================
# PRE-DEFINED VALID VALUE SETS
# =============================================================================

VALID_TICKET_STATUSES = {
    "WAITING", "CALLED", "SERVING", "COMPLETED", "CANCELLED", "NO_SHOW"
}
