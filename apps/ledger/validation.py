"""
Input validation helpers shared by ledger and claim services.

Services validate in a fixed order so the first failing check decides the
error: required fields, identifier format, numeric range, then names.
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from .exceptions import (
    MissingFieldError,
    InvalidIdentifierError,
    InvalidNameError,
    ValidationError,
)


UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$',
    re.IGNORECASE
)

# Characters stripped from display names before storage
UNSAFE_NAME_CHARACTERS = re.compile(r'[<>"\'&]')


def is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == '')


def require_fields(**fields: Any) -> None:
    """
    Raise MissingFieldError naming every absent field.

    Args:
        **fields: field name -> raw value

    Raises:
        MissingFieldError: If any value is None or an empty string
    """
    missing = [name for name, value in fields.items() if is_missing(value)]
    if missing:
        raise MissingFieldError(f"Missing required fields: {', '.join(missing)}")


def parse_identifier(value: Any, field: str = 'id') -> UUID:
    """
    Parse a 36-character hex-with-hyphens identifier.

    Raises:
        InvalidIdentifierError: If the value does not have the UUID shape
    """
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str) or not UUID_PATTERN.match(value):
        raise InvalidIdentifierError(f"Invalid identifier format for {field}")
    return UUID(value.lower())


def parse_decimal(value: Any, error_class=ValidationError, field: str = 'value') -> Decimal:
    """
    Coerce a JSON number (or numeric string) to Decimal.

    Booleans, NaN and infinities are rejected.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise error_class(f"{field} must be a number")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise error_class(f"{field} must be a number")
    if not number.is_finite():
        raise error_class(f"{field} must be a finite number")
    return number


def parse_decimal_in_range(value: Any, minimum, maximum, error_class=ValidationError, field: str = 'value') -> Decimal:
    number = parse_decimal(value, error_class=error_class, field=field)
    if number < Decimal(minimum) or number > Decimal(maximum):
        raise error_class(f"{field} must be between {minimum} and {maximum}")
    return number


def sanitize_name(value: Any, max_length: int = 100) -> str:
    """
    Trim, truncate and strip markup characters from a display name.

    Raises:
        InvalidNameError: If nothing is left after sanitizing
    """
    if not isinstance(value, str):
        raise InvalidNameError("Name must be a string")
    cleaned = UNSAFE_NAME_CHARACTERS.sub('', value.strip()[:max_length]).strip()
    if not cleaned:
        raise InvalidNameError("Name is invalid")
    return cleaned
