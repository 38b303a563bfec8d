"""Reusable field validators.

Plain functions that return the cleaned value or raise ValueError, so they
can back a Pydantic `field_validator` or be called from a service that
collects field-level errors into a list:

- Email / phone / booking-code validation
- Strict YYYY-MM-DD date parsing (errors tagged MALFORMED_DATE)
- E-form reference pattern
"""

import re
from datetime import date, datetime
from typing import Any


# Regex patterns
EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
DATE_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")
EFORM_REGEX = re.compile(r"^[A-Z]{3}-\d{6}$")
BOOKING_CODE_REGEX = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]{2,29}$")
CURRENCY_REGEX = re.compile(r"^[A-Z]{3}$")

PHONE_MIN_DIGITS = 7
PHONE_MAX_DIGITS = 15

MALFORMED_DATE = "MALFORMED_DATE"


class MalformedDateError(ValueError):
    """A date that is not YYYY-MM-DD; reported with the MALFORMED_DATE code."""


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_email(value: str) -> str:
    """Validate email address.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email is invalid
    """
    if not value:
        raise ValueError("Email is required")

    value = value.strip().lower()

    if len(value) > 254:  # RFC 5321
        raise ValueError("Email address too long")

    if not EMAIL_REGEX.match(value):
        raise ValueError("Invalid email address format")

    return value


def validate_phone(value: str) -> str:
    """Validate a phone number by digit count.

    Spaces, dashes, brackets and a leading + are allowed; 7 to 15 digits.
    """
    if not value:
        raise ValueError("Phone number is required")

    value = str(value).strip()
    if not re.fullmatch(r"\+?[\d\s\-()]+", value):
        raise ValueError("Phone number may only contain digits, spaces, dashes and brackets")

    digits = re.sub(r"\D", "", value)
    if not PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS:
        raise ValueError(
            f"Phone number must have {PHONE_MIN_DIGITS}-{PHONE_MAX_DIGITS} digits"
        )

    return value


def validate_booking_code(value: str) -> str:
    """Alphanumeric booking code, dashes allowed, 3-30 characters."""
    value = str(value).strip()
    if not BOOKING_CODE_REGEX.match(value):
        raise ValueError("Must be 3-30 letters, digits or dashes")
    return value


def validate_eform(value: str) -> str:
    """E-form reference: three capitals, dash, six digits (ABC-123456)."""
    value = str(value).strip()
    if not EFORM_REGEX.match(value):
        raise ValueError("E-Form must match format ABC-123456")
    return value


def validate_currency(value: str) -> str:
    value = str(value).strip().upper()
    if not CURRENCY_REGEX.match(value):
        raise ValueError("Currency must be a 3-letter code")
    return value


def parse_date(value: Any) -> date:
    """Parse a strict YYYY-MM-DD date.

    A trailing time part (``2024-05-01T00:00:00Z``) is stripped first;
    anything else that is not a real calendar date raises MalformedDateError.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise MalformedDateError(f"invalid format (got: {value})")

    text = value.strip().split("T", 1)[0]
    if not DATE_REGEX.match(text):
        raise MalformedDateError(f"invalid format (got: {value})")
    try:
        return date.fromisoformat(text)
    except ValueError:
        raise MalformedDateError(f"invalid format (got: {value})") from None


def parse_optional_date(value: Any) -> date | None:
    if is_blank(value):
        return None
    return parse_date(value)


def non_negative_number(value: Any) -> float:
    """Accept ints, floats and numeric strings >= 0."""
    if isinstance(value, bool):
        raise ValueError("must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError("must be a number") from None
    if number != number or number < 0:  # NaN check
        raise ValueError("must be a non-negative number")
    return number


def non_negative_int(value: Any) -> int:
    number = non_negative_number(value)
    if number != int(number):
        raise ValueError("must be a whole number")
    return int(number)


def positive_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str, float)):
        raise ValueError("must be a positive integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError("must be a positive integer") from None
    if number <= 0 or (isinstance(value, float) and value != number):
        raise ValueError("must be a positive integer")
    return number


# ── Error collection ─────────────────────────────────────────

def field_error(field: str, message: str, code: str | None = None) -> dict:
    error = {"field": field, "message": message}
    if code is not None:
        error["code"] = code
    return error


def check(errors: list[dict], field: str, validator, value: Any) -> Any:
    """Run `validator(value)`; on ValueError record a field error and return None."""
    try:
        return validator(value)
    except MalformedDateError as e:
        errors.append(field_error(field, str(e), code=MALFORMED_DATE))
        return None
    except ValueError as e:
        errors.append(field_error(field, str(e)))
        return None


def require(errors: list[dict], payload: dict, fields: list[str], prefix: str = "") -> None:
    """Record a "required" error for each blank field of `payload`."""
    for name in fields:
        if is_blank(payload.get(name)):
            errors.append(field_error(f"{prefix}{name}", "is required"))
