"""Core utilities for SiteCrew."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from email_validator import EmailNotValidError, validate_email

from sitecrew.core.exceptions import ValidationError


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        datetime: Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware in UTC.

    SQLite hands back naive datetimes, so everything read from the store
    goes through here before it is compared with ``utc_now()``.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def days_from_now(days: int, now: Optional[datetime] = None) -> datetime:
    """Return ``now + days`` in UTC."""
    return (now or utc_now()) + timedelta(days=days)


def normalize_email(email: str) -> str:
    """
    Validate, trim and lower-case an email address.

    Uses the same validator as the API's ``EmailStr`` fields, without DNS
    lookups.

    Raises:
        ValidationError: If the address is not a valid email
    """
    if not isinstance(email, str):
        raise ValidationError("Invalid email format", field="email")
    try:
        validated = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError("Invalid email format", field="email", details={"reason": str(e)}) from e
    return validated.normalized.lower()


def format_iso(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as an ISO 8601 string in UTC."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()


__all__ = [
    "utc_now",
    "ensure_utc",
    "days_from_now",
    "normalize_email",
    "format_iso",
]
