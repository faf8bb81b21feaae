"""Shared validation utilities"""

import re
from datetime import datetime
from typing import Optional

TIMESLOT_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def validate_session_date(value: str) -> str:
    """
    Validate a session date in YYYY-MM-DD form.

    Raises:
        ValueError: If the date is malformed or not a calendar date
    """
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError) as e:
        raise ValueError("date must be in YYYY-MM-DD format") from e
    return value


def validate_timeslot(value: str) -> str:
    """Validate a 24h HH:MM timeslot"""
    if not isinstance(value, str) or not TIMESLOT_PATTERN.match(value):
        raise ValueError("timeslot must be in HH:MM format")
    return value


def session_start(date: str, timeslot: str) -> datetime:
    """Combine a slot into the naive datetime the session starts at"""
    return datetime.strptime(f"{date}T{timeslot}", "%Y-%m-%dT%H:%M")


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email
