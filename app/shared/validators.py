"""Shared validation utilities"""

import re
from datetime import datetime
from typing import Optional

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

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


def validate_phone(phone: str) -> str:
    """
    Normalize a client phone number.

    Keeps a leading "+" and the digits; spaces, dashes and parentheses are dropped
    so that lookups by phone match however the number was typed.

    Raises:
        ValueError: If fewer than 6 digits remain
    """
    phone = (phone or "").strip()
    digits = re.sub(r"\D", "", phone)
    if len(digits) < 6:
        raise ValueError("Phone number must have at least 6 digits")
    return f"+{digits}" if phone.startswith("+") else digits


def validate_date(value: str) -> str:
    """Validate a YYYY-MM-DD calendar date"""
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except (TypeError, ValueError) as e:
        raise ValueError("Date must use the YYYY-MM-DD format") from e
    # strptime accepts unpadded months and days; stored dates compare as strings
    return parsed.date().isoformat()


def validate_time(value: str) -> str:
    """Validate a 24h HH:MM time"""
    if not isinstance(value, str) or not _TIME_PATTERN.match(value):
        raise ValueError("Time must use the HH:MM format")
    return value


def time_to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)
