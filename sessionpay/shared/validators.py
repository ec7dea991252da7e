"""Shared validation utilities"""

import re
import uuid
from datetime import datetime, timezone
from typing import Optional

# E.164: "+" followed by up to 15 digits, no leading zero
E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
E164_SEARCH_PATTERN = re.compile(r"\+[1-9]\d{1,14}")


def validate_uuid(value: str) -> bool:
    """Validate UUID format"""
    try:
        uuid.UUID(value)
        return True
    except (ValueError, AttributeError, TypeError):
        return False


def is_valid_phone(phone: Optional[str]) -> bool:
    """Check a phone number against the E.164 rule shared by the whole system"""
    if not phone:
        return False
    return bool(E164_PATTERN.match(phone))


def extract_phone(text: Optional[str]) -> Optional[str]:
    """
    Find the first E.164 phone number in free text.

    Returns None when the text holds no valid number.
    """
    if not text:
        return None

    match = E164_SEARCH_PATTERN.search(text)
    if match and is_valid_phone(match.group(0)):
        return match.group(0)
    return None


def mask_phone(phone: Optional[str]) -> str:
    """Mask all but the last 4 digits for logging"""
    if not phone or len(phone) < 8:
        return "****"
    return re.sub(r"\d", "*", phone[:-4]) + phone[-4:]


def utcnow() -> datetime:
    """Current time as naive UTC, matching how timestamps are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive values are assumed UTC already"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
