"""
Session Parser
Turns a raw calendar event into a session intent or a rejection reason.
Pure: no I/O, never raises.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from ..config import SESSION_MAX_DURATION, SESSION_MIN_DURATION
from ..schemas import CalendarEvent
from ..shared.validators import extract_phone, to_naive_utc

SESSION_KEYWORD_PATTERN = re.compile(r"sesi[oó]n", re.IGNORECASE)
PATIENT_NAME_PATTERN = re.compile(r"sesi[oó]n\s*[-:]\s*(.+)", re.IGNORECASE)

# Rejection reasons
NOT_A_SESSION = "not_a_session"
MISSING_MEET_LINK = "missing_meet_link"
INVALID_DURATION = "invalid_duration"
MISSING_PATIENT_NAME = "missing_patient_name"


@dataclass(frozen=True)
class SessionIntent:
    calendar_event_id: str
    patient_name: str
    scheduled_at: datetime
    duration_minutes: int
    meet_link: str
    patient_phone: Optional[str] = None


@dataclass(frozen=True)
class SessionRejection:
    calendar_event_id: str
    reason: str


ParseResult = Union[SessionIntent, SessionRejection]


def duration_minutes(start: datetime, end: datetime) -> int:
    """Duration rounded to the nearest minute; aware and naive values may be mixed"""
    return round((to_naive_utc(end) - to_naive_utc(start)).total_seconds() / 60)


def extract_patient_name(title: str) -> Optional[str]:
    """Extract the name after "Sesión -" or "Sesión:"; None when absent or blank"""
    match = PATIENT_NAME_PATTERN.search(title or "")
    if not match:
        return None
    name = match.group(1).strip()
    return name or None


def parse_event(
    event: CalendarEvent,
    min_duration: int = SESSION_MIN_DURATION,
    max_duration: int = SESSION_MAX_DURATION,
) -> ParseResult:
    """
    Run the filter chain over one event.

    Checks short-circuit in order: keyword, meeting link, duration band,
    patient name. A missing phone never rejects.
    """
    title = event.title or ""

    if not SESSION_KEYWORD_PATTERN.search(title):
        return SessionRejection(event.id, NOT_A_SESSION)

    if not event.meet_link or not event.meet_link.strip():
        return SessionRejection(event.id, MISSING_MEET_LINK)

    if event.start is None or event.end is None:
        return SessionRejection(event.id, INVALID_DURATION)

    minutes = duration_minutes(event.start, event.end)
    if minutes < min_duration or minutes > max_duration:
        return SessionRejection(event.id, INVALID_DURATION)

    patient_name = extract_patient_name(title)
    if not patient_name:
        return SessionRejection(event.id, MISSING_PATIENT_NAME)

    return SessionIntent(
        calendar_event_id=event.id,
        patient_name=patient_name,
        scheduled_at=to_naive_utc(event.start),
        duration_minutes=minutes,
        meet_link=event.meet_link.strip(),
        patient_phone=extract_phone(event.description),
    )
