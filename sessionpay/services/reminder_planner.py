"""
Reminder planner
Pure decisions for each notification window: send a message or skip with a reason.
The session monitor executes whatever is decided here.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Union

from ..models import PAYMENT_PAID
from ..shared.validators import is_valid_phone
from . import message_templates

# Skip reasons, stored as the failed notification's error_message
NO_VALID_PHONE = "Patient has no valid phone number"
NO_PAYMENT_PREFERENCE = "No payment preference found for late reminder"
NO_MEET_LINK = "Session has no meeting link"


@dataclass(frozen=True)
class SendMessage:
    template: str
    phone: str
    context: dict = field(default_factory=dict)
    # 24h reminders need a checkout link created or reused before rendering
    requires_payment_link: bool = False


@dataclass(frozen=True)
class SkipNotification:
    reason: str


Decision = Union[SendMessage, SkipNotification]


def window_bounds(now: datetime, min_minutes: int, max_minutes: int) -> tuple[datetime, datetime]:
    """Inclusive [now + min, now + max] range of scheduled_at values"""
    return now + timedelta(minutes=min_minutes), now + timedelta(minutes=max_minutes)


def in_window(scheduled_at: datetime, now: datetime, min_minutes: int, max_minutes: int) -> bool:
    start, end = window_bounds(now, min_minutes, max_minutes)
    return start <= scheduled_at <= end


def plan_24h(session, patient) -> Decision:
    if not is_valid_phone(patient.phone):
        return SkipNotification(NO_VALID_PHONE)

    return SendMessage(
        template=message_templates.PAYMENT_REMINDER,
        phone=patient.phone,
        context={"patient_name": patient.name, "session_date": session.scheduled_at},
        requires_payment_link=True,
    )


def plan_2h(session, patient, preference=None) -> Decision:
    """Courtesy reminder when paid, late-payment reminder with the stored link otherwise"""
    if not is_valid_phone(patient.phone):
        return SkipNotification(NO_VALID_PHONE)

    if session.payment_status == PAYMENT_PAID:
        return SendMessage(
            template=message_templates.COURTESY_REMINDER,
            phone=patient.phone,
            context={"patient_name": patient.name, "session_date": session.scheduled_at},
        )

    if preference is None:
        return SkipNotification(NO_PAYMENT_PREFERENCE)

    return SendMessage(
        template=message_templates.LATE_PAYMENT_REMINDER,
        phone=patient.phone,
        context={
            "patient_name": patient.name,
            "session_date": session.scheduled_at,
            "payment_link": preference.payment_link,
        },
    )


def plan_meet_link(session, patient) -> Decision:
    if not is_valid_phone(patient.phone):
        return SkipNotification(NO_VALID_PHONE)

    if not session.meet_link:
        return SkipNotification(NO_MEET_LINK)

    return SendMessage(
        template=message_templates.MEET_LINK,
        phone=patient.phone,
        context={"patient_name": patient.name, "meet_link": session.meet_link},
    )


def plan_payment_confirmation(session, patient) -> Optional[SendMessage]:
    """None when the patient cannot be reached"""
    if not is_valid_phone(patient.phone):
        return None
    return SendMessage(
        template=message_templates.PAYMENT_CONFIRMATION,
        phone=patient.phone,
        context={"patient_name": patient.name, "session_date": session.scheduled_at},
    )
