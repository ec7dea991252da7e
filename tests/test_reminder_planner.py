"""
Tests for reminder decisions and message rendering
"""

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from sessionpay.services import message_templates
from sessionpay.services.reminder_planner import (
    NO_MEET_LINK,
    NO_PAYMENT_PREFERENCE,
    NO_VALID_PHONE,
    SendMessage,
    SkipNotification,
    in_window,
    plan_2h,
    plan_24h,
    plan_meet_link,
    plan_payment_confirmation,
    window_bounds,
)

SESSION_AT = datetime(2024, 5, 14, 21, 0)  # 18:00 in Buenos Aires


def session(**overrides):
    data = {"scheduled_at": SESSION_AT, "payment_status": "pending", "meet_link": "https://meet.google.com/x"}
    data.update(overrides)
    return SimpleNamespace(**data)


def patient(phone="+5491112345678"):
    return SimpleNamespace(name="Juan Pérez", phone=phone)


class TestWindows:
    def test_window_bounds(self):
        now = datetime(2024, 5, 13, 21, 0)
        assert window_bounds(now, 60, 120) == (now + timedelta(minutes=60), now + timedelta(minutes=120))

    def test_in_window_inclusive(self):
        now = datetime(2024, 5, 13, 21, 0)
        assert in_window(now + timedelta(minutes=60), now, 60, 120)
        assert in_window(now + timedelta(minutes=120), now, 60, 120)
        assert not in_window(now + timedelta(minutes=121), now, 60, 120)


class Test24hPlan:
    def test_sends_payment_reminder_with_link_needed(self):
        decision = plan_24h(session(), patient())
        assert isinstance(decision, SendMessage)
        assert decision.template == message_templates.PAYMENT_REMINDER
        assert decision.requires_payment_link is True

    def test_skips_without_valid_phone(self):
        assert plan_24h(session(), patient(phone=None)) == SkipNotification(NO_VALID_PHONE)
        assert plan_24h(session(), patient(phone="1112345678")) == SkipNotification(NO_VALID_PHONE)


class Test2hPlan:
    def test_courtesy_when_paid(self):
        decision = plan_2h(session(payment_status="paid"), patient())
        assert decision.template == message_templates.COURTESY_REMINDER

    def test_late_payment_with_existing_link(self):
        preference = SimpleNamespace(payment_link="https://mp.example/pref-1")
        decision = plan_2h(session(), patient(), preference)
        assert decision.template == message_templates.LATE_PAYMENT_REMINDER
        assert decision.context["payment_link"] == "https://mp.example/pref-1"

    def test_skips_when_unpaid_without_preference(self):
        assert plan_2h(session(), patient(), None) == SkipNotification(NO_PAYMENT_PREFERENCE)

    def test_phone_checked_first(self):
        assert plan_2h(session(payment_status="paid"), patient(phone=None)).reason == NO_VALID_PHONE


class TestMeetLinkPlan:
    def test_sends_link(self):
        decision = plan_meet_link(session(), patient())
        assert decision.template == message_templates.MEET_LINK
        assert decision.context["meet_link"] == "https://meet.google.com/x"

    def test_skips_without_link(self):
        assert plan_meet_link(session(meet_link=None), patient()).reason == NO_MEET_LINK


def test_payment_confirmation_needs_phone():
    assert plan_payment_confirmation(session(), patient(phone=None)) is None
    assert plan_payment_confirmation(session(), patient()).template == message_templates.PAYMENT_CONFIRMATION


class TestMessageTemplates:
    def test_session_date_in_practice_timezone(self):
        assert message_templates.format_session_date(SESSION_AT) == "martes 14 de mayo a las 18:00"

    def test_payment_reminder_copy(self):
        body = message_templates.payment_reminder("Juan Pérez", SESSION_AT, "https://mp.example/pref-1")
        assert body.startswith("Hola Juan Pérez!")
        assert "martes 14 de mayo a las 18:00" in body
        assert "https://mp.example/pref-1" in body

    def test_late_reminder_uses_local_time(self):
        body = message_templates.late_payment_reminder("Juan", SESSION_AT, "https://mp.example/x")
        assert "programada para 18:00" in body

    def test_render_unknown_template(self):
        with pytest.raises(ValueError):
            message_templates.render("unknown", patient_name="x")
