"""
Tests for the session monitor job
"""

from datetime import timedelta

import pytest

from conftest import NOW, reload
from sessionpay.models import Notification, Patient, PaymentPreference, TherapySession
from sessionpay.schemas import CalendarEvent, SendResult
from sessionpay.services.calendar_gateway import CalendarGatewayError
from sessionpay.services.payment_gateway import PaymentGatewayError
from sessionpay.services.reminder_planner import NO_PAYMENT_PREFERENCE, NO_VALID_PHONE
from sessionpay.services.session_monitor import SessionMonitorJob

MEET = "https://meet.google.com/abc-defg-hij"


@pytest.fixture
def job(calendar, payment, messaging, session_factory):
    return SessionMonitorJob(
        calendar=calendar,
        payment=payment,
        messaging=messaging,
        session_factory=session_factory,
        clock=lambda: NOW,
    )


def juan_perez_event(starts_in=timedelta(hours=23, minutes=30)):
    start = NOW + starts_in
    return CalendarEvent(
        id="evt-juan",
        title="Sesión - Juan Pérez",
        description="Tel: +5491112345678",
        start=start,
        end=start + timedelta(minutes=50),
        meet_link=MEET,
    )


def notifications_for(db, session_id):
    db.expire_all()
    return db.query(Notification).filter(Notification.session_id == session_id).all()


class TestCalendarSync:
    @pytest.mark.asyncio
    async def test_juan_perez_scenario(self, job, db, calendar, payment, messaging):
        calendar.list_events.return_value = [juan_perez_event()]

        summary = await job.run()

        patient = db.query(Patient).one()
        assert patient.name == "Juan Pérez"
        assert patient.phone == "+5491112345678"
        assert patient.total_sessions == 1

        session = db.query(TherapySession).one()
        assert session.calendar_event_id == "evt-juan"
        assert float(session.amount) == 15000
        assert session.currency == "ARS"
        assert session.duration_minutes == 50
        assert session.meet_link == MEET
        assert session.reminder_24h_sent is True

        preference = db.query(PaymentPreference).one()
        assert preference.session_id == session.id

        messaging.send.assert_awaited_once()
        to, body = messaging.send.await_args.args
        assert to == "+5491112345678"
        assert preference.payment_link in body

        [notification] = notifications_for(db, session.id)
        assert (notification.type, notification.status) == ("reminder_24h", "sent")

        assert summary["sessions_created"] == 1
        assert summary["patients_created"] == 1
        assert summary["reminder_24h"]["sent"] == 1
        assert summary["stage_errors"] == []

    @pytest.mark.asyncio
    async def test_sync_is_idempotent(self, job, db, calendar):
        calendar.list_events.return_value = [juan_perez_event(starts_in=timedelta(hours=30))]

        await job.run()
        second = await job.run()

        assert db.query(TherapySession).count() == 1
        assert db.query(Patient).one().total_sessions == 1
        assert second["sessions_created"] == 0

    @pytest.mark.asyncio
    async def test_rejected_events_are_counted(self, job, db, calendar):
        calendar.list_events.return_value = [
            CalendarEvent(id="e1", title="Dentista", start=NOW, end=NOW + timedelta(minutes=50), meet_link=MEET),
            CalendarEvent(id="e2", title="Sesión - Ana", start=NOW, end=NOW + timedelta(minutes=50)),
        ]

        summary = await job.run()

        assert summary["events_seen"] == 2
        assert summary["events_rejected"] == 2
        assert db.query(TherapySession).count() == 0

    @pytest.mark.asyncio
    async def test_calendar_failure_does_not_stop_sweeps(self, job, calendar, messaging, make_session):
        calendar.list_events.side_effect = CalendarGatewayError("Calendar service unavailable")
        make_session(NOW + timedelta(minutes=10), payment_status="paid")

        summary = await job.run()

        assert summary["stage_errors"] == ["calendar_sync"]
        assert summary["meet_link"]["sent"] == 1
        messaging.send.assert_awaited_once()


class Test24hSweep:
    @pytest.mark.asyncio
    async def test_phone_less_patient_is_skipped_and_flagged(self, job, db, payment, messaging, make_session):
        session_id = make_session(NOW + timedelta(hours=23, minutes=30), phone=None)

        summary = await job.run()

        assert reload(db, TherapySession, session_id).reminder_24h_sent is True
        [notification] = notifications_for(db, session_id)
        assert notification.status == "failed"
        assert notification.error_message == NO_VALID_PHONE
        assert db.query(PaymentPreference).count() == 0
        payment.create_preference.assert_not_awaited()
        messaging.send.assert_not_awaited()
        assert summary["reminder_24h"]["skipped"] == 1

    @pytest.mark.asyncio
    async def test_attempted_at_most_once(self, job, messaging, make_session):
        make_session(NOW + timedelta(hours=23, minutes=30))

        await job.run()
        await job.run()

        assert messaging.send.await_count == 1

    @pytest.mark.asyncio
    async def test_send_failure_still_flips_flag(self, job, db, messaging, make_session):
        messaging.send.return_value = SendResult(success=False, error="[63016] outside window")
        session_id = make_session(NOW + timedelta(hours=23, minutes=30))

        summary = await job.run()

        assert reload(db, TherapySession, session_id).reminder_24h_sent is True
        [notification] = notifications_for(db, session_id)
        assert notification.status == "failed"
        assert summary["reminder_24h"]["failed"] == 1

    @pytest.mark.asyncio
    async def test_payment_gateway_failure_leaves_flag_for_retry(self, job, db, payment, messaging, make_session):
        payment.create_preference.side_effect = PaymentGatewayError("Payment service unavailable")
        session_id = make_session(NOW + timedelta(hours=23, minutes=30))

        summary = await job.run()

        assert summary["reminder_24h"]["errors"] == 1
        assert reload(db, TherapySession, session_id).reminder_24h_sent is False
        messaging.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_one_failing_session_does_not_stop_others(self, job, db, payment, messaging, make_session):
        calls = {"n": 0}
        original = payment.create_preference.side_effect

        async def flaky(request):
            calls["n"] += 1
            if calls["n"] == 1:
                raise PaymentGatewayError("timeout")
            return await original(request)

        payment.create_preference.side_effect = flaky
        make_session(NOW + timedelta(minutes=1385))
        second = make_session(NOW + timedelta(minutes=1395))

        summary = await job.run()

        assert summary["reminder_24h"]["errors"] == 1
        assert summary["reminder_24h"]["sent"] == 1
        assert reload(db, TherapySession, second).reminder_24h_sent is True

    @pytest.mark.asyncio
    async def test_reuses_unexpired_preference(self, job, db, payment, make_session):
        from sessionpay.domain.payments.repository import PaymentPreferenceRepository
        from sessionpay.schemas import PaymentPreferenceResult

        session_id = make_session(NOW + timedelta(hours=23, minutes=30))
        PaymentPreferenceRepository.find_or_replace(
            db,
            session_id,
            PaymentPreferenceResult(
                preference_id="existing",
                payment_link="https://mp.example/existing",
                expires_at=NOW + timedelta(hours=5),
            ),
        )

        await job.run()

        payment.create_preference.assert_not_awaited()


class Test2hSweep:
    @pytest.mark.asyncio
    async def test_courtesy_for_paid_session(self, job, db, messaging, make_session):
        session_id = make_session(NOW + timedelta(minutes=90), payment_status="paid", reminder_24h_sent=True)

        await job.run()

        assert "comienza en 2 horas" in messaging.send.await_args.args[1]
        assert reload(db, TherapySession, session_id).reminder_2h_sent is True

    @pytest.mark.asyncio
    async def test_unpaid_without_preference_is_skipped(self, job, db, messaging, make_session):
        session_id = make_session(NOW + timedelta(minutes=90), reminder_24h_sent=True)

        summary = await job.run()

        messaging.send.assert_not_awaited()
        assert summary["reminder_2h"]["skipped"] == 1
        assert notifications_for(db, session_id)[0].error_message == NO_PAYMENT_PREFERENCE
        assert reload(db, TherapySession, session_id).reminder_2h_sent is True

    @pytest.mark.asyncio
    async def test_not_selected_before_24h_attempt(self, job, messaging, make_session):
        make_session(NOW + timedelta(minutes=90))

        summary = await job.run()

        assert summary["reminder_2h"]["found"] == 0
        messaging.send.assert_not_awaited()


class TestMeetLinkSweep:
    @pytest.mark.asyncio
    async def test_sends_link_to_paid_session(self, job, db, messaging, make_session):
        session_id = make_session(NOW + timedelta(minutes=12), payment_status="paid")

        await job.run()

        assert MEET in messaging.send.await_args.args[1]
        assert reload(db, TherapySession, session_id).meet_link_sent is True

    @pytest.mark.asyncio
    async def test_unpaid_session_gets_no_link(self, job, messaging, make_session):
        make_session(NOW + timedelta(minutes=12))

        await job.run()

        messaging.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_never_raises_when_clock_fails(calendar, payment, messaging, session_factory):
    def broken_clock():
        raise RuntimeError("clock unavailable")

    job = SessionMonitorJob(calendar, payment, messaging, session_factory=session_factory, clock=broken_clock)

    summary = await job.run()

    assert summary["stage_errors"] == ["job"]
