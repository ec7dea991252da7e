"""
Tests for webhook-driven payment confirmation
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import NOW, approved_payment, reload
from sessionpay.models import Notification, Patient, TherapySession
from sessionpay.schemas import PaymentDetails, SendResult
from sessionpay.services.payment_confirmation import (
    ALREADY_PAID,
    CONFIRMED,
    IGNORED,
    INVALID,
    NOT_APPROVED,
    PAYMENT_UNAVAILABLE,
    SESSION_NOT_FOUND,
    PaymentConfirmationService,
    parse_payment_id,
)


@pytest.fixture
def service(payment, messaging, session_factory):
    return PaymentConfirmationService(payment, messaging, session_factory=session_factory)


class TestParsePaymentId:
    @pytest.mark.parametrize("raw,expected", [(123, "123"), ("456", "456"), (" 789 ", "789")])
    def test_accepts_positive_integers(self, raw, expected):
        assert parse_payment_id(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "abc", "-5", "0", "12.5", True])
    def test_rejects_everything_else(self, raw):
        assert parse_payment_id(raw) is None


class TestProcessNotification:
    @pytest.mark.asyncio
    async def test_non_payment_topic_is_ignored(self, service, payment):
        assert await service.process_notification("merchant_order", "1") == IGNORED
        payment.get_payment_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_id(self, service, payment):
        assert await service.process_notification("payment", "abc") == INVALID
        payment.get_payment_by_id.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_payment_lookup_failure(self, service):
        assert await service.process_notification("payment", "123456") == PAYMENT_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_payment_lookup_exception(self, service, payment, messaging):
        payment.get_payment_by_id.side_effect = ValueError("Expecting value")

        assert await service.process_notification("payment", "123456") == PAYMENT_UNAVAILABLE
        messaging.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_payment_changes_nothing(self, service, payment, db, make_session):
        session_id = make_session(NOW + timedelta(hours=20))
        payment.get_payment_by_id.return_value = PaymentDetails(
            id="123456", status="pending", external_reference=session_id
        )

        assert await service.process_notification("payment", "123456") == NOT_APPROVED
        assert reload(db, TherapySession, session_id).payment_status == "pending"

    @pytest.mark.asyncio
    async def test_unknown_session(self, service, payment, messaging):
        payment.get_payment_by_id.return_value = approved_payment("does-not-exist")

        assert await service.process_notification("payment", "123456") == SESSION_NOT_FOUND
        messaging.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_external_reference(self, service, payment):
        payment.get_payment_by_id.return_value = PaymentDetails(id="123456", status="approved")
        assert await service.process_notification("payment", "123456") == INVALID

    @pytest.mark.asyncio
    async def test_approved_payment_confirms_session(self, service, payment, messaging, db, make_session):
        session_id = make_session(NOW + timedelta(hours=20), name="Juan Pérez")
        payment.get_payment_by_id.return_value = approved_payment(session_id)

        assert await service.process_notification("payment", 123456) == CONFIRMED

        session = reload(db, TherapySession, session_id)
        assert session.payment_status == "paid"
        assert session.payment_id == "123456"
        assert reload(db, Patient, session.patient_id).total_paid == Decimal("15000.00")

        messaging.send.assert_awaited_once()
        assert "Juan Pérez" in messaging.send.await_args.args[1]
        notification = db.query(Notification).one()
        assert (notification.type, notification.status) == ("payment_confirmed", "sent")

    @pytest.mark.asyncio
    async def test_duplicate_webhook_confirms_once(self, service, payment, messaging, db, make_session):
        session_id = make_session(NOW + timedelta(hours=20))
        payment.get_payment_by_id.return_value = approved_payment(session_id)

        assert await service.process_notification("payment", "123456") == CONFIRMED
        assert await service.process_notification("payment", "123456") == ALREADY_PAID

        assert messaging.send.await_count == 1
        session = reload(db, TherapySession, session_id)
        assert reload(db, Patient, session.patient_id).total_paid == Decimal("15000.00")

    @pytest.mark.asyncio
    async def test_messaging_failure_keeps_payment(self, service, payment, messaging, db, make_session):
        messaging.send.return_value = SendResult(success=False, error="[21211] invalid number")
        session_id = make_session(NOW + timedelta(hours=20))
        payment.get_payment_by_id.return_value = approved_payment(session_id)

        assert await service.process_notification("payment", "123456") == CONFIRMED

        assert reload(db, TherapySession, session_id).payment_status == "paid"
        assert db.query(Notification).one().status == "failed"

    @pytest.mark.asyncio
    async def test_messaging_exception_keeps_payment(self, service, payment, messaging, db, make_session):
        messaging.send.side_effect = RuntimeError("connection reset")
        session_id = make_session(NOW + timedelta(hours=20))
        payment.get_payment_by_id.return_value = approved_payment(session_id)

        assert await service.process_notification("payment", "123456") == CONFIRMED
        assert reload(db, TherapySession, session_id).payment_status == "paid"

    @pytest.mark.asyncio
    async def test_phone_less_patient_still_marked_paid(self, service, payment, messaging, db, make_session):
        session_id = make_session(NOW + timedelta(hours=20), phone=None)
        payment.get_payment_by_id.return_value = approved_payment(session_id)

        assert await service.process_notification("payment", "123456") == CONFIRMED

        messaging.send.assert_not_awaited()
        assert reload(db, TherapySession, session_id).payment_status == "paid"
        assert db.query(Notification).one().status == "failed"
