import itertools
import os
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

# Configure before any sessionpay import reads the environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RUN_JOB_ON_START"] = "false"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["APP_URL"] = "https://practice.example.com"
os.environ.pop("MP_WEBHOOK_SECRET", None)

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sessionpay.database import Base
from sessionpay.models import Patient, TherapySession, generate_id
from sessionpay.schemas import PaymentDetails, PaymentPreferenceResult, SendResult

NOW = datetime(2024, 5, 13, 21, 0)  # 18:00 in Buenos Aires

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

_phone_numbers = itertools.count(10000000)


@pytest.fixture
def session_factory():
    Base.metadata.create_all(bind=engine)
    yield TestingSessionLocal
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_session(db):
    """Insert a patient and a session; returns the session id"""

    def _make(
        scheduled_at,
        name="Ana López",
        phone="auto",
        payment_status="pending",
        meet_link="https://meet.google.com/abc-defg-hij",
        **fields,
    ):
        if phone == "auto":
            phone = f"+54911{next(_phone_numbers)}"
        patient = Patient(name=name, phone=phone)
        db.add(patient)
        db.flush()
        session = TherapySession(
            patient_id=patient.id,
            calendar_event_id=fields.pop("calendar_event_id", generate_id()),
            scheduled_at=scheduled_at,
            duration_minutes=50,
            amount=15000,
            currency="ARS",
            payment_status=payment_status,
            meet_link=meet_link,
            **fields,
        )
        db.add(session)
        db.commit()
        return session.id

    return _make


def reload(db, model, pk):
    db.expire_all()
    return db.get(model, pk)


@pytest.fixture
def messaging():
    gateway = AsyncMock()
    gateway.send.return_value = SendResult(success=True, provider_message_id="SM123")
    return gateway


@pytest.fixture
def payment():
    gateway = AsyncMock()
    counter = itertools.count(1)

    async def create_preference(request):
        n = next(counter)
        return PaymentPreferenceResult(
            preference_id=f"pref-{n}",
            payment_link=f"https://www.mercadopago.com.ar/checkout/v1/redirect?pref_id=pref-{n}",
            expires_at=NOW + timedelta(hours=24),
        )

    gateway.create_preference.side_effect = create_preference
    gateway.get_payment_by_id.return_value = None
    return gateway


@pytest.fixture
def calendar():
    gateway = AsyncMock()
    gateway.list_events.return_value = []
    return gateway


def approved_payment(session_id, payment_id="123456"):
    return PaymentDetails(
        id=payment_id,
        status="approved",
        external_reference=session_id,
        transaction_amount=15000,
    )
