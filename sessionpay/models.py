"""
Session pipeline models
Patients, therapy sessions, payment links and the notification audit log
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Payment dimension; "failed"/"refunded" are only set outside the reminder pipeline
PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PAID, "failed", "refunded")

NOTIFICATION_REMINDER_24H = "reminder_24h"
NOTIFICATION_REMINDER_2H = "reminder_2h"
NOTIFICATION_MEET_LINK = "meet_link"
NOTIFICATION_PAYMENT_CONFIRMED = "payment_confirmed"

CHANNEL_WHATSAPP = "whatsapp"


def generate_id():
    """Generate a UUID string primary key"""
    return str(uuid.uuid4())


class Patient(Base):
    __tablename__ = "patients"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False, index=True)
    phone = Column(String(20), unique=True, nullable=True)  # E.164; null until known
    email = Column(String(255), nullable=True)
    trusted = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)

    # Denormalized counters, not authoritative
    total_sessions = Column(Integer, default=0, nullable=False)
    total_paid = Column(Numeric(12, 2), default=0, nullable=False)
    last_session_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    sessions = relationship("TherapySession", back_populates="patient")


class TherapySession(Base):
    __tablename__ = "sessions"

    id = Column(String(36), primary_key=True, default=generate_id)
    patient_id = Column(String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False, index=True)
    # Natural key for idempotent calendar sync
    calendar_event_id = Column(String(255), unique=True, nullable=False)

    scheduled_at = Column(DateTime, nullable=False, index=True)  # naive UTC
    duration_minutes = Column(Integer, default=50, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), default="ARS", nullable=False)

    status = Column(String(20), default="scheduled", nullable=False)
    payment_status = Column(String(20), default=PAYMENT_PENDING, nullable=False, index=True)
    payment_id = Column(String(255), nullable=True)  # Mercado Pago payment ID
    meet_link = Column(Text, nullable=True)

    # "Already attempted" flags; only manual tooling resets them
    reminder_24h_sent = Column(Boolean, default=False, nullable=False)
    reminder_2h_sent = Column(Boolean, default=False, nullable=False)
    meet_link_sent = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient", back_populates="sessions")
    payment_preferences = relationship("PaymentPreference", back_populates="session")
    notifications = relationship("Notification", back_populates="session")


class PaymentPreference(Base):
    """Time-limited Mercado Pago checkout link for one session"""

    __tablename__ = "payment_preferences"

    id = Column(String(36), primary_key=True, default=generate_id)
    session_id = Column(String(36), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_preference_id = Column(String(255), unique=True, nullable=False)
    payment_link = Column(Text, nullable=False)
    sandbox_link = Column(Text, nullable=True)
    expires_at = Column(DateTime, nullable=False)

    created_at = Column(DateTime, server_default=func.now())

    session = relationship("TherapySession", back_populates="payment_preferences")


class Notification(Base):
    """Append-only log of every delivery attempt"""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_id)
    session_id = Column(String(36), ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(30), nullable=False)  # reminder_24h, reminder_2h, meet_link, payment_confirmed
    channel = Column(String(20), default=CHANNEL_WHATSAPP, nullable=False)  # whatsapp, email, sms
    status = Column(String(20), default="pending", nullable=False, index=True)  # pending, sent, failed
    provider_message_id = Column(String(255), nullable=True)
    sent_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), index=True)

    session = relationship("TherapySession", back_populates="notifications")
