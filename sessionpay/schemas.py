"""Gateway and webhook schemas - Pydantic models shared across services"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CalendarEvent(BaseModel):
    """Calendar event as returned by the calendar gateway, times in naive UTC"""

    id: str
    title: str = ""
    description: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    meet_link: Optional[str] = None


class PreferenceRequest(BaseModel):
    """Input for creating a checkout link"""

    reference: str  # our session id, echoed back as external_reference
    payee_name: str
    amount: float
    session_date: datetime
    currency: Optional[str] = None


class PaymentPreferenceResult(BaseModel):
    preference_id: str
    payment_link: str
    sandbox_link: Optional[str] = None
    expires_at: datetime


class PaymentDetails(BaseModel):
    """Authoritative payment state fetched from the provider"""

    id: str
    status: str  # approved, pending, rejected, cancelled, refunded, ...
    status_detail: Optional[str] = None
    external_reference: Optional[str] = None
    transaction_amount: Optional[float] = None
    currency_id: Optional[str] = None
    date_approved: Optional[str] = None


class SendResult(BaseModel):
    success: bool
    provider_message_id: Optional[str] = None
    error: Optional[str] = None


class WebhookData(BaseModel):
    id: Optional[Any] = None


class MercadoPagoWebhook(BaseModel):
    """Mercado Pago notification body; unknown fields are tolerated"""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    action: Optional[str] = None
    data: WebhookData = Field(default_factory=WebhookData)


class NotificationResponse(BaseModel):
    """Notification row as listed by operator tooling"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    session_id: str
    type: str
    channel: str
    status: str
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
