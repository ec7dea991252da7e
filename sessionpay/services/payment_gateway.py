"""
Mercado Pago Payment Gateway
Creates checkout preferences and fetches authoritative payment details
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

import httpx

from ..config import (
    APP_URL,
    GATEWAY_TIMEOUT_SECONDS,
    MP_ACCESS_TOKEN,
    MP_API_URL,
    PAYMENT_LINK_TTL_HOURS,
    SESSION_CURRENCY,
)
from ..schemas import PaymentDetails, PaymentPreferenceResult, PreferenceRequest
from ..shared.validators import utcnow

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    """Payment provider unreachable or rejected the request"""


def _iso(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S.000+00:00")


class MercadoPagoGateway:
    def __init__(
        self,
        access_token: Optional[str],
        app_url: str = APP_URL,
        api_url: str = MP_API_URL,
        currency: str = SESSION_CURRENCY,
        link_ttl_hours: int = PAYMENT_LINK_TTL_HOURS,
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.app_url = app_url.rstrip("/")
        self.api_url = api_url.rstrip("/")
        self.currency = currency
        self.link_ttl_hours = link_ttl_hours
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def build_preference_body(self, request: PreferenceRequest, now: datetime, expires_at: datetime) -> dict:
        return {
            "items": [
                {
                    "id": request.reference,
                    "title": f"Sesión de Psicología - {request.payee_name}",
                    "quantity": 1,
                    "unit_price": float(request.amount),
                    "currency_id": request.currency or self.currency,
                }
            ],
            "back_urls": {
                "success": f"{self.app_url}/payment/success",
                "failure": f"{self.app_url}/payment/failure",
                "pending": f"{self.app_url}/payment/pending",
            },
            "auto_return": "approved",
            "external_reference": request.reference,
            "notification_url": f"{self.app_url}/webhook/mercadopago",
            "expires": True,
            "expiration_date_from": _iso(now),
            "expiration_date_to": _iso(expires_at),
            "metadata": {
                "session_id": request.reference,
                "patient_name": request.payee_name,
                "session_date": request.session_date.isoformat(),
            },
        }

    async def create_preference(self, request: PreferenceRequest) -> PaymentPreferenceResult:
        """Create a checkout link valid for the configured TTL"""
        if not self.access_token:
            raise PaymentGatewayError("Mercado Pago access token not configured")

        now = utcnow()
        expires_at = now + timedelta(hours=self.link_ttl_hours)
        body = self.build_preference_body(request, now, expires_at)
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.api_url}/checkout/preferences",
                    headers=self._headers(),
                    json=body,
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Failed to create payment preference for session {request.reference}: {e}")
            raise PaymentGatewayError("Payment service unavailable") from e

        if response.status_code not in (200, 201):
            logger.error(
                f"❌ Mercado Pago preference error {response.status_code} "
                f"for session {request.reference}: {response.text}"
            )
            raise PaymentGatewayError("Payment service unavailable")

        try:
            data = response.json()
        except ValueError:
            logger.error(f"❌ Mercado Pago preference response for session {request.reference} is not JSON")
            raise PaymentGatewayError("Invalid preference response from Mercado Pago")

        if not isinstance(data, dict) or not data.get("id") or not data.get("init_point"):
            raise PaymentGatewayError("Invalid preference response from Mercado Pago")

        logger.info(f"💰 Created payment preference {data['id']} for session {request.reference}")
        return PaymentPreferenceResult(
            preference_id=str(data["id"]),
            payment_link=data["init_point"],
            sandbox_link=data.get("sandbox_init_point"),
            expires_at=expires_at,
        )

    async def get_payment_by_id(self, payment_id: str) -> Optional[PaymentDetails]:
        """Fetch payment details; None when unavailable"""
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.api_url}/v1/payments/{payment_id}",
                    headers=self._headers(),
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Failed to fetch payment {payment_id}: {e}")
            return None

        if response.status_code != 200:
            logger.error(f"❌ Mercado Pago payment lookup {payment_id} returned {response.status_code}")
            return None

        try:
            data = response.json()
        except ValueError:
            logger.error(f"❌ Mercado Pago payment lookup {payment_id} returned a non-JSON body")
            return None

        if not isinstance(data, dict) or not data.get("id"):
            return None

        logger.debug(
            f"Fetched payment {data['id']}: status={data.get('status')} "
            f"reference={data.get('external_reference')}"
        )
        return PaymentDetails(
            id=str(data["id"]),
            status=data.get("status") or "unknown",
            status_detail=data.get("status_detail"),
            external_reference=data.get("external_reference") or None,
            transaction_amount=data.get("transaction_amount"),
            currency_id=data.get("currency_id"),
            date_approved=data.get("date_approved"),
        )


def create_payment_gateway() -> MercadoPagoGateway:
    return MercadoPagoGateway(access_token=MP_ACCESS_TOKEN)
