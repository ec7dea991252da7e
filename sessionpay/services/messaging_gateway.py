"""
Twilio WhatsApp Gateway
Sends WhatsApp messages through the Twilio Messages API
"""

import logging
from typing import Optional

import httpx

from ..config import (
    GATEWAY_TIMEOUT_SECONDS,
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_WHATSAPP_NUMBER,
)
from ..schemas import SendResult
from ..shared.validators import mask_phone

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01"


def whatsapp_address(phone: str) -> str:
    return phone if phone.startswith("whatsapp:") else f"whatsapp:{phone}"


class TwilioWhatsAppGateway:
    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        timeout: float = GATEWAY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout
        self.transport = transport

    async def send(self, to: str, body: str) -> SendResult:
        """
        Send one WhatsApp message.

        Never raises: HTTP errors and timeouts come back as success=False.
        """
        if not self.account_sid or not self.auth_token or not self.from_number:
            logger.error("❌ Twilio WhatsApp credentials not configured")
            return SendResult(success=False, error="Twilio not configured")

        data = {
            "From": whatsapp_address(self.from_number),
            "To": whatsapp_address(to),
            "Body": body,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{TWILIO_API_URL}/Accounts/{self.account_sid}/Messages.json",
                    auth=(self.account_sid, self.auth_token),
                    data=data,
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Failed to send WhatsApp message to {mask_phone(to)}: {e}")
            return SendResult(success=False, error=str(e) or e.__class__.__name__)

        if response.status_code in (200, 201):
            result = response.json()
            message_sid = result.get("sid")
            logger.info(
                f"📱 WhatsApp message sent to {mask_phone(to)} "
                f"(SID: {message_sid}, status: {result.get('status')})"
            )
            return SendResult(success=True, provider_message_id=message_sid)

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        error_message = error_data.get("message") or f"HTTP {response.status_code}"
        error_code = error_data.get("code")
        if error_code:
            error_message = f"[{error_code}] {error_message}"

        logger.error(f"❌ Twilio API error for {mask_phone(to)}: {error_message}")
        return SendResult(success=False, error=error_message)


def create_messaging_gateway() -> TwilioWhatsAppGateway:
    return TwilioWhatsAppGateway(
        account_sid=TWILIO_ACCOUNT_SID,
        auth_token=TWILIO_AUTH_TOKEN,
        from_number=TWILIO_WHATSAPP_NUMBER,
    )
