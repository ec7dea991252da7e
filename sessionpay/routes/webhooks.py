"""
Mercado Pago Webhook Handler
Acknowledges payment notifications immediately and confirms payments in the background
"""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from ..config import MP_WEBHOOK_SECRET
from ..schemas import MercadoPagoWebhook
from ..services.payment_confirmation import (
    PaymentConfirmationService,
    build_payment_confirmation_service,
)
from ..webhook_security import check_mercadopago_signature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhook", tags=["webhooks"])

_confirmation_service = None


def get_payment_confirmation_service() -> PaymentConfirmationService:
    global _confirmation_service
    if _confirmation_service is None:
        _confirmation_service = build_payment_confirmation_service()
    return _confirmation_service


def parse_notification(body: bytes, query_params) -> MercadoPagoWebhook:
    """
    Read type and data.id from the JSON body, falling back to IPN-style
    query parameters (type/topic, data.id/id).
    """
    payload = {}
    if body:
        try:
            decoded = json.loads(body.decode("utf-8"))
            if isinstance(decoded, dict):
                payload = decoded
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("⚠️ Mercado Pago webhook body is not valid JSON")

    notification = MercadoPagoWebhook.model_validate(
        {
            "type": payload.get("type"),
            "action": payload.get("action"),
            "data": payload.get("data") if isinstance(payload.get("data"), dict) else {},
        }
    )

    if not notification.type:
        notification.type = query_params.get("type") or query_params.get("topic")
    if notification.data.id is None:
        notification.data.id = query_params.get("data.id") or query_params.get("id")
    return notification


@router.post("/mercadopago")
async def handle_mercadopago_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    service: PaymentConfirmationService = Depends(get_payment_confirmation_service),
):
    """
    Always answers 200 so Mercado Pago stops retrying; the real work runs
    after the response with its own database session.
    """
    body = await request.body()
    notification = parse_notification(body, request.query_params)
    data_id = str(notification.data.id) if notification.data.id is not None else None

    logger.info(f"📥 Mercado Pago webhook: type={notification.type} action={notification.action} id={data_id}")

    check_mercadopago_signature(
        request.headers.get("x-signature"),
        request.headers.get("x-request-id"),
        data_id,
        MP_WEBHOOK_SECRET,
    )

    background_tasks.add_task(service.process_notification, notification.type, notification.data.id)
    return {"status": "received"}
