"""
Webhook Security Module

Signature verification for Mercado Pago notifications.
Mercado Pago signs the manifest "id:{data.id};request-id:{x-request-id};ts:{ts};"
with HMAC-SHA256 and sends it as "x-signature: ts=...,v1=...".
"""

import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def constant_time_compare(a: str, b: str) -> bool:
    """Timing-safe equality; empty values never match"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def parse_signature_header(header: Optional[str]) -> dict:
    """Split "ts=123,v1=abc" into {"ts": "123", "v1": "abc"}"""
    parts = {}
    for chunk in (header or "").split(","):
        key, sep, value = chunk.partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def build_manifest(data_id: Optional[str], request_id: Optional[str], ts: Optional[str]) -> str:
    """Signed template; segments whose value is missing are left out"""
    manifest = ""
    if data_id:
        # Alphanumeric ids are signed lowercased
        manifest += f"id:{str(data_id).lower()};"
    if request_id:
        manifest += f"request-id:{request_id};"
    if ts:
        manifest += f"ts:{ts};"
    return manifest


def verify_mercadopago_signature(
    signature_header: Optional[str],
    request_id: Optional[str],
    data_id: Optional[str],
    secret: str,
) -> bool:
    """
    Verify a Mercado Pago x-signature header.

    Returns False on any missing or mismatching part; never raises.
    """
    parts = parse_signature_header(signature_header)
    ts = parts.get("ts")
    received = parts.get("v1")

    if not ts or not received:
        logger.warning("🚫 Mercado Pago webhook missing ts or v1 in x-signature")
        return False

    manifest = build_manifest(data_id, request_id, ts)
    expected = compute_hmac_sha256(secret, manifest.encode("utf-8"))

    if not constant_time_compare(expected, received):
        logger.warning(f"🚫 Mercado Pago signature mismatch for data.id={data_id}")
        return False

    logger.debug(f"✅ Mercado Pago signature verified for data.id={data_id}")
    return True


def check_mercadopago_signature(
    signature_header: Optional[str],
    request_id: Optional[str],
    data_id: Optional[str],
    secret: Optional[str],
) -> Optional[bool]:
    """
    Advisory check used by the webhook route.

    Returns None when no secret is configured. A mismatch is only logged;
    payment state is re-fetched from the provider before anything changes.
    """
    if not secret:
        logger.warning("⚠️ MP_WEBHOOK_SECRET not configured, skipping signature verification")
        return None
    return verify_mercadopago_signature(signature_header, request_id, data_id, secret)
