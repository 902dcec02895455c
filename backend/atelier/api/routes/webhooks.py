"""
Webhook Routes

Melhor Envio status notifications.
"""
import base64
import hashlib
import hmac
import json
import logging

from fastapi import APIRouter, Request, HTTPException, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from atelier.core.config import settings
from atelier.core.database import get_db
from atelier.core.exceptions import ShippingError
from atelier.services.shipping_service import ShippingService

logger = logging.getLogger(__name__)

router = APIRouter()

SIGNATURE_HEADER = "X-ME-Signature"


def verify_melhor_envio_signature(request: Request, body: bytes) -> bool:
    """
    Verify the Melhor Envio webhook signature.

    The header carries base64(HMAC-SHA256(secret, raw body)).
    """
    if not settings.MELHOR_ENVIO_WEBHOOK_SECRET:
        if settings.ENVIRONMENT == "production":
            logger.error("MELHOR_ENVIO_WEBHOOK_SECRET not set, rejecting webhook")
            return False
        logger.warning("MELHOR_ENVIO_WEBHOOK_SECRET not set, skipping verification")
        return True  # Allow in dev mode

    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        logger.warning("Missing Melhor Envio webhook signature header")
        return False

    expected = base64.b64encode(
        hmac.new(
            settings.MELHOR_ENVIO_WEBHOOK_SECRET.encode(),
            body,
            hashlib.sha256,
        ).digest()
    ).decode()

    return hmac.compare_digest(signature, expected)


@router.post("/webhooks/melhor-envio")
async def handle_melhor_envio_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Handle a Melhor Envio order status notification.

    Body: {"order_id", "status", "tracking"}. The same forward-only rules
    as tracking sync apply. Unknown shipments and processing errors are
    answered with 200 and success False to prevent endless redelivery.
    """
    body = await request.body()

    if not verify_melhor_envio_signature(request, body):
        logger.warning("Invalid Melhor Envio webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError as e:
        logger.error(f"Failed to parse webhook payload: {e}")
        return {"success": False, "message": "Invalid JSON"}

    if not isinstance(payload, dict):
        return {"success": False, "message": "Invalid payload"}

    logger.info(f"Melhor Envio webhook: order {payload.get('order_id')} -> {payload.get('status')}")

    service = ShippingService(db)
    try:
        result = await service.apply_webhook(payload)
        await db.commit()
    except ShippingError as e:
        await db.rollback()
        logger.error(f"Melhor Envio webhook processing failed: {e.code} {e.message}")
        return {"success": False, "message": e.message}
    finally:
        await service.close()

    return result
