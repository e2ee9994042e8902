"""
Payment provider webhook.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from ..schemas.admin import WebhookAck
from ..services.payment_provider import PaymentProvider
from ..services.payment_reconciliation import PaymentReconciliationService
from ..utils.dependencies import get_payment_provider, get_reconciliation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    payment_provider: PaymentProvider = Depends(get_payment_provider),
    reconciliation: PaymentReconciliationService = Depends(get_reconciliation_service),
):
    """
    Receive payment outcomes from the provider.

    Bad signatures answer 400 and storage failures answer 500, so the
    provider redelivers; every other delivery is acknowledged.
    """
    payload = await request.body()
    notification = payment_provider.parse_notification(payload, stripe_signature)

    result = await reconciliation.handle_notification(notification)
    logger.info(f"Webhook {notification.event_type} ({notification.event_id}): {result.action.value}")
    return WebhookAck(action=result.action.value)
