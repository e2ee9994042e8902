"""
Payment provider interface and its Stripe implementation.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Optional

import stripe

from ..config import get_settings
from ..utils.circuit_breaker import get_payment_circuit_breaker
from ..utils.exceptions import ExternalServiceError, WebhookSignatureError

logger = logging.getLogger(__name__)

# Transport-level failures count against the circuit; request errors do not.
_TRANSIENT_STRIPE_ERRORS = (stripe.APIConnectionError, stripe.RateLimitError, stripe.APIError)


class IntentStatus(str, Enum):
    REQUIRES_PAYMENT = "requires_payment"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class NotificationKind(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    IGNORED = "ignored"


@dataclass
class PaymentIntent:
    id: str
    client_secret: Optional[str]
    status: IntentStatus


@dataclass
class RefundResult:
    id: str
    status: str
    amount: Optional[Decimal] = None


@dataclass
class PaymentNotification:
    """A provider event reduced to what reconciliation needs."""
    kind: NotificationKind
    intent_id: Optional[str] = None
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def to_minor_units(amount: Decimal) -> int:
    """Dollars to cents."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: Optional[int]) -> Optional[Decimal]:
    if amount is None:
        return None
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class PaymentProvider(ABC):
    """External payment gateway."""

    @abstractmethod
    async def create_intent(self, amount: Decimal, metadata: Dict[str, str]) -> PaymentIntent:
        ...

    @abstractmethod
    async def retrieve_intent(self, intent_id: str) -> IntentStatus:
        ...

    @abstractmethod
    async def refund(self, intent_id: str, amount: Optional[Decimal] = None) -> RefundResult:
        ...

    @abstractmethod
    def parse_notification(self, payload: bytes, signature: Optional[str]) -> PaymentNotification:
        """Verify and decode a webhook delivery; raise WebhookSignatureError if it is not authentic."""
        ...


_STRIPE_INTENT_STATUSES = {
    "succeeded": IntentStatus.SUCCEEDED,
    "processing": IntentStatus.PROCESSING,
    "canceled": IntentStatus.CANCELED,
    "requires_payment_method": IntentStatus.REQUIRES_PAYMENT,
    "requires_confirmation": IntentStatus.REQUIRES_PAYMENT,
    "requires_action": IntentStatus.REQUIRES_PAYMENT,
    "requires_capture": IntentStatus.PROCESSING,
}


class StripePaymentProvider(PaymentProvider):
    """Stripe PaymentIntents; blocking SDK calls run in a worker thread under the payment circuit breaker."""

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None, currency: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.currency = currency or settings.payment_currency
        self.breaker = get_payment_circuit_breaker(expected_exception=_TRANSIENT_STRIPE_ERRORS)

    async def _call(self, func, **params):
        if not self.api_key:
            raise ExternalServiceError("payment", "Stripe is not configured")
        try:
            return await self.breaker.call(asyncio.to_thread, func, api_key=self.api_key, **params)
        except stripe.StripeError as e:
            raise ExternalServiceError(
                "payment",
                e.user_message or str(e),
                status_code=e.http_status,
            ) from e

    async def create_intent(self, amount: Decimal, metadata: Dict[str, str]) -> PaymentIntent:
        params: Dict[str, Any] = {
            "amount": to_minor_units(amount),
            "currency": self.currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": metadata,
        }
        # A retried request for the same registration must not open a second intent
        if metadata.get("registration_id"):
            params["idempotency_key"] = f"registration-{metadata['registration_id']}"

        intent = await self._call(stripe.PaymentIntent.create, **params)
        logger.info(f"Created payment intent {intent.id} for {amount} {self.currency}")
        return PaymentIntent(
            id=intent.id,
            client_secret=intent.client_secret,
            status=_STRIPE_INTENT_STATUSES.get(intent.status, IntentStatus.REQUIRES_PAYMENT),
        )

    async def retrieve_intent(self, intent_id: str) -> IntentStatus:
        intent = await self._call(stripe.PaymentIntent.retrieve, id=intent_id)
        return _STRIPE_INTENT_STATUSES.get(intent.status, IntentStatus.REQUIRES_PAYMENT)

    async def refund(self, intent_id: str, amount: Optional[Decimal] = None) -> RefundResult:
        params: Dict[str, Any] = {"payment_intent": intent_id}
        if amount is not None:
            params["amount"] = to_minor_units(amount)

        refund = await self._call(stripe.Refund.create, **params)
        logger.info(f"Refund {refund.id} for payment intent {intent_id}: {refund.status}")
        return RefundResult(id=refund.id, status=refund.status, amount=from_minor_units(refund.amount))

    def parse_notification(self, payload: bytes, signature: Optional[str]) -> PaymentNotification:
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError() from e

        try:
            event = json.loads(body)
            obj = event["data"]["object"]
            event_type = event["type"]
        except (ValueError, KeyError, TypeError) as e:
            raise WebhookSignatureError(f"Malformed webhook payload: {e}") from e

        if event_type == "payment_intent.succeeded":
            kind, intent_id = NotificationKind.SUCCEEDED, obj["id"]
        elif event_type == "payment_intent.payment_failed":
            kind, intent_id = NotificationKind.FAILED, obj["id"]
        elif event_type == "charge.refunded" and obj.get("refunded"):
            kind, intent_id = NotificationKind.REFUNDED, obj.get("payment_intent")
        elif event_type == "charge.refunded":
            # Partial refund; the registration keeps its seats
            kind, intent_id = NotificationKind.IGNORED, obj.get("payment_intent")
        else:
            kind, intent_id = NotificationKind.IGNORED, obj.get("id")

        return PaymentNotification(
            kind=kind,
            intent_id=intent_id,
            event_id=event.get("id"),
            event_type=event_type,
            metadata=dict(obj.get("metadata") or {}),
        )
