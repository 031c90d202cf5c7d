# -*- coding: utf-8 -*-
"""
Stripe payment gateway adapter.

Holds no business state: it creates and retrieves payment intents and turns
signed webhook payloads into plain event dicts. The secret key and webhook
secret are passed in by the application factory and sent per request
(``api_key=``), so nothing here mutates the global ``stripe.api_key``.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from detailers.errors import GatewayError, SignatureError
from detailers.infra.log import get_logger

logger = get_logger("detailers.payments")

PROVIDER_NAME = "stripe"

# Stripe's own default tolerance for webhook timestamps
WEBHOOK_TOLERANCE_SECONDS = 300


@dataclass
class PaymentIntentHandle:
    """What a buyer's browser needs to complete payment."""
    provider_payment_id: str
    client_secret: str
    amount: int
    currency: str
    status: str


@dataclass
class PaymentIntentState:
    provider_payment_id: str
    status: str
    amount: int
    currency: str
    metadata: Dict[str, Any]
    has_failed_attempt: bool = False


@dataclass
class WebhookEvent:
    event_id: str
    event_type: str
    data_object: Dict[str, Any]


class StripeGateway:
    """Thin wrapper around the Stripe SDK."""

    def __init__(self, secret_key: str, webhook_secret: str = "", currency: str = "usd"):
        self.secret_key = (secret_key or "").strip()
        self.webhook_secret = (webhook_secret or "").strip()
        self.currency = currency.lower()

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def _require_key(self):
        if not self.secret_key:
            logger.error("STRIPE_SECRET_KEY missing; cannot reach payment provider")
            raise GatewayError(
                "Payment processing is not available right now",
                code="PAYMENT_GATEWAY_NOT_CONFIGURED",
            )

    def create_payment_intent(
        self,
        amount_cents: int,
        purchase_id: str,
        customer_email: Optional[str] = None,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentIntentHandle:
        """
        Create a payment intent for ``amount_cents`` in the gateway currency.

        ``purchase_id`` is stored in the intent metadata so webhooks can be
        correlated back to the purchase. The purchase id also keys Stripe's
        idempotency cache, so a buyer reloading the checkout page gets the same
        intent back instead of a second one.
        """
        self._require_key()

        intent_metadata = {"purchase_id": purchase_id}
        if metadata:
            intent_metadata.update({k: str(v) for k, v in metadata.items()})

        params: Dict[str, Any] = {
            "amount": int(amount_cents),
            "currency": self.currency,
            "metadata": intent_metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if customer_email:
            params["receipt_email"] = customer_email
        if description:
            params["description"] = description

        try:
            intent = stripe.PaymentIntent.create(
                api_key=self.secret_key,
                idempotency_key=f"purchase-{purchase_id}-{int(amount_cents)}",
                **params,
            )
        except stripe.APIConnectionError as e:
            logger.error("Stripe unreachable creating payment intent",
                         purchase_id=purchase_id, provider_message=str(e))
            raise GatewayError("Payment provider is unreachable, please try again",
                               code="PAYMENT_INTENT_CREATION_FAILED",
                               provider_message=str(e))
        except stripe.StripeError as e:
            msg = getattr(e, "user_message", None) or str(e)
            logger.error("Stripe rejected payment intent",
                         purchase_id=purchase_id, provider_message=msg,
                         stripe_code=getattr(e, "code", None))
            raise GatewayError("Payment could not be set up",
                               code="PAYMENT_INTENT_CREATION_FAILED",
                               provider_message=msg)

        logger.info("Created payment intent", purchase_id=purchase_id,
                    payment_intent_id=intent.id, amount=intent.amount)
        return PaymentIntentHandle(
            provider_payment_id=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            currency=intent.currency,
            status=intent.status,
        )

    def retrieve_payment_intent(self, provider_payment_id: str) -> PaymentIntentState:
        """Query the current provider-side state of a payment intent."""
        self._require_key()
        try:
            intent = stripe.PaymentIntent.retrieve(provider_payment_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            msg = getattr(e, "user_message", None) or str(e)
            logger.error("Stripe payment intent retrieval failed",
                         payment_intent_id=provider_payment_id, provider_message=msg)
            raise GatewayError("Payment status could not be retrieved",
                               code="PAYMENT_STATUS_UNAVAILABLE",
                               provider_message=msg)

        metadata = intent.metadata or {}
        return PaymentIntentState(
            provider_payment_id=intent.id,
            status=intent.status,
            amount=intent.amount,
            currency=intent.currency,
            metadata=metadata.to_dict() if hasattr(metadata, "to_dict") else dict(metadata),
            has_failed_attempt=bool(getattr(intent, "last_payment_error", None)),
        )

    def parse_webhook(self, payload: bytes, sig_header: Optional[str]) -> WebhookEvent:
        """
        Verify ``sig_header`` over the raw ``payload`` bytes and return the event.

        Raises SignatureError when the secret is not configured, the header is
        missing, the signature does not match, or the payload is not JSON.
        """
        if not self.webhook_secret:
            raise SignatureError("Webhook signing secret not configured")
        if not sig_header:
            raise SignatureError("Missing Stripe-Signature header")

        try:
            text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
        except UnicodeDecodeError:
            raise SignatureError("Invalid payload")

        try:
            stripe.WebhookSignature.verify_header(
                text, sig_header, self.webhook_secret, WEBHOOK_TOLERANCE_SECONDS)
        except stripe.SignatureVerificationError as e:
            raise SignatureError(f"Invalid signature: {e}")

        try:
            event = json.loads(text)
        except ValueError:
            raise SignatureError("Invalid payload")

        return WebhookEvent(
            event_id=event.get("id", ""),
            event_type=event.get("type", ""),
            data_object=(event.get("data") or {}).get("object") or {},
        )
