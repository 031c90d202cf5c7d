# -*- coding: utf-8 -*-
"""
Stripe Webhook Handler.

Events handled:
- payment_intent.succeeded: purchase -> PAID (runs fulfillment once)
- payment_intent.payment_failed: purchase -> FAILED
- payment_intent.canceled: purchase -> CANCELLED
- charge.refunded: purchase -> REFUNDED once the charge is fully refunded
  (partial refunds keep the purchase PAID and are acknowledged)

Stripe delivers at least once. Events that cannot change state on a retry
(unknown purchase, stale transition, unrelated type) are acknowledged with
200; unexpected failures return 500 so Stripe retries.
"""
from typing import Optional, Tuple

from flask import Blueprint, current_app, request

from detailers.errors import NotFoundError, SignatureError, TransitionError
from detailers.infra.db import db
from detailers.infra.log import get_logger
from detailers.middleware.errors import error_response
from detailers.models.purchase import PaymentStatus
from detailers.services.metrics import get_metrics_service
from detailers.services.payment_gateway import PROVIDER_NAME, WebhookEvent

logger = get_logger("detailers.webhooks")

payment_webhooks_bp = Blueprint('payment_webhooks', __name__, url_prefix='/api/payments')

EVENT_STATUS = {
    'payment_intent.succeeded': PaymentStatus.PAID.value,
    'payment_intent.payment_failed': PaymentStatus.FAILED.value,
    'payment_intent.canceled': PaymentStatus.CANCELLED.value,
    'charge.refunded': PaymentStatus.REFUNDED.value,
}


def _metadata_purchase_id(obj: dict) -> Optional[str]:
    return (obj.get('metadata') or {}).get('purchase_id')


def _fully_refunded(charge: dict) -> bool:
    if charge.get('refunded') is True:
        return True
    amount = charge.get('amount')
    refunded = charge.get('amount_refunded')
    if isinstance(amount, int) and isinstance(refunded, int):
        return amount > 0 and refunded >= amount
    return False


def status_update_for(event: WebhookEvent) -> Optional[Tuple[str, str, str]]:
    """Map an event to (purchase_id, status, transaction_id), or None to ignore it."""
    status = EVENT_STATUS.get(event.event_type)
    if status is None:
        return None

    obj = event.data_object
    purchase_id = _metadata_purchase_id(obj)
    if not purchase_id:
        return None

    if event.event_type == 'charge.refunded':
        if not _fully_refunded(obj):
            return None
        transaction_id = obj.get('payment_intent') or obj.get('id')
    else:
        transaction_id = obj.get('id')
    return purchase_id, status, transaction_id


def _record(event_type: str, outcome: str):
    metrics = get_metrics_service()
    if metrics:
        metrics.record_webhook(event_type, outcome)


def _ack():
    return {'received': True}, 200


@payment_webhooks_bp.route('/webhook', methods=['POST'])
def payment_webhook():
    # raw bytes: the signature covers the body exactly as sent
    payload = request.get_data()
    sig_header = request.headers.get('Stripe-Signature')
    gateway = current_app.extensions['payment_gateway']

    try:
        event = gateway.parse_webhook(payload, sig_header)
    except SignatureError as e:
        logger.log_webhook_event('unverified', 'rejected', reason=e.message)
        _record('unverified', 'rejected')
        return error_response(e.code, 'Webhook signature verification failed', e.status_code)

    update = status_update_for(event)
    if update is None:
        logger.log_webhook_event(event.event_type, 'ignored', event_id=event.event_id)
        _record(event.event_type, 'ignored')
        return _ack()

    purchase_id, status, transaction_id = update
    try:
        current_app.extensions['purchase_service'].update_payment_status(
            purchase_id, status, payment_method=PROVIDER_NAME, transaction_id=transaction_id)
    except (NotFoundError, TransitionError) as e:
        # a redelivery cannot change this outcome
        logger.log_webhook_event(event.event_type, 'ignored', event_id=event.event_id,
                                 purchase_id=purchase_id, error_code=e.code)
        _record(event.event_type, 'ignored')
        return _ack()
    except Exception:
        db.session.rollback()
        logger.exception("Webhook processing failed", event_id=event.event_id,
                         webhook_type=event.event_type, purchase_id=purchase_id)
        _record(event.event_type, 'failed')
        return error_response('WEBHOOK_PROCESSING_FAILED', 'Webhook processing failed', 500)

    logger.log_webhook_event(event.event_type, 'processed', event_id=event.event_id,
                             purchase_id=purchase_id, payment_status=status)
    _record(event.event_type, 'processed')
    return _ack()
