# -*- coding: utf-8 -*-
"""
Stripe webhook endpoint tests.

Payloads are signed with the real Stripe scheme so the SDK's own verifier runs.
"""
import time
import uuid
from unittest.mock import patch

import pytest

from conftest import sign_stripe_payload, stripe_event
from detailers.models import User
from detailers.routes.payment_webhooks import status_update_for
from detailers.services.payment_gateway import WebhookEvent

WEBHOOK_URL = "/api/payments/webhook"


def post_event(client, payload: bytes, signature=None):
    headers = {"Content-Type": "application/json"}
    if signature is not False:
        headers["Stripe-Signature"] = signature or sign_stripe_payload(payload)
    return client.post(WEBHOOK_URL, data=payload, headers=headers)


def intent_event(event_type, purchase_id, intent_id="pi_123", event_id="evt_1"):
    obj = {"id": intent_id, "object": "payment_intent", "metadata": {}}
    if purchase_id:
        obj["metadata"]["purchase_id"] = purchase_id
    return stripe_event(event_type, obj, event_id=event_id)


class TestSignature:

    def test_invalid_signature_rejected(self, client, service, make_purchase):
        purchase = make_purchase()
        payload = intent_event("payment_intent.succeeded", purchase.purchase_id)

        with patch.object(service, "update_payment_status") as update:
            resp = post_event(client, payload, signature="t=123,v1=deadbeef")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_SIGNATURE"
        update.assert_not_called()

    def test_missing_header_rejected(self, client, service, make_purchase):
        payload = intent_event("payment_intent.succeeded", make_purchase().purchase_id)

        with patch.object(service, "update_payment_status") as update:
            resp = post_event(client, payload, signature=False)

        assert resp.status_code == 400
        update.assert_not_called()

    def test_non_utf8_body_rejected(self, client, service):
        with patch.object(service, "update_payment_status") as update:
            resp = post_event(client, b"\xff\xfe\x00garbage", signature="t=1,v1=deadbeef")

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_SIGNATURE"
        update.assert_not_called()

    def test_tampered_body_rejected(self, client, service, make_purchase):
        purchase = make_purchase()
        signed = intent_event("payment_intent.payment_failed", purchase.purchase_id)
        sent = intent_event("payment_intent.succeeded", purchase.purchase_id)

        with patch.object(service, "update_payment_status") as update:
            resp = post_event(client, sent, signature=sign_stripe_payload(signed))

        assert resp.status_code == 400
        update.assert_not_called()

    def test_wrong_secret_rejected(self, client, make_purchase):
        payload = intent_event("payment_intent.succeeded", make_purchase().purchase_id)
        resp = post_event(client, payload, signature=sign_stripe_payload(payload, secret="whsec_other"))
        assert resp.status_code == 400

    def test_old_timestamp_rejected(self, client, make_purchase):
        payload = intent_event("payment_intent.succeeded", make_purchase().purchase_id)
        old = sign_stripe_payload(payload, timestamp=time.time() - 3600)
        resp = post_event(client, payload, signature=old)
        assert resp.status_code == 400

    def test_unconfigured_secret_fails_closed(self, app, client, service, make_purchase):
        app.extensions["payment_gateway"].webhook_secret = ""
        payload = intent_event("payment_intent.succeeded", make_purchase().purchase_id)

        with patch.object(service, "update_payment_status") as update:
            resp = post_event(client, payload)

        assert resp.status_code == 400
        update.assert_not_called()


class TestEvents:

    def test_succeeded_marks_paid(self, client, service, make_purchase, notifier):
        purchase = make_purchase()

        resp = post_event(client, intent_event("payment_intent.succeeded", purchase.purchase_id))

        assert resp.status_code == 200
        assert resp.get_json() == {"received": True}
        updated = service.get_purchase(purchase.purchase_id)
        assert updated.payment_status == "PAID"
        assert updated.payment_method == "stripe"
        assert updated.transaction_id == "pi_123"
        assert "purchase_confirmation" in notifier.kinds()

    def test_duplicate_delivery_is_idempotent(self, client, make_purchase, notifier):
        purchase = make_purchase()
        payload = intent_event("payment_intent.succeeded", purchase.purchase_id)

        first = post_event(client, payload)
        second = post_event(client, payload)

        assert first.status_code == second.status_code == 200
        assert User.query.filter_by(email=purchase.customer_email).count() == 1
        assert notifier.kinds().count("purchase_confirmation") == 1
        assert notifier.kinds().count("credentials") == 1

    def test_payment_failed(self, client, service, make_purchase):
        purchase = make_purchase()
        resp = post_event(client, intent_event("payment_intent.payment_failed", purchase.purchase_id))
        assert resp.status_code == 200
        assert service.get_purchase(purchase.purchase_id).payment_status == "FAILED"

    def test_canceled(self, client, service, make_purchase):
        purchase = make_purchase()
        resp = post_event(client, intent_event("payment_intent.canceled", purchase.purchase_id))
        assert resp.status_code == 200
        assert service.get_purchase(purchase.purchase_id).payment_status == "CANCELLED"

    def test_charge_refunded(self, client, service, make_purchase):
        purchase = make_purchase()
        service.update_payment_status(purchase.purchase_id, "PAID", "stripe", "pi_123")
        charge = {"id": "ch_1", "object": "charge", "payment_intent": "pi_123",
                  "amount": 4999, "amount_refunded": 4999, "refunded": True,
                  "metadata": {"purchase_id": purchase.purchase_id}}

        resp = post_event(client, stripe_event("charge.refunded", charge))

        assert resp.status_code == 200
        updated = service.get_purchase(purchase.purchase_id)
        assert updated.payment_status == "REFUNDED"
        assert updated.transaction_id == "pi_123"

    def test_partial_refund_keeps_access(self, client, service, make_purchase):
        purchase = make_purchase()
        service.update_payment_status(purchase.purchase_id, "PAID", "stripe", "pi_123")
        charge = {"id": "ch_1", "object": "charge", "payment_intent": "pi_123",
                  "amount": 4999, "amount_refunded": 500, "refunded": False,
                  "metadata": {"purchase_id": purchase.purchase_id}}

        with patch.object(service, "update_payment_status") as update:
            resp = post_event(client, stripe_event("charge.refunded", charge))

        assert resp.status_code == 200
        assert resp.get_json() == {"received": True}
        update.assert_not_called()
        assert service.get_purchase(purchase.purchase_id).payment_status == "PAID"
        assert client.get(f"/api/guest-course-purchases/access/{purchase.access_code}").status_code == 200

    def test_stale_failure_after_paid_acknowledged(self, client, service, make_purchase):
        purchase = make_purchase()
        post_event(client, intent_event("payment_intent.succeeded", purchase.purchase_id))

        resp = post_event(client, intent_event("payment_intent.payment_failed", purchase.purchase_id,
                                               event_id="evt_2"))

        assert resp.status_code == 200
        assert service.get_purchase(purchase.purchase_id).payment_status == "PAID"

    def test_unknown_event_type_ignored(self, client, service, make_purchase):
        payload = intent_event("payment_intent.created", make_purchase().purchase_id)

        with patch.object(service, "update_payment_status") as update:
            resp = post_event(client, payload)

        assert resp.status_code == 200
        update.assert_not_called()

    def test_event_without_purchase_id_ignored(self, client, service):
        with patch.object(service, "update_payment_status") as update:
            resp = post_event(client, intent_event("payment_intent.succeeded", None))

        assert resp.status_code == 200
        update.assert_not_called()

    def test_unknown_purchase_acknowledged(self, client):
        resp = post_event(client, intent_event("payment_intent.succeeded", str(uuid.uuid4())))
        assert resp.status_code == 200

    def test_unexpected_error_asks_for_retry(self, client, service, make_purchase):
        payload = intent_event("payment_intent.succeeded", make_purchase().purchase_id)

        with patch.object(service, "update_payment_status", side_effect=RuntimeError("db gone")):
            resp = post_event(client, payload)

        assert resp.status_code == 500
        assert resp.get_json()["error"]["code"] == "WEBHOOK_PROCESSING_FAILED"


@pytest.mark.parametrize("event_type,obj,expected", [
    ("payment_intent.succeeded", {"id": "pi_1", "metadata": {"purchase_id": "p1"}}, ("p1", "PAID", "pi_1")),
    ("payment_intent.payment_failed", {"id": "pi_1", "metadata": {"purchase_id": "p1"}}, ("p1", "FAILED", "pi_1")),
    ("charge.refunded", {"id": "ch_1", "payment_intent": "pi_1", "refunded": True,
                         "metadata": {"purchase_id": "p1"}}, ("p1", "REFUNDED", "pi_1")),
    ("charge.refunded", {"id": "ch_1", "payment_intent": "pi_1", "amount": 4999, "amount_refunded": 4999,
                         "metadata": {"purchase_id": "p1"}}, ("p1", "REFUNDED", "pi_1")),
    ("charge.refunded", {"id": "ch_1", "payment_intent": "pi_1", "amount": 4999, "amount_refunded": 500,
                         "refunded": False, "metadata": {"purchase_id": "p1"}}, None),
    ("charge.refunded", {"id": "ch_1", "metadata": {}}, None),
    ("customer.created", {"id": "cus_1", "metadata": {"purchase_id": "p1"}}, None),
])
def test_status_update_for(event_type, obj, expected):
    event = WebhookEvent(event_id="evt", event_type=event_type, data_object=obj)
    assert status_update_for(event) == expected
