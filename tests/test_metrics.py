# -*- coding: utf-8 -*-
"""
Test suite for Prometheus metrics.
"""
import os
from unittest.mock import patch

from flask import Flask

from conftest import WEBHOOK_SECRET, sign_stripe_payload, stripe_event
from detailers.services.metrics import MetricsService, get_metrics_service, init_metrics


def _metrics(app):
    return app.extensions["metrics"]


class TestMetricsService:

    def test_each_app_has_its_own_registry(self):
        first, second = Flask("first"), Flask("second")
        init_metrics(first)
        init_metrics(second)

        assert _metrics(first).registry is not _metrics(second).registry

    def test_metrics_disabled(self):
        with patch.dict(os.environ, {"DU_METRICS_ENABLED": "false"}):
            service = MetricsService()

        assert service.enabled is False
        service.record_purchase_created()
        assert service.get_metrics() == ""

    def test_no_service_outside_app_context(self):
        assert get_metrics_service() is None

    def test_route_normalization(self):
        service = MetricsService()
        assert service._normalize_route(
            "/api/guest-course-purchases/3f1c2a6e-8a9b-4d7f-9b2c-1e2d3c4b5a69/payment"
        ) == "/api/guest-course-purchases/{uuid}/payment"
        assert service._normalize_route(
            "/api/guest-course-purchases/access/ABCD1234EFGH"
        ) == "/api/guest-course-purchases/access/{access}"
        assert service._normalize_route(
            "/api/guest-course-purchases/email/a@b.com"
        ) == "/api/guest-course-purchases/email/{email}"


class TestMetricsEndpoint:

    def test_metrics_endpoint(self, client):
        client.get("/healthz")
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.content_type.startswith("text/plain")
        body = response.get_data(as_text=True)
        assert "du_http_requests_total" in body
        assert 'route="/healthz"' in body

    def test_purchase_and_transition_counters(self, app, service, make_purchase):
        registry = _metrics(app).registry
        purchase = make_purchase()
        service.update_payment_status(purchase.purchase_id, "PAID")

        assert registry.get_sample_value("du_purchases_created_total") == 1.0
        assert registry.get_sample_value(
            "du_payment_status_transitions_total",
            {"from_status": "PENDING", "to_status": "PAID"},
        ) == 1.0

    def test_webhook_counter(self, app, client):
        payload = stripe_event("customer.created", {"id": "cus_1"})
        client.post("/api/payments/webhook", data=payload,
                    headers={"Stripe-Signature": sign_stripe_payload(payload, WEBHOOK_SECRET)})

        value = _metrics(app).registry.get_sample_value(
            "du_webhook_events_total", {"event_type": "customer.created", "outcome": "ignored"})
        assert value == 1.0
