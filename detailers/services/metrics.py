# -*- coding: utf-8 -*-
"""
Prometheus metrics.

Each application gets its own CollectorRegistry so that several apps (one per
test) can be created in the same process. HTTP request metrics are recorded by
a before/after request hook; the purchase workflow records its own counters
through get_metrics_service().
"""

import os
import time
import uuid
from typing import Optional
from flask import Flask, request, g, current_app, has_app_context
from prometheus_client import CollectorRegistry, Counter, Histogram
from prometheus_client.exposition import generate_latest


def init_metrics(app: Flask) -> 'MetricsService':
    """Initialize metrics service and endpoints."""
    service = MetricsService(registry=CollectorRegistry())
    app.extensions['metrics'] = service

    if service.enabled:
        @app.before_request
        def _metrics_before_request():
            g.metrics_start_time = time.time()

        @app.after_request
        def _metrics_after_request(response):
            started = getattr(g, 'metrics_start_time', None)
            duration = time.time() - started if started else 0.0
            service.record_http_request(
                route=request.path,
                method=request.method,
                status_code=response.status_code,
                duration_seconds=duration
            )
            return response

        @app.route("/metrics")
        def metrics():
            return generate_latest(service.registry), 200, {
                'Content-Type': 'text/plain; version=0.0.4; charset=utf-8'}

    return service


def get_metrics_service() -> Optional['MetricsService']:
    """Get the metrics service instance from the current app context."""
    if has_app_context():
        return current_app.extensions.get('metrics')
    return None


class MetricsService:
    """Service for managing Prometheus metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.enabled = os.environ.get("DU_METRICS_ENABLED", "true").lower() == "true"
        self.registry = registry if registry is not None else CollectorRegistry()

        if self.enabled:
            self.http_requests_total = Counter(
                "du_http_requests_total",
                "Total number of HTTP requests.",
                ["route", "method", "status"],
                registry=self.registry
            )
            self.http_request_duration_seconds = Histogram(
                "du_http_request_duration_seconds",
                "Duration of HTTP requests in seconds.",
                ["route", "method"],
                registry=self.registry
            )
            self.purchases_created_total = Counter(
                "du_purchases_created_total",
                "Total number of guest course purchases created.",
                registry=self.registry
            )
            self.payment_transitions_total = Counter(
                "du_payment_status_transitions_total",
                "Payment status transitions applied.",
                ["from_status", "to_status"],
                registry=self.registry
            )
            self.webhook_events_total = Counter(
                "du_webhook_events_total",
                "Payment provider webhook events by outcome.",
                ["event_type", "outcome"],
                registry=self.registry
            )
            self.emails_total = Counter(
                "du_emails_total",
                "Transactional emails by kind and outcome.",
                ["kind", "outcome"],
                registry=self.registry
            )

    def record_http_request(self, route: str, method: str, status_code: int, duration_seconds: float):
        if self.enabled:
            normalized_route = self._normalize_route(route)
            self.http_requests_total.labels(
                route=normalized_route, method=method, status=status_code).inc()
            self.http_request_duration_seconds.labels(
                route=normalized_route, method=method).observe(duration_seconds)

    def record_purchase_created(self):
        if self.enabled:
            self.purchases_created_total.inc()

    def record_transition(self, from_status: str, to_status: str):
        if self.enabled:
            self.payment_transitions_total.labels(
                from_status=from_status, to_status=to_status).inc()

    def record_webhook(self, event_type: str, outcome: str):
        if self.enabled:
            self.webhook_events_total.labels(event_type=event_type, outcome=outcome).inc()

    def record_email(self, kind: str, sent: bool):
        if self.enabled:
            self.emails_total.labels(kind=kind, outcome="sent" if sent else "failed").inc()

    def get_metrics(self) -> str:
        if self.enabled:
            return generate_latest(self.registry).decode('utf-8')
        return ""

    def _normalize_route(self, route: str) -> str:
        parts = route.split('/')
        for i, part in enumerate(parts):
            try:
                uuid.UUID(part)
                parts[i] = '{uuid}'
            except (ValueError, AttributeError):
                pass
        # access codes and emails in the path would explode label cardinality
        if len(parts) > 3 and parts[-2] in ('access', 'email'):
            parts[-1] = '{' + parts[-2] + '}'
        return '/'.join(parts)
