# -*- coding: utf-8 -*-
"""Tests for the JSON error envelope."""
import pytest
from flask import Flask
from sqlalchemy.exc import IntegrityError, OperationalError

from detailers.database import db
from detailers.errors import (
    AuthorizationError,
    GatewayError,
    NotFoundError,
    TransitionError,
    ValidationError,
)
from detailers.middleware.errors import register_error_handlers, success_response


@pytest.fixture
def app():
    app = Flask(__name__)
    app.config.update(TESTING=True, SQLALCHEMY_DATABASE_URI="sqlite://")
    db.init_app(app)
    register_error_handlers(app)

    raisers = {
        "validation": ValidationError("Validation failed", details={"customerEmail": ["bad"]}),
        "not-found": NotFoundError("Purchase not found", code="PURCHASE_NOT_FOUND"),
        "forbidden": AuthorizationError("nope"),
        "transition": TransitionError("Cannot change payment status from REFUNDED to PAID"),
        "gateway": GatewayError("Payment could not be set up", code="PAYMENT_INTENT_CREATION_FAILED",
                                provider_message="Your card was declined (sk_live_...)"),
        "integrity": IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")),
        "operational": OperationalError("SELECT", {}, Exception("could not connect")),
        "boom": RuntimeError("secret internals"),
    }

    @app.route("/raise/<kind>")
    def raise_(kind):
        raise raisers[kind]

    @app.route("/ok")
    def ok():
        return success_response({"value": 1}, "fine")

    return app


@pytest.mark.parametrize("kind,status,code", [
    ("validation", 400, "VALIDATION_ERROR"),
    ("not-found", 404, "PURCHASE_NOT_FOUND"),
    ("forbidden", 403, "FORBIDDEN"),
    ("transition", 409, "INVALID_STATUS_TRANSITION"),
    ("gateway", 502, "PAYMENT_INTENT_CREATION_FAILED"),
    ("integrity", 409, "DUPLICATE_ENTRY"),
    ("operational", 503, "DATABASE_UNAVAILABLE"),
    ("boom", 500, "INTERNAL_SERVER_ERROR"),
])
def test_error_envelope(app, kind, status, code):
    resp = app.test_client().get(f"/raise/{kind}")

    assert resp.status_code == status
    body = resp.get_json()
    assert body["success"] is False
    assert body["error"]["code"] == code
    assert body["error"]["message"]


def test_details_are_included(app):
    body = app.test_client().get("/raise/validation").get_json()
    assert body["error"]["details"] == {"customerEmail": ["bad"]}


def test_internals_are_not_leaked(app):
    gateway = app.test_client().get("/raise/gateway").get_data(as_text=True)
    boom = app.test_client().get("/raise/boom").get_data(as_text=True)

    assert "sk_live" not in gateway
    assert "secret internals" not in boom


def test_http_errors_use_envelope(app):
    client = app.test_client()

    missing = client.get("/nowhere")
    assert missing.status_code == 404
    assert missing.get_json()["error"]["code"] == "NOT_FOUND"

    wrong_method = client.post("/ok")
    assert wrong_method.status_code == 405
    assert wrong_method.get_json()["error"]["code"] == "METHOD_NOT_ALLOWED"


def test_success_envelope(app):
    body = app.test_client().get("/ok").get_json()
    assert body == {"success": True, "data": {"value": 1}, "message": "fine"}
