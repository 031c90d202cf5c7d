# -*- coding: utf-8 -*-
"""Exception classes for the purchase workflow.

Every error the workflow raises on purpose is one of the classes below. The
error handlers in ``detailers.middleware.errors`` turn them into the
``{"success": false, "error": {...}}`` envelope using ``status_code`` and
``code``.
"""
from typing import Any, Optional


class PurchaseFlowError(Exception):
    """Base exception for all purchase workflow errors."""

    status_code = 500
    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        error = {"code": self.code, "message": self.message}
        if self.details is not None:
            error["details"] = self.details
        return error


class ValidationError(PurchaseFlowError):
    """Raised when input is malformed or missing (400)."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(PurchaseFlowError):
    """Raised when a purchase, course or user does not exist (404)."""
    status_code = 404
    code = "NOT_FOUND"


class AuthorizationError(PurchaseFlowError):
    """Raised when a role or ownership check fails (403)."""
    status_code = 403
    code = "FORBIDDEN"


class DuplicateError(PurchaseFlowError):
    """Raised on a constraint violation that could not be absorbed (409)."""
    status_code = 409
    code = "DUPLICATE_ENTRY"


class TransitionError(PurchaseFlowError):
    """Raised when a payment status change is not allowed from the current status (409)."""
    status_code = 409
    code = "INVALID_STATUS_TRANSITION"


class GatewayError(PurchaseFlowError):
    """Raised when an upstream provider (payments, email) rejects a request or is unreachable (502).

    ``message`` is safe to show to a client; the provider's own message is kept
    in ``provider_message`` for server-side logs only.
    """
    status_code = 502
    code = "PAYMENT_GATEWAY_ERROR"

    def __init__(self, message: str, code: Optional[str] = None,
                 provider_message: Optional[str] = None):
        super().__init__(message, code=code)
        self.provider_message = provider_message


class SignatureError(PurchaseFlowError):
    """Raised when a webhook signature does not verify (400)."""
    status_code = 400
    code = "INVALID_SIGNATURE"
