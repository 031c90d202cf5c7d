# -*- coding: utf-8 -*-
# detailers/schemas/purchase.py
import re

from marshmallow import EXCLUDE, Schema, fields, post_load, pre_load, validate
from marshmallow import ValidationError as MarshmallowValidationError

from detailers.errors import ValidationError
from detailers.models.purchase import PaymentStatus

# digits with optional leading +, separators allowed; 7-15 digits (E.164 max)
_PHONE_RE = re.compile(r"^\+?[0-9(][0-9 ().\-]{5,22}$")


def _validate_phone(value: str) -> None:
    digits = re.sub(r"\D", "", value)
    if not _PHONE_RE.match(value) or not 7 <= len(digits) <= 15:
        raise MarshmallowValidationError("Customer phone must be a valid phone number")


class PurchaseCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    course_id = fields.UUID(required=True, data_key="courseId",
                            error_messages={"invalid_uuid": "Course ID must be a valid UUID"})
    customer_name = fields.String(
        required=True, data_key="customerName",
        validate=validate.Length(min=2, max=255,
                                 error="Customer name must be between 2 and 255 characters"))
    customer_email = fields.Email(required=True, data_key="customerEmail",
                                  validate=validate.Length(max=255),
                                  error_messages={"invalid": "Customer email must be a valid email address"})
    customer_phone = fields.String(load_default=None, allow_none=True, data_key="customerPhone",
                                   validate=_validate_phone)

    @pre_load
    def strip_text(self, data, **kwargs):
        # trimmed before validation, so "  A " fails the length check
        if not isinstance(data, dict):
            return data
        return {k: v.strip() if k in ("customerName", "customerEmail", "customerPhone") and isinstance(v, str) else v
                for k, v in data.items()}

    @post_load
    def normalize(self, data, **kwargs):
        data["course_id"] = str(data["course_id"])
        data["customer_email"] = data["customer_email"].strip().lower()
        return data


class PaymentIntentSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    purchase_id = fields.UUID(required=True, data_key="purchaseId",
                              error_messages={"invalid_uuid": "Purchase ID must be a valid UUID"})

    @post_load
    def to_str(self, data, **kwargs):
        data["purchase_id"] = str(data["purchase_id"])
        return data


class PaymentStatusSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    payment_status = fields.String(
        required=True, data_key="paymentStatus",
        validate=validate.OneOf(PaymentStatus.values(), error="Invalid payment status"))
    payment_method = fields.String(load_default=None, allow_none=True, data_key="paymentMethod",
                                   validate=validate.Length(max=50))
    transaction_id = fields.String(load_default=None, allow_none=True, data_key="transactionId",
                                   validate=validate.Length(max=255))


def load_or_raise(schema: Schema, data: dict) -> dict:
    """Load ``data`` with ``schema``; marshmallow errors become ValidationError."""
    try:
        return schema.load(data)
    except MarshmallowValidationError as e:
        raise ValidationError("Validation failed", details=e.messages)
