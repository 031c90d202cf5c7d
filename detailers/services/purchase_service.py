# -*- coding: utf-8 -*-
"""
Guest Purchase Service

Handles the business logic of guest course purchases: creating a purchase,
setting up payment with the payment gateway, applying payment status changes
and, on the first PAID transition, fulfilling the purchase (account, series
unlock, emails).

Status changes are written with a conditional UPDATE whose WHERE clause lists
the statuses the target may be reached from. Only the request whose UPDATE
matched a row runs fulfillment, so duplicate webhook deliveries and concurrent
status polls cannot fulfill a purchase twice.
"""
import secrets
import string
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func

from detailers.errors import (
    AuthorizationError,
    DuplicateError,
    GatewayError,
    NotFoundError,
    TransitionError,
    ValidationError,
)
from detailers.infra.db import db
from detailers.infra.log import get_logger
from detailers.models.purchase import PaymentStatus, Purchase
from detailers.models.user import User
from detailers.schemas.purchase import PurchaseCreateSchema, load_or_raise
from detailers.services.course_catalog import CourseCatalog, to_minor_units
from detailers.services.credential_issuer import CredentialIssuer, IssuedCredentials
from detailers.services.metrics import get_metrics_service
from detailers.services.notifier import Notifier
from detailers.services.payment_gateway import PROVIDER_NAME, PaymentIntentHandle, StripeGateway

logger = get_logger("detailers.purchases")

ACCESS_CODE_ALPHABET = string.ascii_uppercase + string.digits
ACCESS_CODE_LENGTH = 12
ACCESS_CODE_MAX_ATTEMPTS = 5

SERIES_UNLOCK_METHOD = "SERIES_UNLOCK"

_S = PaymentStatus
ALLOWED_TRANSITIONS = {
    _S.PENDING.value: {_S.PAID.value, _S.FAILED.value, _S.CANCELLED.value},
    _S.PAID.value: {_S.REFUNDED.value},
    _S.FAILED.value: {_S.PAID.value, _S.CANCELLED.value},
    _S.REFUNDED.value: set(),
    _S.CANCELLED.value: set(),
}

# provider intent status -> purchase status; None leaves the purchase alone
_PROVIDER_STATUS_MAP = {
    "succeeded": _S.PAID.value,
    "canceled": _S.CANCELLED.value,
}


def generate_access_code() -> str:
    return "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(ACCESS_CODE_LENGTH))


def allowed_prior_statuses(target: str) -> List[str]:
    """Statuses from which ``target`` may be reached, in a stable order."""
    return [s for s in PaymentStatus.values() if target in ALLOWED_TRANSITIONS[s]]


def is_transition_allowed(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class PurchaseService:
    """Orchestrates the guest purchase, payment and fulfillment workflow."""

    def __init__(
        self,
        gateway: StripeGateway,
        catalog: CourseCatalog,
        issuer: CredentialIssuer,
        notifier: Notifier,
    ):
        self.gateway = gateway
        self.catalog = catalog
        self.issuer = issuer
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Purchases
    # ------------------------------------------------------------------

    def _unused_access_code(self) -> str:
        for _ in range(ACCESS_CODE_MAX_ATTEMPTS):
            code = generate_access_code()
            if Purchase.query.filter_by(access_code=code).first() is None:
                return code
        logger.error("Access code retry budget exhausted", attempts=ACCESS_CODE_MAX_ATTEMPTS)
        raise DuplicateError("Could not generate a unique access code",
                             code="ACCESS_CODE_GENERATION_FAILED")

    def create_purchase(
        self,
        course_id: str,
        customer_name: str,
        customer_email: str,
        customer_phone: Optional[str] = None,
    ) -> Purchase:
        """
        Create a PENDING purchase for a published course.

        Raises:
            ValidationError: malformed course id, name, email or phone
            NotFoundError: course missing or unpublished
            AuthorizationError: an account for the email exists and is deactivated
            DuplicateError: no unique access code within the retry budget
        """
        data = load_or_raise(PurchaseCreateSchema(), {
            "courseId": course_id,
            "customerName": customer_name,
            "customerEmail": customer_email,
            "customerPhone": customer_phone,
        })

        course = self.catalog.get_purchasable_course(data["course_id"])
        if course is None:
            raise NotFoundError("Course not found or not available for purchase",
                                code="COURSE_NOT_FOUND")

        user = User.query.filter_by(email=data["customer_email"]).first()
        if user is not None and not user.is_active:
            logger.log_security_event("blocked_customer_purchase", severity="warning",
                                      user_id=user.user_id, course_id=course.course_id)
            raise AuthorizationError("This account cannot make purchases", code="USER_BLOCKED")

        purchase = Purchase(
            course_id=course.course_id,
            customer_name=data["customer_name"],
            customer_email=data["customer_email"],
            customer_phone=data.get("customer_phone"),
            course_price=course.price,
            payment_status=PaymentStatus.PENDING.value,
            access_code=self._unused_access_code(),
            is_active=True,
        )
        db.session.add(purchase)
        db.session.commit()

        logger.log_purchase_event("created", purchase.purchase_id, course_id=course.course_id)
        metrics = get_metrics_service()
        if metrics:
            metrics.record_purchase_created()
        return purchase

    def get_purchase(self, purchase_id: str) -> Purchase:
        # ids are stored as lower-case UUID strings
        purchase = db.session.get(Purchase, str(purchase_id).strip().lower())
        if purchase is None:
            raise NotFoundError("Purchase not found", code="PURCHASE_NOT_FOUND")
        return purchase

    def get_purchase_by_access_code(self, access_code: str) -> Optional[Purchase]:
        """Active purchase with this access code, or None."""
        if not access_code:
            return None
        return Purchase.query.filter_by(
            access_code=access_code.strip().upper(), is_active=True).first()

    def list_purchases(self, course_id: Optional[str] = None,
                       payment_status: Optional[str] = None) -> List[Purchase]:
        query = Purchase.query
        if course_id:
            query = query.filter(Purchase.course_id == course_id)
        if payment_status:
            if payment_status not in PaymentStatus.values():
                raise ValidationError("Invalid payment status", code="INVALID_PAYMENT_STATUS",
                                      details={"allowed": PaymentStatus.values()})
            query = query.filter(Purchase.payment_status == payment_status)
        return query.order_by(Purchase.created_at.desc()).all()

    def get_purchased_courses_by_email(self, email: str) -> List[Purchase]:
        """PAID, active purchases of ``email``, newest first."""
        return (
            Purchase.query
            .filter(Purchase.customer_email == (email or "").strip().lower(),
                    Purchase.payment_status == PaymentStatus.PAID.value,
                    Purchase.is_active.is_(True))
            .order_by(Purchase.created_at.desc())
            .all()
        )

    def purchase_stats(self) -> Dict[str, Any]:
        counts = dict(
            db.session.query(Purchase.payment_status, func.count(Purchase.purchase_id))
            .group_by(Purchase.payment_status)
            .all()
        )
        revenue = (
            db.session.query(func.sum(Purchase.course_price))
            .filter(Purchase.payment_status == PaymentStatus.PAID.value)
            .scalar()
        )
        return {
            "total_purchases": sum(counts.values()),
            "pending_purchases": counts.get(PaymentStatus.PENDING.value, 0),
            "paid_purchases": counts.get(PaymentStatus.PAID.value, 0),
            "failed_purchases": counts.get(PaymentStatus.FAILED.value, 0),
            "refunded_purchases": counts.get(PaymentStatus.REFUNDED.value, 0),
            "cancelled_purchases": counts.get(PaymentStatus.CANCELLED.value, 0),
            "total_revenue": str(Decimal(str(revenue or 0)).quantize(Decimal("0.01"))),
        }

    def delete_purchase(self, purchase_id: str) -> None:
        purchase = self.get_purchase(purchase_id)
        db.session.delete(purchase)
        db.session.commit()
        logger.log_purchase_event("deleted", purchase_id)

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def create_payment_intent(self, purchase_id: str) -> PaymentIntentHandle:
        """
        Ask the gateway for a payment intent priced from the catalog.

        The provider intent id is recorded on the purchase; the purchase status
        is only ever changed by update_payment_status.
        """
        purchase = self.get_purchase(purchase_id)

        if purchase.payment_status == PaymentStatus.PAID.value:
            raise ValidationError("This purchase has already been paid",
                                  code="PAYMENT_ALREADY_COMPLETED")
        if purchase.payment_status in (PaymentStatus.REFUNDED.value, PaymentStatus.CANCELLED.value):
            raise ValidationError(f"Cannot pay for a {purchase.payment_status.lower()} purchase",
                                  code="INVALID_PURCHASE_STATE")

        course = self.catalog.get_course(purchase.course_id)
        if course is None:
            raise NotFoundError("Course not found", code="COURSE_NOT_FOUND")

        amount = to_minor_units(course.price or 0)
        if amount <= 0:
            raise ValidationError("This course is free and does not require payment",
                                  code="FREE_COURSE")

        handle = self.gateway.create_payment_intent(
            amount_cents=amount,
            purchase_id=purchase.purchase_id,
            customer_email=purchase.customer_email,
            description=f"Course purchase: {course.title}",
            metadata={"course_id": course.course_id},
        )

        purchase.payment_intent_id = handle.provider_payment_id
        db.session.commit()
        logger.log_purchase_event("payment_intent_created", purchase.purchase_id,
                                  payment_intent_id=handle.provider_payment_id, amount=amount)
        return handle

    def _fill_missing_payment_details(self, purchase: Purchase, payment_method: Optional[str],
                                      transaction_id: Optional[str]) -> Purchase:
        changed = False
        if payment_method and not purchase.payment_method:
            purchase.payment_method = payment_method
            changed = True
        if transaction_id and not purchase.transaction_id:
            purchase.transaction_id = transaction_id
            changed = True
        if changed:
            db.session.commit()
        return purchase

    def update_payment_status(
        self,
        purchase_id: str,
        new_status: str,
        payment_method: Optional[str] = None,
        transaction_id: Optional[str] = None,
    ) -> Purchase:
        """
        Move a purchase to ``new_status``.

        A repeated status is a no-op (missing method / transaction id are filled
        in). A status the current one cannot reach raises TransitionError. The
        call that moves the purchase to PAID runs fulfillment; fulfillment errors
        are logged and never reach the caller.
        """
        if new_status not in PaymentStatus.values():
            raise ValidationError("Invalid payment status", code="INVALID_PAYMENT_STATUS",
                                  details={"allowed": PaymentStatus.values()})

        purchase = self.get_purchase(purchase_id)
        current = purchase.payment_status

        if current == new_status:
            return self._fill_missing_payment_details(purchase, payment_method, transaction_id)
        if not is_transition_allowed(current, new_status):
            raise TransitionError(
                f"Cannot change payment status from {current} to {new_status}",
                details={"from": current, "to": new_status})

        values = {"payment_status": new_status, "updated_at": datetime.utcnow()}
        if payment_method is not None:
            values["payment_method"] = payment_method
        if transaction_id is not None:
            values["transaction_id"] = transaction_id

        matched = (
            Purchase.query
            .filter(Purchase.purchase_id == purchase.purchase_id,
                    Purchase.payment_status.in_(allowed_prior_statuses(new_status)))
            .update(values, synchronize_session=False)
        )
        db.session.commit()

        if not matched:
            # another writer moved the row between our read and our update
            db.session.expire_all()
            purchase = self.get_purchase(purchase_id)
            if purchase.payment_status == new_status:
                return self._fill_missing_payment_details(purchase, payment_method, transaction_id)
            raise TransitionError(
                f"Cannot change payment status from {purchase.payment_status} to {new_status}",
                details={"from": purchase.payment_status, "to": new_status})

        db.session.refresh(purchase)
        logger.log_purchase_event("status_changed", purchase.purchase_id,
                                  from_status=current, to_status=new_status)
        metrics = get_metrics_service()
        if metrics:
            metrics.record_transition(current, new_status)

        if new_status == PaymentStatus.PAID.value:
            try:
                self.fulfill(purchase)
            except Exception:
                db.session.rollback()
                logger.exception("Fulfillment failed; left for reconciliation",
                                 purchase_id=purchase.purchase_id)
        return purchase

    def refresh_payment_status(self, purchase_id: str) -> Purchase:
        """Pull the intent state from the provider and apply it if it maps to a status."""
        purchase = self.get_purchase(purchase_id)
        if not purchase.payment_intent_id:
            return purchase

        state = self.gateway.retrieve_payment_intent(purchase.payment_intent_id)
        intent_purchase_id = state.metadata.get("purchase_id")
        if intent_purchase_id and intent_purchase_id != purchase.purchase_id:
            logger.warning("Payment intent belongs to another purchase",
                           purchase_id=purchase.purchase_id,
                           payment_intent_id=state.provider_payment_id)
            return purchase

        target = _PROVIDER_STATUS_MAP.get(state.status)
        if state.status == "requires_payment_method" and state.has_failed_attempt:
            target = PaymentStatus.FAILED.value
        if target is None or target == purchase.payment_status:
            return purchase

        try:
            return self.update_payment_status(purchase.purchase_id, target,
                                              payment_method=PROVIDER_NAME,
                                              transaction_id=state.provider_payment_id)
        except TransitionError as e:
            logger.info("Provider state not applied", purchase_id=purchase.purchase_id,
                        provider_status=state.status, reason=e.message)
            return self.get_purchase(purchase_id)

    # ------------------------------------------------------------------
    # Fulfillment
    # ------------------------------------------------------------------

    def fulfill(self, purchase: Purchase) -> bool:
        """
        Issue credentials, unlock the rest of the series and send emails.

        Returns False when credential issuance fails (``fulfilled_at`` stays
        NULL) or the purchase could not be claimed. An account created by a
        run that loses the claim still gets its credentials email.
        """
        try:
            credentials = self.issuer.find_or_create_user_for_purchase(
                purchase.customer_email, purchase.customer_name)
        except Exception:
            db.session.rollback()
            logger.exception("Credential issuance failed", purchase_id=purchase.purchase_id)
            return False

        try:
            claimed = (
                Purchase.query
                .filter(Purchase.purchase_id == purchase.purchase_id,
                        Purchase.fulfilled_at.is_(None))
                .update({"fulfilled_at": datetime.utcnow()}, synchronize_session=False)
            )
            db.session.commit()
        except Exception:
            db.session.rollback()
            logger.exception("Fulfillment claim failed", purchase_id=purchase.purchase_id)
            claimed = 0

        if not claimed:
            # a new plaintext password exists only here; no later run can resend it
            if credentials.has_new_password:
                self._send_new_credentials(purchase, credentials)
            logger.info("Purchase not claimed for fulfillment", purchase_id=purchase.purchase_id,
                        credentials_sent=credentials.has_new_password)
            return False
        db.session.refresh(purchase)

        try:
            self.unlock_series_courses(purchase)
        except Exception:
            db.session.rollback()
            logger.exception("Series unlock failed", purchase_id=purchase.purchase_id)

        self._notify_paid(purchase, credentials)
        logger.log_purchase_event("fulfilled", purchase.purchase_id,
                                  user_id=credentials.user_id, new_account=credentials.created)
        return True

    def unlock_series_courses(self, purchase: Purchase) -> List[Purchase]:
        """Grant free PAID purchases for the other published courses of the series."""
        course = purchase.course or self.catalog.get_course(purchase.course_id)
        if course is None:
            return []
        others = self.catalog.other_courses_in_series(course)
        if not others:
            return []

        owned = {
            row.course_id for row in
            db.session.query(Purchase.course_id)
            .filter(Purchase.customer_email == purchase.customer_email,
                    Purchase.payment_status == PaymentStatus.PAID.value,
                    Purchase.is_active.is_(True))
        }

        unlocked = []
        now = datetime.utcnow()
        for other in others:
            if other.course_id in owned:
                continue
            unlocked.append(Purchase(
                course_id=other.course_id,
                customer_name=purchase.customer_name,
                customer_email=purchase.customer_email,
                customer_phone=purchase.customer_phone,
                course_price=Decimal("0"),
                payment_status=PaymentStatus.PAID.value,
                payment_method=SERIES_UNLOCK_METHOD,
                transaction_id=f"series-unlock-{purchase.purchase_id}",
                access_code=self._unused_access_code(),
                is_active=True,
                fulfilled_at=now,
            ))

        if unlocked:
            db.session.add_all(unlocked)
            db.session.commit()
            logger.log_purchase_event("series_unlocked", purchase.purchase_id,
                                      series=course.video_series,
                                      unlocked_course_ids=[p.course_id for p in unlocked])
        return unlocked

    def _best_effort(self, kind: str, purchase_id: str, send: Callable[..., bool], **kwargs) -> bool:
        try:
            sent = send(**kwargs)
        except Exception:
            logger.exception("Email raised", kind=kind, purchase_id=purchase_id)
            return False
        if not sent:
            logger.warning("Email not delivered", kind=kind, purchase_id=purchase_id)
        return bool(sent)

    def _send_new_credentials(self, purchase: Purchase, credentials: IssuedCredentials) -> bool:
        course = purchase.course
        return self._best_effort(
            "credentials", purchase.purchase_id, self.notifier.send_credentials,
            customer_email=credentials.email,
            customer_name=purchase.customer_name,
            username=credentials.username,
            plaintext_password=credentials.plaintext_password,
            course_title=course.title if course else "your course",
            access_code=purchase.access_code,
        )

    def _notify_paid(self, purchase: Purchase, credentials: IssuedCredentials) -> None:
        course = purchase.course
        title = course.title if course else "your course"
        instructor = course.instructor if course else None

        self._best_effort(
            "purchase_confirmation", purchase.purchase_id, self.notifier.send_purchase_confirmation,
            customer_email=purchase.customer_email,
            customer_name=purchase.customer_name,
            course_title=title,
            course_price=purchase.course_price,
            access_code=purchase.access_code,
            instructor_name=instructor.full_name if instructor else None,
        )

        if credentials.has_new_password:
            self._send_new_credentials(purchase, credentials)

        if instructor is not None and instructor.email:
            self._best_effort(
                "instructor_notification", purchase.purchase_id,
                self.notifier.send_instructor_notification,
                instructor_email=instructor.email,
                customer_name=purchase.customer_name,
                customer_email=purchase.customer_email,
                course_title=title,
                course_price=purchase.course_price,
            )

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def send_credentials(self, purchase_id: str) -> Dict[str, Any]:
        """Issue (or reissue) the buyer's password and email it."""
        purchase = self.get_purchase(purchase_id)

        credentials = self.issuer.find_or_create_user_for_purchase(
            purchase.customer_email, purchase.customer_name)
        regenerated = False
        if not credentials.has_new_password:
            credentials = self.issuer.reissue_credentials(purchase.customer_email)
            regenerated = True

        course = purchase.course
        sent = self.notifier.send_credentials(
            customer_email=credentials.email,
            customer_name=purchase.customer_name,
            username=credentials.username,
            plaintext_password=credentials.plaintext_password,
            course_title=course.title if course else "your course",
            access_code=purchase.access_code,
        )
        if not sent:
            raise GatewayError("Credentials were generated but the email could not be sent",
                               code="EMAIL_SEND_FAILED")

        logger.log_purchase_event("credentials_sent", purchase.purchase_id,
                                  user_id=credentials.user_id, regenerated=regenerated)
        return {
            "user_email": credentials.email,
            "username": credentials.username,
            "is_new_user": credentials.created,
            "credentials_regenerated": regenerated,
        }
