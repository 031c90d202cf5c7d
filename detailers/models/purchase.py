# detailers/models/purchase.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
import uuid

from sqlalchemy import CheckConstraint
from sqlalchemy.orm import relationship

from detailers.infra.db import db


class PaymentStatus(str, Enum):
    """Payment lifecycle states of a guest course purchase."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"

    @classmethod
    def values(cls):
        return [s.value for s in cls]


class Purchase(db.Model):
    __tablename__ = "guest_course_purchases"
    __table_args__ = (
        CheckConstraint(
            "payment_status IN ('PENDING', 'PAID', 'FAILED', 'REFUNDED', 'CANCELLED')",
            name="ck_guest_course_purchases_status",
        ),
        db.Index("ix_guest_course_purchases_unfulfilled", "payment_status", "fulfilled_at"),
    )

    purchase_id        = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id          = db.Column(db.String(36), db.ForeignKey("courses.course_id", ondelete="CASCADE"),
                                   nullable=False, index=True)
    customer_name      = db.Column(db.String(255), nullable=False)
    customer_email     = db.Column(db.String(255), nullable=False, index=True)
    customer_phone     = db.Column(db.String(50), nullable=True)
    course_price       = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))

    payment_status     = db.Column(db.String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)
    payment_method     = db.Column(db.String(50), nullable=True)
    transaction_id     = db.Column(db.String(255), nullable=True)
    payment_intent_id  = db.Column(db.String(255), nullable=True, index=True)

    access_code        = db.Column(db.String(50), unique=True, nullable=False, index=True)
    is_active          = db.Column(db.Boolean, default=True, nullable=False)

    # set once the first PAID transition has issued credentials
    fulfilled_at         = db.Column(db.DateTime, nullable=True)
    fulfillment_attempts = db.Column(db.Integer, default=0, nullable=False)

    created_at         = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at         = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    course = relationship("Course", lazy="joined")

    @property
    def status(self) -> PaymentStatus:
        return PaymentStatus(self.payment_status)

    def to_dict(self, include_course: bool = True):
        data = {
            "purchase_id": self.purchase_id,
            "course_id": self.course_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "course_price": str(self.course_price) if self.course_price is not None else None,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "transaction_id": self.transaction_id,
            "access_code": self.access_code,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_course and self.course is not None:
            data["course"] = self.course.to_dict()
        return data

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Purchase {self.purchase_id} {self.payment_status}>"
