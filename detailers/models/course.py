"""
Course catalog models.

Only the columns the purchase workflow reads are mapped: pricing, publication
state, the video series used for series unlock, and the instructor who is
notified about purchases.
"""
from datetime import datetime
from decimal import Decimal
import uuid

from sqlalchemy import CheckConstraint
from sqlalchemy.orm import relationship

from detailers.infra.db import db


class Instructor(db.Model):
    __tablename__ = "instructors"

    instructor_id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    courses = relationship("Course", back_populates="instructor")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self):
        return {
            "instructor_id": self.instructor_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
        }


class Course(db.Model):
    __tablename__ = "courses"
    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_courses_price_non_negative"),
    )

    course_id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    thumbnail_url = db.Column(db.Text)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    instructor_id = db.Column(
        db.String(36), db.ForeignKey("instructors.instructor_id", ondelete="SET NULL"), nullable=True)
    duration_hours = db.Column(db.Integer, default=0)
    level = db.Column(db.String(20), default="BEGINNER")
    is_published = db.Column(db.Boolean, default=False, nullable=False, index=True)
    video_series = db.Column(db.String(255), index=True)
    video_part = db.Column(db.Integer, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    instructor = relationship("Instructor", back_populates="courses")

    def to_dict(self):
        return {
            "course_id": self.course_id,
            "title": self.title,
            "description": self.description,
            "thumbnail_url": self.thumbnail_url,
            "price": str(self.price) if self.price is not None else None,
            "duration_hours": self.duration_hours,
            "level": self.level,
            "video_series": self.video_series,
            "video_part": self.video_part,
            "instructor": self.instructor.to_dict() if self.instructor else None,
        }
