# -*- coding: utf-8 -*-
"""Read-only access to the course catalog for the purchase workflow."""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from detailers.infra.db import db
from detailers.models.course import Course


def to_minor_units(price: Decimal) -> int:
    """Convert a decimal price in major units to integer cents (49.99 -> 4999)."""
    return int((Decimal(price) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class CourseCatalog:

    def get_course(self, course_id: str) -> Optional[Course]:
        return db.session.get(Course, course_id)

    def get_purchasable_course(self, course_id: str) -> Optional[Course]:
        """Return the course only if it exists and is published."""
        course = self.get_course(course_id)
        if course is None or not course.is_published:
            return None
        return course

    def other_courses_in_series(self, course: Course) -> List[Course]:
        """Published courses sharing ``course``'s video series, excluding it."""
        series = (course.video_series or "").strip()
        if not series:
            return []
        return (
            Course.query
            .filter(Course.video_series == series,
                    Course.is_published.is_(True),
                    Course.course_id != course.course_id)
            .order_by(Course.video_part.asc())
            .all()
        )
