# -*- coding: utf-8 -*-
from detailers.infra.db import db

from .course import Course, Instructor
from .purchase import PaymentStatus, Purchase
from .user import User, UserRole

__all__ = ["db", "Course", "Instructor", "PaymentStatus", "Purchase", "User", "UserRole"]
