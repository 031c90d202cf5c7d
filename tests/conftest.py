import hashlib
import hmac
import json
import os
import tempfile
import time
from decimal import Decimal

import pytest

# Set test environment variables
os.environ["TESTING"] = "true"
os.environ["DU_LOG_JSON"] = "false"

WEBHOOK_SECRET = "whsec_test_secret"
ADMIN_PASSWORD = "AdminPassw0rd"


class RecordingNotifier:
    """Notifier double: records every email instead of calling SendGrid."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.sent = []

    def _record(self, kind, kwargs):
        self.sent.append((kind, kwargs))
        return self.succeed

    def send_purchase_confirmation(self, **kwargs):
        return self._record("purchase_confirmation", kwargs)

    def send_credentials(self, **kwargs):
        return self._record("credentials", kwargs)

    def send_instructor_notification(self, **kwargs):
        return self._record("instructor_notification", kwargs)

    def kinds(self):
        return [kind for kind, _ in self.sent]

    def of_kind(self, kind):
        return [kwargs for k, kwargs in self.sent if k == kind]


def sign_stripe_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Build a Stripe-Signature header the way Stripe does (t=..., v1=HMAC-SHA256)."""
    ts = int(timestamp if timestamp is not None else time.time())
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={signature}"


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }).encode("utf-8")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def app(notifier):
    """Create and configure a new app instance for each test."""
    db_fd, db_path = tempfile.mkstemp()
    from detailers.factory import create_app
    from detailers.database import db

    app = create_app(config={
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "JWT_SECRET_KEY": "test-jwt-secret-key-that-is-long-enough-for-hs256",
        "STRIPE_SECRET_KEY": "sk_test_dummy",
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "FRONTEND_ORIGIN": "https://frontend.test",
    }, notifier=notifier)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def service(app):
    return app.extensions["purchase_service"]


@pytest.fixture
def instructor(app):
    from detailers.database import db
    from detailers.models import Instructor

    instructor = Instructor(first_name="Ada", last_name="Polish", email="ada.instructor@example.com")
    db.session.add(instructor)
    db.session.commit()
    return instructor


@pytest.fixture
def course(app, instructor):
    from detailers.database import db
    from detailers.models import Course

    course = Course(
        title="Paint Correction Fundamentals",
        price=Decimal("49.99"),
        instructor_id=instructor.instructor_id,
        is_published=True,
    )
    db.session.add(course)
    db.session.commit()
    return course


@pytest.fixture
def free_course(app):
    from detailers.database import db
    from detailers.models import Course

    course = Course(title="Intro to Detailing", price=Decimal("0"), is_published=True)
    db.session.add(course)
    db.session.commit()
    return course


@pytest.fixture
def unpublished_course(app):
    from detailers.database import db
    from detailers.models import Course

    course = Course(title="Ceramic Coating (draft)", price=Decimal("99.00"), is_published=False)
    db.session.add(course)
    db.session.commit()
    return course


@pytest.fixture
def series_courses(app):
    """Three published parts of one video series plus an unpublished fourth."""
    from detailers.database import db
    from detailers.models import Course

    courses = [
        Course(title=f"Interior Mastery Part {n}", price=Decimal("29.00"),
               is_published=(n != 4), video_series="Interior Mastery", video_part=n)
        for n in range(1, 5)
    ]
    db.session.add_all(courses)
    db.session.commit()
    return courses


@pytest.fixture
def make_user(app):
    from detailers.database import db
    from detailers.models import User

    def _make(email, role="STUDENT", password=None, is_active=True):
        user = User(email=email, first_name="Test", last_name="User", role=role, is_active=is_active)
        if password:
            user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user

    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user("admin@detailersuni.com", role="ADMIN", password=ADMIN_PASSWORD)


def auth_headers(user) -> dict:
    from detailers.infra.auth import issue_access_token
    return {"Authorization": f"Bearer {issue_access_token(user)}"}


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def make_purchase(service, course):
    def _make(email="buyer@example.com", name="Jamie Buyer", target=None):
        return service.create_purchase(
            course_id=(target or course).course_id,
            customer_name=name,
            customer_email=email,
            customer_phone="+1 555 010 2030",
        )

    return _make
