"""Pytest fixtures for the LearnHub backend tests."""

import hashlib
import hmac
import json
import os
import sys
import time
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT_DIR))

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("BASE_CURRENCY", "INR")
os.environ.setdefault("SUPPORTED_CURRENCIES", "INR,USD,EUR")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "rzp_webhook_secret")

import pytest
import stripe
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from database import Base
from deps import get_db, get_exchange_rate_service
from errors import RateUnavailable
from Course_module.Course_model import Course, PendingCourse
from Coupon_module.Coupon_model import Coupon
from Login_module.User.user_model import User
from Login_module.Utils.security import create_access_token

STRIPE_WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
RAZORPAY_KEY_SECRET = os.environ["RAZORPAY_KEY_SECRET"]
RAZORPAY_WEBHOOK_SECRET = os.environ["RAZORPAY_WEBHOOK_SECRET"]


class FakeRateService:
    """Stands in for ExchangeRateService with fixed INR-based rates."""

    def __init__(self, rates=None):
        self.rates = rates or {"USD": 0.012, "EUR": 0.011}
        self.fail = False
        self.calls = []

    def get_rate(self, base, target):
        self.calls.append((base, target))
        if base == target:
            return 1.0
        if self.fail:
            raise RateUnavailable("Rate API request failed: timeout")
        return self.rates[target]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def rate_service():
    return FakeRateService()


@pytest.fixture
def client(session_factory, rate_service):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_exchange_rate_service] = lambda: rate_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def student(db):
    user = User(name="Asha Learner", email="asha@example.com", role="student", is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def other_student(db):
    user = User(name="Ravi Learner", email="ravi@example.com", role="student", is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def instructor(db):
    user = User(name="Meera Rao", email="meera@example.com", role="instructor", is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def courses(db, instructor):
    """Two published courses; the first one was published from a draft."""
    draft = PendingCourse(title="Python Basics (draft)", price=1000.0, instructor_id=instructor.id, status="approved")
    db.add(draft)
    db.flush()

    python_course = Course(
        title="Python Basics", price=1000.0, published=True,
        instructor_id=instructor.id, pending_course_id=draft.id,
    )
    sql_course = Course(title="SQL in Practice", price=500.0, published=True, instructor_id=instructor.id)
    db.add_all([python_course, sql_course])
    db.flush()

    draft.course_id = python_course.id
    db.commit()
    db.refresh(python_course)
    db.refresh(sql_course)
    return python_course, sql_course


@pytest.fixture
def unpublished_course(db, instructor):
    course = Course(title="Rust Preview", price=800.0, published=False, instructor_id=instructor.id)
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


@pytest.fixture
def welcome_coupon(db):
    coupon = Coupon(
        code="WELCOME40",
        description="40% off for new learners",
        discount_percentage=40.0,
        is_active=True,
        max_uses=1000,
        used_count=0,
        minimum_purchase=0.0,
        applicable_courses=[],
        applicable_pending_courses=[],
    )
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


def auth_headers(user):
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


def stripe_signature(payload: str, secret: str = STRIPE_WEBHOOK_SECRET, timestamp=None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def stripe_event(event_id: str, event_type: str, session: dict) -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": session},
    })


def razorpay_signature(message: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def stripe_checkout_session(session_id: str, **values):
    """A real stripe.checkout.Session, shaped like what Session.retrieve returns."""
    return stripe.checkout.Session.construct_from(
        {"id": session_id, "object": "checkout.session", **values},
        os.environ["STRIPE_SECRET_KEY"],
    )


def fake_session_retrieve(monkeypatch, **values):
    """Patch Session.retrieve so lookups go through the real object type."""
    monkeypatch.setattr(
        stripe.checkout.Session, "retrieve",
        lambda session_id, **params: stripe_checkout_session(session_id, **values),
    )
