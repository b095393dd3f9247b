"""Stripe webhook and verify-payment tests."""

import json

import pytest

from conftest import auth_headers, fake_session_retrieve, stripe_event, stripe_signature
from Enrollment_module.Enrollment_model import Enrollment
from Orders_module.Order_model import Order, OrderStatus
from Payment_module import stripe_service
from Payment_module.Payment_model import WebhookEvent


@pytest.fixture
def headers(student):
    return auth_headers(student)


@pytest.fixture
def pending_order_id(client, headers, courses):
    python_course, _ = courses
    client.post("/cart/add", json={"course_id": python_course.id}, headers=headers)
    response = client.post("/orders/checkout", json={"currency": "INR", "payment_method": "stripe"}, headers=headers)
    return response.json()["data"]["order"]["order_id"]


def session_object(session_id, order_id=None, payment_status="paid", **extra):
    session = {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": payment_status,
        "metadata": {"order_id": str(order_id)} if order_id else {},
    }
    session.update(extra)
    return session


def post_webhook(client, payload, signature=None):
    return client.post(
        "/payments/webhook",
        content=payload,
        headers={
            "Content-Type": "application/json",
            "Stripe-Signature": signature or stripe_signature(payload),
        },
    )


class TestStripeWebhookSignature:
    def test_bad_signature_is_rejected(self, client, db, pending_order_id):
        payload = stripe_event("evt_bad", "checkout.session.completed", session_object("cs_1", pending_order_id))

        response = post_webhook(client, payload, signature=stripe_signature(payload, secret="whsec_wrong"))

        assert response.status_code == 400
        assert db.get(Order, pending_order_id).status == OrderStatus.PENDING
        assert db.query(WebhookEvent).count() == 0

    def test_missing_signature_is_rejected(self, client, pending_order_id):
        payload = stripe_event("evt_nosig", "checkout.session.completed", session_object("cs_1", pending_order_id))
        response = client.post("/payments/webhook", content=payload, headers={"Content-Type": "application/json"})
        assert response.status_code == 400

    def test_tampered_body_is_rejected(self, client, db, pending_order_id):
        payload = stripe_event("evt_t", "checkout.session.completed", session_object("cs_1", pending_order_id))
        signature = stripe_signature(payload)
        tampered = payload.replace('"paid"', '"paid" ')

        response = post_webhook(client, tampered, signature=signature)

        assert response.status_code == 400


class TestStripeOrderEvents:
    def test_completed_session_pays_order(self, client, db, student, pending_order_id):
        payload = stripe_event("evt_1", "checkout.session.completed", session_object("cs_wh_1", pending_order_id))

        response = post_webhook(client, payload)

        assert response.status_code == 200
        db.expire_all()
        order = db.get(Order, pending_order_id)
        assert order.status == OrderStatus.PAID
        assert order.payment_reference == "cs_wh_1"
        enrollments = db.query(Enrollment).filter(Enrollment.user_id == student.id).all()
        assert len(enrollments) == 1
        assert enrollments[0].payment_id == "cs_wh_1"

    def test_duplicate_delivery_enrolls_once(self, client, db, pending_order_id):
        payload = stripe_event("evt_dup", "checkout.session.completed", session_object("cs_dup", pending_order_id))

        assert post_webhook(client, payload).status_code == 200
        assert post_webhook(client, payload).status_code == 200

        db.expire_all()
        assert db.query(Enrollment).count() == 1
        event = db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt_dup").one()
        assert event.status == "processed"
        assert event.attempts == 1

    def test_second_event_for_same_session_is_a_no_op(self, client, db, pending_order_id):
        session = session_object("cs_same", pending_order_id)
        post_webhook(client, stripe_event("evt_a", "checkout.session.completed", session))

        response = post_webhook(client, stripe_event("evt_b", "checkout.session.async_payment_succeeded", session))

        assert response.status_code == 200
        db.expire_all()
        assert db.query(Enrollment).count() == 1
        assert {e.status for e in db.query(WebhookEvent).all()} == {"processed"}

    def test_expired_session_cancels_order(self, client, db, pending_order_id):
        payload = stripe_event(
            "evt_exp", "checkout.session.expired",
            session_object("cs_exp", pending_order_id, payment_status="unpaid"),
        )

        assert post_webhook(client, payload).status_code == 200

        db.expire_all()
        assert db.get(Order, pending_order_id).status == OrderStatus.CANCELLED
        assert db.query(Enrollment).count() == 0

    def test_unpaid_completion_leaves_order_pending(self, client, db, pending_order_id):
        payload = stripe_event(
            "evt_async", "checkout.session.completed",
            session_object("cs_async", pending_order_id, payment_status="unpaid"),
        )

        assert post_webhook(client, payload).status_code == 200

        db.expire_all()
        assert db.get(Order, pending_order_id).status == OrderStatus.PENDING

    def test_success_after_cancel_does_not_enroll(self, client, db, headers, pending_order_id):
        client.post(f"/orders/{pending_order_id}/cancel", headers=headers)
        payload = stripe_event("evt_late", "checkout.session.completed", session_object("cs_late", pending_order_id))

        assert post_webhook(client, payload).status_code == 200

        db.expire_all()
        assert db.get(Order, pending_order_id).status == OrderStatus.CANCELLED
        assert db.query(Enrollment).count() == 0

    def test_processing_error_still_returns_200(self, client, db):
        payload = json.dumps({"id": "evt_broken", "type": "checkout.session.completed"})

        response = post_webhook(client, payload)

        assert response.status_code == 200
        event = db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt_broken").one()
        assert event.status == "failed"
        assert event.error

    def test_unknown_event_type_is_recorded(self, client, db):
        payload = stripe_event("evt_misc", "customer.created", {"id": "cus_1"})

        assert post_webhook(client, payload).status_code == 200
        assert db.query(WebhookEvent).filter(WebhookEvent.event_id == "evt_misc").one().status == "processed"


class TestStripeDirectSessions:
    def test_metadata_enrolls_and_splits_amount(self, client, db, student, courses):
        python_course, sql_course = courses
        session = session_object(
            "cs_direct",
            amount_total=1500,
            currency="usd",
            metadata={"user_id": str(student.id), "course_ids": json.dumps([python_course.id, sql_course.id])},
        )

        response = post_webhook(client, stripe_event("evt_direct", "checkout.session.completed", session))

        assert response.status_code == 200
        enrollments = db.query(Enrollment).order_by(Enrollment.course_id).all()
        assert [e.course_id for e in enrollments] == [python_course.id, sql_course.id]
        assert [e.amount_paid for e in enrollments] == [7.5, 7.5]
        assert {e.currency for e in enrollments} == {"USD"}
        assert {e.payment_id for e in enrollments} == {"cs_direct"}
        assert db.query(Order).count() == 0

    def test_direct_checkout_session_endpoint(self, client, headers, courses, monkeypatch):
        python_course, _ = courses
        captured = {}

        def fake_create(**kwargs):
            captured.update(kwargs)
            return type("Session", (), {"id": "cs_direct_new", "url": "https://checkout.stripe.test/d"})()

        monkeypatch.setattr(stripe_service.stripe.checkout.Session, "create", fake_create)

        response = client.post(
            "/payments/create-checkout-session",
            json={"items": [{"name": "Python Basics", "price": 19.99, "course_id": python_course.id}]},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["data"]["session_id"] == "cs_direct_new"
        assert captured["metadata"]["course_ids"] == json.dumps([python_course.id])
        assert captured["line_items"][0]["price_data"]["unit_amount"] == 1999

    def test_direct_checkout_below_minimum(self, client, headers, courses):
        response = client.post(
            "/payments/create-checkout-session",
            json={"items": [{"name": "Tiny", "price": 0.10, "course_id": courses[0].id}]},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["details"]["minimum"] == 0.5

    def test_direct_checkout_requires_course_id(self, client, headers, monkeypatch):
        def fail_create(**kwargs):
            raise AssertionError("no session should be created")

        monkeypatch.setattr(stripe_service.stripe.checkout.Session, "create", fail_create)

        response = client.post(
            "/payments/create-checkout-session",
            json={"items": [{"name": "Python Basics", "price": 19.99}]},
            headers=headers,
        )

        assert response.status_code == 422
        assert response.json()["details"][0]["field"] == "course_id"


class TestVerifyPayment:
    def test_paid_session_fulfills_order(self, client, db, student, headers, pending_order_id, monkeypatch):
        fake_session_retrieve(
            monkeypatch, payment_status="paid", amount_total=100000, currency="inr",
            metadata={"order_id": str(pending_order_id), "user_id": str(student.id)},
        )

        response = client.post("/payments/verify-payment", json={"session_id": "cs_verify"}, headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["payment"]["order_status"] == "paid"
        assert body["payment"]["currency"] == "INR"
        assert len(body["payment"]["enrollments"]) == 1

        again = client.post("/payments/verify-payment", json={"session_id": "cs_verify"}, headers=headers)
        assert again.json()["payment"]["order_status"] == "paid"
        db.expire_all()
        assert db.query(Enrollment).count() == 1

    def test_unpaid_session(self, client, student, headers, monkeypatch):
        fake_session_retrieve(monkeypatch, payment_status="unpaid", metadata={"user_id": str(student.id)})

        response = client.post("/payments/verify-payment", json={"session_id": "cs_open"}, headers=headers)

        assert response.json() == {"success": False, "payment_status": "unpaid"}

    def test_foreign_session_is_not_found(self, client, other_student, headers, monkeypatch):
        fake_session_retrieve(monkeypatch, payment_status="paid", metadata={"user_id": str(other_student.id)})

        response = client.post("/payments/verify-payment", json={"session_id": "cs_other"}, headers=headers)

        assert response.status_code == 404

    def test_paid_direct_session_enrolls_from_metadata(self, client, db, student, headers, courses, monkeypatch):
        python_course, sql_course = courses
        fake_session_retrieve(
            monkeypatch, payment_status="paid", amount_total=1500, currency="usd",
            metadata={"user_id": str(student.id), "course_ids": json.dumps([python_course.id, sql_course.id])},
        )

        response = client.post("/payments/verify-payment", json={"session_id": "cs_direct_verify"}, headers=headers)

        assert response.status_code == 200
        payment = response.json()["payment"]
        assert payment["order_id"] is None
        assert payment["currency"] == "USD"
        assert sorted(e["course_id"] for e in payment["enrollments"]) == [python_course.id, sql_course.id]
        assert {e.payment_id for e in db.query(Enrollment).all()} == {"cs_direct_verify"}
