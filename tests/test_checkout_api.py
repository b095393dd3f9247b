"""API tests for cart checkout, confirmation and order lookup."""

from types import SimpleNamespace

import pytest
import stripe

from conftest import auth_headers, fake_session_retrieve
from Enrollment_module.Enrollment_model import Enrollment
from Orders_module.Order_crud import OrderLine, compute_order_totals
from Orders_module.Order_model import Order, OrderStatus
from Payment_module import stripe_service


@pytest.fixture
def headers(student):
    return auth_headers(student)


def add_to_cart(client, headers, *course_list):
    for course in course_list:
        response = client.post("/cart/add", json={"course_id": course.id}, headers=headers)
        assert response.status_code == 200, response.json()


def checkout(client, headers, currency="INR", payment_method="manual"):
    return client.post(
        "/orders/checkout",
        json={"currency": currency, "payment_method": payment_method},
        headers=headers,
    )


class TestCheckout:
    def test_requires_auth(self, client):
        response = client.post("/orders/checkout", json={"currency": "INR"})
        assert response.status_code in (401, 403)

    def test_builds_pending_order_in_requested_currency(self, client, headers, courses):
        python_course, _ = courses
        add_to_cart(client, headers, python_course)

        response = checkout(client, headers, currency="usd")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        order = body["data"]["order"]
        assert body["data"]["requires_payment"] is True
        assert order["status"] == "pending"
        assert order["currency"] == "USD"
        assert order["subtotal"] == 12.0
        assert order["total"] == 12.0
        assert order["base_total"] == 1000.0
        assert order["items"][0]["course_id"] == python_course.id

    def test_rate_outage_falls_back_to_inr(self, client, headers, courses, rate_service):
        python_course, _ = courses
        add_to_cart(client, headers, python_course)
        rate_service.fail = True

        order = checkout(client, headers, currency="USD").json()["data"]["order"]

        assert order["currency"] == "INR"
        assert order["total"] == 1000.0

    def test_unsupported_currency(self, client, headers, db, courses):
        python_course, _ = courses
        add_to_cart(client, headers, python_course)

        response = checkout(client, headers, currency="GBP")

        assert response.status_code == 400
        body = response.json()
        assert body["status"] == "error"
        assert body["details"]["currency"] == "GBP"
        assert db.query(Order).count() == 0

    def test_empty_cart(self, client, headers, student):
        response = checkout(client, headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Cart is empty"

    def test_already_enrolled_conflict(self, client, headers, db, student, courses):
        python_course, sql_course = courses
        add_to_cart(client, headers, python_course, sql_course)
        db.add(Enrollment(user_id=student.id, course_id=sql_course.id, payment_method="manual", amount_paid=0.0))
        db.commit()

        response = checkout(client, headers)

        assert response.status_code == 409
        assert response.json()["details"] == {"enrolled_course_ids": [sql_course.id]}


class TestConfirm:
    def test_manual_confirm_is_idempotent(self, client, headers, db, courses):
        python_course, sql_course = courses
        add_to_cart(client, headers, python_course, sql_course)
        order_id = checkout(client, headers).json()["data"]["order"]["order_id"]

        first = client.post("/orders/confirm", json={"order_id": order_id}, headers=headers)
        second = client.post("/orders/confirm", json={"order_id": order_id}, headers=headers)

        assert first.status_code == 200
        assert first.json()["data"]["order"]["status"] == "paid"
        assert len(first.json()["data"]["enrollments"]) == 2
        assert second.status_code == 200
        assert second.json()["message"] == "Order already confirmed"
        assert second.json()["data"]["order"]["status"] == "paid"
        assert len(second.json()["data"]["enrollments"]) == 2
        assert db.query(Enrollment).count() == 2

        cart = client.get("/cart/view", headers=headers).json()["data"]
        assert cart["cart_items"] == []

    def test_other_users_order_is_not_found(self, client, headers, other_student, courses):
        python_course, _ = courses
        add_to_cart(client, headers, python_course)
        order_id = checkout(client, headers).json()["data"]["order"]["order_id"]

        response = client.post("/orders/confirm", json={"order_id": order_id}, headers=auth_headers(other_student))

        assert response.status_code == 404

    def test_cancelled_order_cannot_be_confirmed(self, client, headers, courses):
        python_course, _ = courses
        add_to_cart(client, headers, python_course)
        order_id = checkout(client, headers).json()["data"]["order"]["order_id"]

        cancelled = client.post(f"/orders/{order_id}/cancel", headers=headers)
        again = client.post(f"/orders/{order_id}/cancel", headers=headers)
        confirm = client.post("/orders/confirm", json={"order_id": order_id}, headers=headers)

        assert cancelled.json()["data"]["status"] == "cancelled"
        assert again.status_code == 200
        assert confirm.status_code == 409

    def test_manual_confirm_needs_reference_in_production(self, client, headers, courses, monkeypatch):
        from config import settings
        monkeypatch.setattr(settings, "ENVIRONMENT", "production")
        monkeypatch.setattr(settings, "PAYMENT_MODE", "")
        python_course, _ = courses
        add_to_cart(client, headers, python_course)
        order_id = checkout(client, headers).json()["data"]["order"]["order_id"]

        missing = client.post("/orders/confirm", json={"order_id": order_id}, headers=headers)
        with_reference = client.post(
            "/orders/confirm",
            json={"order_id": order_id, "payment_reference": "BANK-TXN-77"},
            headers=headers,
        )

        assert missing.status_code == 400
        assert with_reference.status_code == 200
        assert with_reference.json()["data"]["enrollments"][0]["payment_id"] == "BANK-TXN-77"


class TestStripeSession:
    def test_session_then_confirm(self, client, headers, db, courses, monkeypatch):
        python_course, _ = courses
        add_to_cart(client, headers, python_course)
        created = {}

        def fake_create(**kwargs):
            created.update(kwargs)
            return SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.test/cs_test_123")

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

        response = client.post("/orders/stripe-session", json={"currency": "USD"}, headers=headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["session_id"] == "cs_test_123"
        assert data["url"] == "https://checkout.stripe.test/cs_test_123"
        order_id = data["order"]["order_id"]
        assert created["metadata"]["order_id"] == str(order_id)
        assert created["line_items"][0]["price_data"]["unit_amount"] == 1200
        assert created["line_items"][0]["price_data"]["currency"] == "usd"

        fake_session_retrieve(
            monkeypatch, payment_status="paid", metadata={"order_id": str(order_id), "user_id": "1"},
        )
        confirm = client.post(
            "/orders/confirm",
            json={"order_id": order_id, "payment_method": "stripe", "payment_reference": "cs_test_123"},
            headers=headers,
        )

        assert confirm.status_code == 200
        assert confirm.json()["data"]["order"]["status"] == "paid"
        assert confirm.json()["data"]["order"]["payment_reference"] == "cs_test_123"

    def test_unpaid_session_is_rejected(self, client, headers, db, courses, monkeypatch):
        python_course, _ = courses
        add_to_cart(client, headers, python_course)
        monkeypatch.setattr(
            stripe.checkout.Session, "create",
            lambda **kwargs: SimpleNamespace(id="cs_test_unpaid", url="https://checkout.stripe.test/x"),
        )
        order_id = client.post(
            "/orders/stripe-session", json={"currency": "INR"}, headers=headers,
        ).json()["data"]["order"]["order_id"]
        fake_session_retrieve(monkeypatch, payment_status="unpaid", metadata={"order_id": str(order_id)})

        response = client.post(
            "/orders/confirm", json={"order_id": order_id, "payment_method": "stripe"}, headers=headers,
        )

        assert response.status_code == 400
        assert db.get(Order, order_id).status == OrderStatus.PENDING

    def test_gateway_failure_leaves_order_pending(self, client, headers, db, courses, monkeypatch):
        python_course, _ = courses
        add_to_cart(client, headers, python_course)

        def boom(**kwargs):
            raise stripe.APIConnectionError("network down")

        monkeypatch.setattr(stripe.checkout.Session, "create", boom)

        response = client.post("/orders/stripe-session", json={"currency": "INR"}, headers=headers)

        assert response.status_code == 500
        assert response.json()["status"] == "error"
        order = db.query(Order).one()
        assert order.status == OrderStatus.PENDING
        assert order.payment_reference is None


class TestOrderLineItems:
    @staticmethod
    def make_order(prices, discount_percentage, quantities=None):
        quantities = quantities or [1] * len(prices)
        lines = [OrderLine(i + 1, f"Course {i + 1}", p, q) for i, (p, q) in enumerate(zip(prices, quantities))]
        totals = compute_order_totals(lines, discount_percentage, 1)
        items = [SimpleNamespace(unit_price=p, quantity=q, title=f"Course {i + 1}") for i, (p, q) in enumerate(zip(prices, quantities))]
        return SimpleNamespace(currency="INR", discount_percentage=discount_percentage, total=totals.total, items=items)

    @staticmethod
    def charged(line_items):
        return sum(li["price_data"]["unit_amount"] * li["quantity"] for li in line_items)

    def test_session_charges_exactly_the_order_total(self):
        order = self.make_order([333.33, 333.33, 333.33], 40)
        assert order.total == 599.99

        line_items = stripe_service.order_line_items(order)

        assert self.charged(line_items) == 59999
        assert [li["price_data"]["unit_amount"] for li in line_items] == [20000, 20000, 19999]

    def test_remainder_on_multi_unit_line_gets_its_own_line(self):
        order = self.make_order([333.33], 40, quantities=[3])

        line_items = stripe_service.order_line_items(order)

        assert self.charged(line_items) == 59999
        assert [(li["quantity"], li["price_data"]["unit_amount"]) for li in line_items] == [(2, 20000), (1, 19999)]

    def test_exact_discount_is_left_alone(self):
        order = self.make_order([1000.0, 500.0], 40)

        line_items = stripe_service.order_line_items(order)

        assert [li["price_data"]["unit_amount"] for li in line_items] == [60000, 30000]


class TestBuyNow:
    def test_single_course_with_coupon_keeps_cart(self, client, headers, courses, welcome_coupon):
        python_course, sql_course = courses
        add_to_cart(client, headers, sql_course)

        response = client.post(
            "/orders/buy-now",
            json={"course_id": python_course.id, "currency": "INR", "coupon_code": "welcome40"},
            headers=headers,
        )

        assert response.status_code == 200
        order = response.json()["data"]["order"]
        assert order["source"] == "single"
        assert order["total"] == 600.0
        assert order["coupon_code"] == "WELCOME40"

        order_id = order["order_id"]
        client.post("/orders/confirm", json={"order_id": order_id}, headers=headers)
        cart = client.get("/cart/view", headers=headers).json()["data"]
        assert [item["course_id"] for item in cart["cart_items"]] == [sql_course.id]


class TestOrderLookup:
    def test_list_and_detail(self, client, headers, other_student, courses):
        python_course, _ = courses
        add_to_cart(client, headers, python_course)
        order_id = checkout(client, headers).json()["data"]["order"]["order_id"]

        listing = client.get("/orders/list", headers=headers).json()
        detail = client.get(f"/orders/{order_id}", headers=headers).json()
        foreign = client.get(f"/orders/{order_id}", headers=auth_headers(other_student))

        assert [o["order_id"] for o in listing["data"]] == [order_id]
        assert detail["data"]["status_history"][0]["status"] == "pending"
        assert foreign.status_code == 404
