"""Cart, coupon, enrollment and notification endpoint tests."""

import pytest

from conftest import auth_headers
from Coupon_module.Coupon_model import Coupon
from Notification_module.Notification_crud import create_notification


@pytest.fixture
def headers(student):
    return auth_headers(student)


@pytest.fixture
def python_only_coupon(db, courses):
    python_course, _ = courses
    coupon = Coupon(
        code="PY20", discount_percentage=20.0, is_active=True, used_count=0, minimum_purchase=0.0,
        applicable_courses=[python_course.id], applicable_pending_courses=[],
    )
    db.add(coupon)
    db.commit()
    return coupon


class TestCartItems:
    def test_add_and_view(self, client, headers, courses):
        python_course, sql_course = courses
        client.post("/cart/add", json={"course_id": python_course.id}, headers=headers)
        response = client.post("/cart/add", json={"course_id": sql_course.id}, headers=headers)

        summary = response.json()["data"]["cart_summary"]
        assert summary["total_items"] == 2
        assert summary["subtotal_amount"] == 1500.0
        assert summary["grand_total"] == 1500.0

        view = client.get("/cart/view", headers=headers).json()
        assert [i["course_id"] for i in view["data"]["cart_items"]] == [python_course.id, sql_course.id]

    def test_duplicate_course(self, client, headers, courses):
        python_course, _ = courses
        client.post("/cart/add", json={"course_id": python_course.id}, headers=headers)

        response = client.post("/cart/add", json={"course_id": python_course.id}, headers=headers)

        assert response.status_code == 409
        assert response.json()["message"] == "Course already in cart"

    def test_unpublished_course(self, client, headers, unpublished_course):
        response = client.post("/cart/add", json={"course_id": unpublished_course.id}, headers=headers)
        assert response.status_code == 400

    def test_unknown_course(self, client, headers, courses):
        response = client.post("/cart/add", json={"course_id": 9999}, headers=headers)
        assert response.status_code == 404

    def test_invalid_course_id(self, client, headers):
        response = client.post("/cart/add", json={"course_id": 0}, headers=headers)
        assert response.status_code == 422
        assert response.json()["status"] == "error"

    def test_clear(self, client, headers, courses, welcome_coupon):
        python_course, sql_course = courses
        client.post("/cart/add", json={"course_id": python_course.id}, headers=headers)
        client.post("/cart/add", json={"course_id": sql_course.id}, headers=headers)
        client.post("/cart/apply-coupon", json={"coupon_code": "WELCOME40"}, headers=headers)

        response = client.delete("/cart/clear", headers=headers)

        assert response.json()["data"]["items_removed"] == 2
        summary = client.get("/cart/view", headers=headers).json()["data"]["cart_summary"]
        assert summary["total_items"] == 0
        assert summary["coupon_code"] is None
        assert summary["grand_total"] == 0.0


class TestCartCoupons:
    def test_apply_coupon(self, client, headers, courses, welcome_coupon):
        python_course, sql_course = courses
        client.post("/cart/add", json={"course_id": python_course.id}, headers=headers)
        client.post("/cart/add", json={"course_id": sql_course.id}, headers=headers)

        response = client.post("/cart/apply-coupon", json={"coupon_code": "welcome40"}, headers=headers)

        summary = response.json()["data"]["cart_summary"]
        assert summary["coupon_code"] == "WELCOME40"
        assert summary["discount_amount"] == 600.0
        assert summary["grand_total"] == 900.0

    def test_restricted_coupon_must_cover_every_course(self, client, headers, courses, python_only_coupon):
        python_course, sql_course = courses
        client.post("/cart/add", json={"course_id": python_course.id}, headers=headers)
        client.post("/cart/add", json={"course_id": sql_course.id}, headers=headers)

        response = client.post("/cart/apply-coupon", json={"coupon_code": "PY20"}, headers=headers)

        assert response.status_code == 400
        assert response.json()["details"]["course_ids"] == [sql_course.id]

    def test_coupon_dropped_when_cart_stops_qualifying(self, client, headers, courses, python_only_coupon):
        python_course, sql_course = courses
        client.post("/cart/add", json={"course_id": python_course.id}, headers=headers)
        applied = client.post("/cart/apply-coupon", json={"coupon_code": "PY20"}, headers=headers)
        assert applied.json()["data"]["cart_summary"]["grand_total"] == 800.0

        response = client.post("/cart/add", json={"course_id": sql_course.id}, headers=headers)

        summary = response.json()["data"]["cart_summary"]
        assert summary["coupon_code"] is None
        assert summary["grand_total"] == 1500.0

    def test_coupon_on_empty_cart(self, client, headers, welcome_coupon):
        response = client.post("/cart/apply-coupon", json={"coupon_code": "WELCOME40"}, headers=headers)
        assert response.status_code == 400

    def test_remove_coupon(self, client, headers, courses, welcome_coupon):
        python_course, _ = courses
        client.post("/cart/add", json={"course_id": python_course.id}, headers=headers)
        client.post("/cart/apply-coupon", json={"coupon_code": "WELCOME40"}, headers=headers)

        first = client.delete("/cart/remove-coupon", headers=headers)
        second = client.delete("/cart/remove-coupon", headers=headers)

        assert first.json()["message"] == "Coupon removed from cart."
        assert second.json()["message"] == "No coupon was applied to your cart."


class TestCouponEndpoints:
    def test_validate_course_coupon(self, client, headers, courses, welcome_coupon):
        python_course, _ = courses

        response = client.post(
            "/coupons/validate-course",
            json={"course_id": python_course.id, "coupon_code": "welcome40"},
            headers=headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is True
        assert body["discounted_price"] == 600.0

    def test_validate_unknown_code(self, client, headers, courses):
        python_course, _ = courses

        response = client.post(
            "/coupons/validate-course",
            json={"course_id": python_course.id, "coupon_code": "NOPE"},
            headers=headers,
        )

        assert response.status_code == 404
        assert response.json() == {"valid": False, "message": "Invalid coupon code"}

    def test_instructor_creates_course_coupon(self, client, db, instructor, courses):
        python_course, _ = courses

        response = client.post(
            f"/coupons/course/{python_course.id}",
            json={"code": "py-launch", "discount_percentage": 30},
            headers=auth_headers(instructor),
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["code"] == "PY-LAUNCH"
        assert data["applicable_courses"] == [python_course.id]
        assert data["applicable_pending_courses"] == [python_course.pending_course_id]

        listed = client.get(f"/coupons/course/{python_course.id}", headers=auth_headers(instructor)).json()
        assert [c["code"] for c in listed["data"]] == ["PY-LAUNCH"]

    def test_student_cannot_manage_course_coupons(self, client, headers, courses):
        python_course, _ = courses
        response = client.post(
            f"/coupons/course/{python_course.id}",
            json={"code": "HACK", "discount_percentage": 90},
            headers=headers,
        )
        assert response.status_code == 403

    def test_duplicate_code(self, client, instructor, courses, welcome_coupon):
        python_course, _ = courses
        response = client.post(
            f"/coupons/course/{python_course.id}",
            json={"code": "welcome40", "discount_percentage": 10},
            headers=auth_headers(instructor),
        )
        assert response.status_code == 409


class TestEnrollmentsAndNotifications:
    def test_my_enrollments_after_purchase(self, client, headers, courses):
        python_course, _ = courses
        client.post("/cart/add", json={"course_id": python_course.id}, headers=headers)
        order_id = client.post("/orders/checkout", json={"currency": "INR"}, headers=headers).json()["data"]["order"]["order_id"]
        client.post("/orders/confirm", json={"order_id": order_id}, headers=headers)

        enrollments = client.get("/enrollments/my", headers=headers).json()["data"]

        assert [e["course_id"] for e in enrollments] == [python_course.id]
        assert enrollments[0]["progress"]["progress_percentage"] == 0.0
        assert enrollments[0]["amount_paid"] == 1000.0

        notifications = client.get("/notifications", headers=headers).json()
        assert len(notifications) == 1
        assert notifications[0]["type"] == "enrollment"

    def test_read_flow(self, client, db, student, other_student, headers):
        note = create_notification(db, student.id, "Hello", "Welcome aboard", type="system")

        assert client.get("/notifications/unread-count", headers=headers).json() == {"unread_count": 1}

        foreign = client.put(f"/notifications/{note.id}/read", headers=auth_headers(other_student))
        assert foreign.status_code == 404

        read = client.put(f"/notifications/{note.id}/read", headers=headers)
        assert read.json()["is_read"] is True
        assert read.json()["read_at"] is not None
        assert client.get("/notifications/unread-count", headers=headers).json() == {"unread_count": 0}

    def test_mark_all_read_only_touches_own(self, client, db, student, other_student, headers):
        for title in ("One", "Two"):
            create_notification(db, student.id, title, "body")
        create_notification(db, other_student.id, "Theirs", "body")

        response = client.put("/notifications/read-all", headers=headers)

        assert response.json() == {"updated": 2, "unread_count": 0}
        other = client.get("/notifications/unread-count", headers=auth_headers(other_student)).json()
        assert other == {"unread_count": 1}
        unread = client.get("/notifications", params={"unread_only": True}, headers=headers).json()
        assert unread == []
