"""Tests for coupon validation and redemption."""

from datetime import timedelta

import pytest

from errors import ConflictError, NotFoundError, ValidationError
from Coupon_module.Coupon_model import Coupon
from Coupon_module.coupon_service import (
    calculate_discount,
    redeem_coupon,
    validate_coupon_for_course,
)
from Login_module.Utils.datetime_utils import now_ist


def add_coupon(db, code, **fields):
    values = dict(
        code=code,
        discount_percentage=25.0,
        is_active=True,
        used_count=0,
        minimum_purchase=0.0,
        applicable_courses=[],
        applicable_pending_courses=[],
    )
    values.update(fields)
    coupon = Coupon(**values)
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


class TestCalculateDiscount:
    @pytest.mark.parametrize("price, pct, expected", [
        (1000, 40, (400.0, 600.0)),
        (999, 40, (399.6, 599.4)),
        (19.99, 15, (3.0, 16.99)),
        (500, 0, (0.0, 500.0)),
        (500, 100, (500.0, 0.0)),
    ])
    def test_discounted_price(self, price, pct, expected):
        assert calculate_discount(price, pct) == expected


class TestValidateCouponForCourse:
    def test_unrestricted_coupon(self, db, courses, welcome_coupon):
        python_course, _ = courses
        result = validate_coupon_for_course(db, python_course.id, " welcome40 ")

        assert result.code == "WELCOME40"
        assert result.original_price == 1000.0
        assert result.discount_amount == 400.0
        assert result.discounted_price == 600.0
        assert result.to_response()["valid"] is True

    def test_unknown_code_is_not_found(self, db, courses):
        python_course, _ = courses
        with pytest.raises(NotFoundError) as exc_info:
            validate_coupon_for_course(db, python_course.id, "NOPE")
        assert exc_info.value.message == "Invalid coupon code"

    def test_inactive_coupon_is_not_found(self, db, courses):
        python_course, _ = courses
        add_coupon(db, "OLD10", is_active=False)
        with pytest.raises(NotFoundError):
            validate_coupon_for_course(db, python_course.id, "OLD10")

    def test_unknown_course_is_not_found(self, db, welcome_coupon):
        with pytest.raises(NotFoundError) as exc_info:
            validate_coupon_for_course(db, 9999, "WELCOME40")
        assert exc_info.value.message == "Course not found"

    def test_expired_coupon(self, db, courses):
        python_course, _ = courses
        add_coupon(db, "LATE", valid_until=now_ist() - timedelta(days=1))
        with pytest.raises(ValidationError) as exc_info:
            validate_coupon_for_course(db, python_course.id, "LATE")
        assert exc_info.value.message == "Coupon has expired"

    def test_exhausted_coupon(self, db, courses):
        python_course, _ = courses
        add_coupon(db, "GONE", max_uses=5, used_count=5)
        with pytest.raises(ValidationError) as exc_info:
            validate_coupon_for_course(db, python_course.id, "GONE")
        assert exc_info.value.message == "Coupon usage limit exceeded"

    def test_restricted_to_another_course(self, db, courses):
        python_course, sql_course = courses
        add_coupon(db, "SQLONLY", applicable_courses=[sql_course.id])
        with pytest.raises(ValidationError) as exc_info:
            validate_coupon_for_course(db, python_course.id, "SQLONLY")
        assert exc_info.value.message == "This coupon is not applicable for this course"

    def test_draft_id_matches_published_course(self, db, courses):
        python_course, _ = courses
        add_coupon(db, "DRAFT25", applicable_pending_courses=[python_course.pending_course_id])

        result = validate_coupon_for_course(db, python_course.id, "DRAFT25")
        assert result.discounted_price == 750.0

    def test_minimum_purchase(self, db, courses):
        _, sql_course = courses
        add_coupon(db, "BIGSPEND", minimum_purchase=800.0)
        with pytest.raises(ValidationError) as exc_info:
            validate_coupon_for_course(db, sql_course.id, "BIGSPEND")
        assert exc_info.value.details["minimum_purchase"] == 800.0


class TestRedeemCoupon:
    def test_last_use_then_rejected(self, db, welcome_coupon):
        welcome_coupon.used_count = 999
        db.commit()

        coupon = redeem_coupon(db, "WELCOME40")
        db.commit()
        assert coupon.used_count == 1000

        with pytest.raises(ConflictError) as exc_info:
            redeem_coupon(db, "WELCOME40")
        assert exc_info.value.message == "Coupon usage limit exceeded"

        db.rollback()
        db.expire_all()
        assert db.query(Coupon).filter(Coupon.code == "WELCOME40").one().used_count == 1000

    def test_unlimited_coupon(self, db):
        add_coupon(db, "FOREVER", max_uses=None, used_count=41)
        coupon = redeem_coupon(db, "forever")
        db.commit()
        assert coupon.used_count == 42

    def test_unknown_code(self, db):
        with pytest.raises(NotFoundError):
            redeem_coupon(db, "MISSING")
