"""
Coupon service for validating, pricing and redeeming coupons.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Tuple
import logging

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from errors import ConflictError, NotFoundError, ValidationError
from Course_module.course_service import CourseRef, resolve_course_ref
from Currency_module.money import percentage_of, round_money, to_decimal
from Login_module.Utils.datetime_utils import is_past
from .Coupon_model import Coupon

logger = logging.getLogger(__name__)


@dataclass
class CouponValidation:
    coupon: Coupon
    original_price: float
    discount_amount: float
    discounted_price: float

    @property
    def code(self) -> str:
        return self.coupon.code

    @property
    def discount_percentage(self) -> float:
        return float(self.coupon.discount_percentage)

    def to_response(self) -> dict:
        return {
            "valid": True,
            "message": "Coupon applied successfully",
            "coupon_code": self.code,
            "discount_percentage": self.discount_percentage,
            "original_price": self.original_price,
            "discount_amount": self.discount_amount,
            "discounted_price": self.discounted_price,
            "description": self.coupon.description,
        }


def normalize_code(coupon_code: str) -> str:
    """Normalize coupon code (uppercase and strip whitespace)"""
    return (coupon_code or "").strip().upper()


def find_active_coupon(db: Session, coupon_code: str) -> Coupon:
    normalized_code = normalize_code(coupon_code)
    coupon = db.query(Coupon).filter(
        Coupon.code == normalized_code,
        Coupon.is_active == True
    ).first()
    if not coupon:
        logger.info(f"Coupon '{normalized_code}' not found or inactive")
        raise NotFoundError("Invalid coupon code", {"coupon_code": normalized_code})
    return coupon


def calculate_discount(price: float, percentage: float) -> Tuple[float, float]:
    """
    Returns (discount_amount, discounted_price), both rounded half-up to 2 decimals.
    discounted_price = round(price - price * pct / 100)
    """
    raw_discount = percentage_of(price, percentage)
    return round_money(raw_discount), round_money(to_decimal(price) - raw_discount)


def check_coupon_usable(coupon: Coupon, now: Optional[datetime] = None) -> None:
    """Expiry and usage-cap checks shared by course and cart validation."""
    if is_past(coupon.valid_until, now):
        raise ValidationError("Coupon has expired", {"coupon_code": coupon.code})

    if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
        raise ValidationError(
            "Coupon usage limit exceeded",
            {"coupon_code": coupon.code, "max_uses": coupon.max_uses},
        )


def is_applicable_to(coupon: Coupon, ref: CourseRef) -> bool:
    """
    A restricted coupon matches when either side of the course link is listed:
    the published id or the draft id it was created from.
    """
    if not coupon.is_restricted:
        return True
    published_ids = {int(cid) for cid in (coupon.applicable_courses or [])}
    draft_ids = {int(cid) for cid in (coupon.applicable_pending_courses or [])}
    if ref.published_id is not None and ref.published_id in published_ids:
        return True
    if ref.draft_id is not None and ref.draft_id in draft_ids:
        return True
    return False


def check_minimum_purchase(coupon: Coupon, amount: float) -> None:
    minimum = coupon.minimum_purchase or 0
    if minimum and amount < minimum:
        raise ValidationError(
            f"Minimum purchase of ₹{minimum} required",
            {"coupon_code": coupon.code, "minimum_purchase": minimum},
        )


def validate_coupon_for_course(
    db: Session,
    course_id: int,
    coupon_code: str,
    now: Optional[datetime] = None
) -> CouponValidation:
    """
    Validate a coupon against one course. First failing check wins:
    course exists, coupon exists and is active, not expired, usage cap,
    applicability, minimum purchase.
    """
    ref = resolve_course_ref(db, course_id)
    coupon = find_active_coupon(db, coupon_code)
    check_coupon_usable(coupon, now)

    if not is_applicable_to(coupon, ref):
        raise ValidationError(
            "This coupon is not applicable for this course",
            {"coupon_code": coupon.code, "course_id": course_id},
        )

    price = ref.price
    check_minimum_purchase(coupon, price)

    discount_amount, discounted_price = calculate_discount(price, coupon.discount_percentage)
    logger.info(
        f"Coupon '{coupon.code}' valid for course {course_id}: "
        f"{coupon.discount_percentage}% off {price} -> {discounted_price}"
    )
    return CouponValidation(
        coupon=coupon,
        original_price=round_money(price),
        discount_amount=discount_amount,
        discounted_price=discounted_price,
    )


def validate_coupon_for_cart(
    db: Session,
    coupon_code: str,
    course_refs: Iterable[CourseRef],
    subtotal: float,
    now: Optional[datetime] = None
) -> Coupon:
    """
    Validate a coupon for a whole cart. A restricted coupon must apply to
    every course in the cart; the minimum purchase is checked against the subtotal.
    """
    coupon = find_active_coupon(db, coupon_code)
    check_coupon_usable(coupon, now)

    not_applicable = [ref.published_id for ref in course_refs if not is_applicable_to(coupon, ref)]
    if not_applicable:
        raise ValidationError(
            "This coupon is not applicable for one or more courses in your cart",
            {"coupon_code": coupon.code, "course_ids": not_applicable},
        )

    check_minimum_purchase(coupon, subtotal)
    return coupon


def redeem_coupon(db: Session, coupon_code: str) -> Coupon:
    """
    Count one use of a coupon. The increment is a single conditional UPDATE
    so concurrent redemptions can never push used_count past max_uses.
    Does not commit; the caller owns the transaction.
    """
    normalized_code = normalize_code(coupon_code)
    result = db.execute(
        update(Coupon)
        .where(
            Coupon.code == normalized_code,
            or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses)
        )
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )

    coupon = db.query(Coupon).filter(Coupon.code == normalized_code).populate_existing().first()
    if not coupon:
        raise NotFoundError("Invalid coupon code", {"coupon_code": normalized_code})

    if result.rowcount == 0:
        logger.warning(f"Coupon '{normalized_code}' usage limit reached ({coupon.used_count}/{coupon.max_uses})")
        raise ConflictError(
            "Coupon usage limit exceeded",
            {"coupon_code": normalized_code, "max_uses": coupon.max_uses},
        )

    logger.info(f"Coupon '{normalized_code}' redeemed ({coupon.used_count}/{coupon.max_uses or 'unlimited'})")
    return coupon
