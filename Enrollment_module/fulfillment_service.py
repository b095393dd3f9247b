"""
Fulfillment Engine: turns a paid order into enrollments exactly once.

fulfill_order() wins the pending -> paid gate first, then creates the
enrollments, redeems the coupon and resets the cart in the same
transaction. A caller that loses the gate gets the existing enrollments back.
enroll_user_in_courses() is the legacy entry point used by direct Stripe
checkouts that have no order row.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from errors import ConflictError, NotFoundError
from Cart_module.Cart_crud import clear_user_cart
from Coupon_module.coupon_service import redeem_coupon
from Course_module.Course_model import Course
from Course_module.course_service import get_courses_by_ids
from Currency_module.money import split_amount
from Notification_module.notification_service import send_welcome_notifications
from Orders_module.Order_crud import add_status_history, get_order_by_reference, mark_order_paid
from Orders_module.Order_model import Order, OrderStatus, OrderSource, PaymentMethod
from .Enrollment_crud import create_enrollment_for_user, get_enrollments_for_order
from .Enrollment_model import Enrollment

logger = logging.getLogger(__name__)


@dataclass
class FulfillmentResult:
    order: Optional[Order]
    enrollments: List[Enrollment] = field(default_factory=list)
    created: List[Enrollment] = field(default_factory=list)
    already_fulfilled: bool = False


def _increment_learner_count(db: Session, course_id: int) -> None:
    db.execute(
        update(Course)
        .where(Course.id == course_id)
        .values(learner_count=Course.learner_count + 1)
        .execution_options(synchronize_session=False)
    )


def _enroll_courses(
    db: Session,
    user_id: int,
    course_ids: List[int],
    amount_paid: float,
    currency: Optional[str],
    payment_method: Optional[str],
    payment_id: Optional[str],
    order_id: Optional[int],
) -> Tuple[List[Enrollment], List[Enrollment], List[Tuple[int, str]]]:
    """
    Per-course enrollment. Missing courses are skipped with a warning.
    Returns (enrollments, newly_created, welcome_targets). Does not commit.
    """
    course_map = get_courses_by_ids(db, course_ids)
    shares = split_amount(amount_paid or 0, len(course_ids))

    enrollments, created, welcome = [], [], []
    for course_id, share in zip(course_ids, shares):
        course = course_map.get(course_id)
        if not course:
            logger.warning(f"Course {course_id} not found while fulfilling for user {user_id}; skipping")
            continue

        enrollment, is_new = create_enrollment_for_user(
            db,
            user_id=user_id,
            course_id=course_id,
            payment_method=payment_method,
            amount_paid=share,
            currency=currency,
            payment_id=payment_id,
            order_id=order_id,
        )
        enrollments.append(enrollment)
        if is_new:
            _increment_learner_count(db, course_id)
            created.append(enrollment)
            welcome.append((course.id, course.display_title))
            logger.info(f"Enrollment created: user {user_id}, course {course_id}, amount {share}")
        else:
            logger.info(f"Enrollment already exists: user {user_id}, course {course_id}")

    return enrollments, created, welcome


def fulfill_order(
    db: Session,
    order: Order,
    payment_method: Optional[PaymentMethod] = None,
    payment_reference: Optional[str] = None,
    changed_by: str = "system",
    notes: Optional[str] = None,
) -> FulfillmentResult:
    """
    Mark the order paid and create one enrollment per line item.
    Safe to call any number of times and from concurrent requests.
    """
    order_id = order.id
    user_id = order.user_id

    if payment_reference:
        other = get_order_by_reference(db, payment_reference)
        if other and other.id != order_id:
            raise ConflictError(
                "Payment reference already used by another order",
                {"order_id": order_id, "payment_reference": payment_reference},
            )

    try:
        if not mark_order_paid(db, order_id, payment_method, payment_reference):
            db.rollback()
            db.refresh(order)
            if order.status == OrderStatus.PAID:
                logger.info(f"Order {order.order_number} already paid; returning existing enrollments")
                return FulfillmentResult(
                    order=order,
                    enrollments=get_enrollments_for_order(db, user_id, order_id, order.course_ids),
                    already_fulfilled=True,
                )
            raise ConflictError(
                f"Order is {order.status.value} and cannot be paid",
                {"order_id": order_id, "status": order.status.value},
            )

        add_status_history(
            db, order_id, OrderStatus.PAID, OrderStatus.PENDING,
            notes or "Payment confirmed", changed_by,
        )

        if order.coupon_code:
            try:
                redeem_coupon(db, order.coupon_code)
            except (ConflictError, NotFoundError) as e:
                # Payment already happened, so the order still goes through
                logger.warning(f"Coupon '{order.coupon_code}' not redeemed for order {order.order_number}: {e.message}")

        method = payment_method or order.payment_method
        enrollments, created, welcome = _enroll_courses(
            db,
            user_id=user_id,
            course_ids=order.course_ids,
            amount_paid=order.total,
            currency=order.currency,
            payment_method=PaymentMethod(method).value if method else None,
            payment_id=payment_reference or order.payment_reference,
            order_id=order_id,
        )

        if order.source == OrderSource.CART:
            clear_user_cart(db, user_id, commit=False)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        f"Order {order.order_number} fulfilled: {len(created)} new enrollment(s), "
        f"{len(enrollments) - len(created)} existing"
    )

    send_welcome_notifications(db, user_id, welcome, order_id=order_id)
    return FulfillmentResult(order=order, enrollments=enrollments, created=created)


def enroll_user_in_courses(
    db: Session,
    user_id: int,
    course_ids: List[int],
    payment_reference: Optional[str],
    amount_paid: float,
    payment_method: str = PaymentMethod.STRIPE.value,
    currency: Optional[str] = None,
) -> FulfillmentResult:
    """
    Legacy entry point for checkouts without an order row.
    Idempotency rests on the (user, course) uniqueness of enrollments.
    """
    unique_ids = list(dict.fromkeys(int(cid) for cid in course_ids))
    try:
        enrollments, created, welcome = _enroll_courses(
            db,
            user_id=user_id,
            course_ids=unique_ids,
            amount_paid=amount_paid,
            currency=currency,
            payment_method=payment_method,
            payment_id=payment_reference,
            order_id=None,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"Direct fulfillment for user {user_id} (payment {payment_reference}): "
        f"{len(created)} new enrollment(s) out of {len(unique_ids)} course(s)"
    )
    send_welcome_notifications(db, user_id, welcome)
    return FulfillmentResult(order=None, enrollments=enrollments, created=created)
