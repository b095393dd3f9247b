"""
Cart operations: item management, coupon application and Cart Reset.
"""
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from errors import ConflictError, LearnHubError, NotFoundError, ValidationError, AlreadyEnrolled
from Course_module.Course_model import Course
from Course_module.course_service import CourseRef
from Coupon_module.coupon_service import validate_coupon_for_cart
from Currency_module.money import percentage_of, round_money, to_decimal
from Enrollment_module.Enrollment_crud import get_enrolled_course_ids
from Login_module.Utils.datetime_utils import now_ist
from .Cart_model import Cart, CartItem

logger = logging.getLogger(__name__)


def get_user_cart(db: Session, user_id: int) -> Optional[Cart]:
    return db.query(Cart).filter(Cart.user_id == user_id).first()


def get_or_create_user_cart(db: Session, user_id: int) -> Cart:
    """Get the user's cart, creating an empty one on first use."""
    cart = get_user_cart(db, user_id)
    if cart:
        return cart

    cart = Cart(user_id=user_id, discount_percentage=0.0, total_before_discount=0.0, total_after_discount=0.0)
    db.add(cart)
    db.flush()
    logger.info(f"Created new cart {cart.id} for user {user_id}")
    return cart


def cart_course_refs(cart: Cart) -> List[CourseRef]:
    return [
        CourseRef(course=item.course, pending_course=item.course.pending_course)
        for item in cart.items
        if item.course is not None
    ]


def cart_subtotal(cart: Cart) -> float:
    total = sum(
        (to_decimal(item.course.price) * item.quantity for item in cart.items if item.course is not None),
        to_decimal(0),
    )
    return round_money(total)


def recalculate_totals(cart: Cart) -> Cart:
    subtotal = cart_subtotal(cart)
    discount = round_money(percentage_of(subtotal, cart.discount_percentage or 0))
    cart.total_before_discount = subtotal
    cart.total_after_discount = round_money(to_decimal(subtotal) - to_decimal(discount))
    return cart


def _drop_coupon(cart: Cart) -> None:
    cart.coupon_code = None
    cart.discount_percentage = 0.0


def _revalidate_coupon(db: Session, cart: Cart) -> Optional[str]:
    """
    Re-check the applied coupon after the cart changed.
    Returns the rejection message when the coupon had to be removed.
    """
    if not cart.coupon_code:
        return None
    if not cart.items:
        _drop_coupon(cart)
        return "Cart is empty"
    try:
        validate_coupon_for_cart(db, cart.coupon_code, cart_course_refs(cart), cart_subtotal(cart))
    except LearnHubError as e:
        logger.warning(f"Removing coupon '{cart.coupon_code}' from cart {cart.id}: {e.message}")
        _drop_coupon(cart)
        return e.message
    return None


def _touch(db: Session, cart: Cart) -> None:
    db.flush()
    db.expire(cart, ["items"])
    cart.last_activity_at = now_ist()


def add_course_to_cart(db: Session, user_id: int, course_id: int) -> Cart:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundError("Course not found", {"course_id": course_id})
    if not course.published:
        raise ValidationError("Course is not published", {"course_id": course_id})
    if course_id in get_enrolled_course_ids(db, user_id, [course_id]):
        raise AlreadyEnrolled([course_id])

    cart = get_or_create_user_cart(db, user_id)
    if any(item.course_id == course_id for item in cart.items):
        raise ConflictError("Course already in cart", {"course_id": course_id})

    db.add(CartItem(cart_id=cart.id, course_id=course_id, quantity=1))
    _touch(db, cart)
    _revalidate_coupon(db, cart)
    recalculate_totals(cart)
    db.commit()
    db.refresh(cart)
    logger.info(f"Added course {course_id} to cart {cart.id} for user {user_id}")
    return cart


def remove_course_from_cart(db: Session, user_id: int, course_id: int) -> Cart:
    cart = get_user_cart(db, user_id)
    item = None
    if cart:
        item = next((i for i in cart.items if i.course_id == course_id), None)
    if not item:
        raise NotFoundError("Course not in cart", {"course_id": course_id})

    db.delete(item)
    _touch(db, cart)
    _revalidate_coupon(db, cart)
    recalculate_totals(cart)
    db.commit()
    db.refresh(cart)
    logger.info(f"Removed course {course_id} from cart {cart.id} for user {user_id}")
    return cart


def apply_coupon(db: Session, user_id: int, coupon_code: str) -> Cart:
    """Validate the coupon against every course in the cart and store it."""
    cart = get_user_cart(db, user_id)
    if not cart or not cart.items:
        raise ValidationError("Cart is empty. Add courses to cart before applying coupon.")

    coupon = validate_coupon_for_cart(db, coupon_code, cart_course_refs(cart), cart_subtotal(cart))
    cart.coupon_code = coupon.code
    cart.discount_percentage = float(coupon.discount_percentage)
    recalculate_totals(cart)
    db.commit()
    db.refresh(cart)
    logger.info(f"Applied coupon '{coupon.code}' ({coupon.discount_percentage}%) to cart {cart.id}")
    return cart


def remove_coupon(db: Session, user_id: int) -> bool:
    cart = get_user_cart(db, user_id)
    if not cart or not cart.coupon_code:
        return False
    code = cart.coupon_code
    _drop_coupon(cart)
    recalculate_totals(cart)
    db.commit()
    logger.info(f"Removed coupon '{code}' from cart {cart.id}")
    return True


def clear_cart(db: Session, cart: Cart, commit: bool = True) -> int:
    """
    Cart Reset: remove every item, the applied coupon and the totals.
    Returns the number of items removed. With commit=False the caller owns the transaction.
    """
    removed = len(cart.items)
    for item in list(cart.items):
        db.delete(item)
    _drop_coupon(cart)
    cart.total_before_discount = 0.0
    cart.total_after_discount = 0.0
    cart.last_activity_at = now_ist()
    db.flush()
    db.expire(cart, ["items"])
    if commit:
        db.commit()
    logger.info(f"Cleared cart {cart.id} ({removed} item(s)) for user {cart.user_id}")
    return removed


def clear_user_cart(db: Session, user_id: int, commit: bool = True) -> int:
    cart = get_user_cart(db, user_id)
    if not cart:
        return 0
    return clear_cart(db, cart, commit=commit)
