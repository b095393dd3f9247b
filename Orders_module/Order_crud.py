"""
Order CRUD operations and the Order Builder.

An order is built from a cart (or a single course), validated, priced in
the requested currency and persisted as pending. Status changes go through
conditional UPDATEs so only one caller can move an order out of pending.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple
import secrets
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from config import settings
from errors import (
    AlreadyEnrolled, CoursesUnavailable, CoursesUnpublished, EmptyCart,
    LearnHubError, NotFoundError, UnsupportedCurrencyError, UpstreamError,
)
from Cart_module.Cart_crud import cart_course_refs, get_user_cart
from Cart_module.Cart_model import Cart
from Coupon_module.coupon_service import validate_coupon_for_cart, validate_coupon_for_course
from Course_module.course_service import find_missing_and_unpublished
from Currency_module.exchange_rate import ExchangeRateService
from Currency_module.money import percentage_of, round_money, to_decimal
from Enrollment_module.Enrollment_crud import get_enrolled_course_ids
from Login_module.Utils.datetime_utils import now_ist
from .Order_model import Order, OrderItem, OrderStatusHistory, OrderStatus, PaymentMethod, OrderSource

logger = logging.getLogger(__name__)


@dataclass
class OrderLine:
    course_id: int
    title: str
    base_price: float
    quantity: int = 1


@dataclass
class OrderTotals:
    base_subtotal: float
    base_discount_amount: float
    base_total: float
    subtotal: float
    discount_amount: float
    total: float


def generate_order_number() -> str:
    """Generate unique order number"""
    timestamp = now_ist().strftime("%Y%m%d%H%M%S")
    random_part = secrets.token_hex(4).upper()
    return f"ORD{timestamp}{random_part}"


def add_status_history(
    db: Session,
    order_id: int,
    status: OrderStatus,
    previous_status: Optional[OrderStatus],
    notes: str,
    changed_by: str,
) -> OrderStatusHistory:
    entry = OrderStatusHistory(
        order_id=order_id,
        status=status.value,
        previous_status=previous_status.value if previous_status else None,
        notes=notes,
        changed_by=str(changed_by),
    )
    db.add(entry)
    return entry


# ---------------- ORDER BUILDER ---------------- #

def normalize_currency(currency: Optional[str]) -> str:
    return (currency or settings.BASE_CURRENCY).strip().upper()


def validate_currency(currency: Optional[str]) -> str:
    """Unsupported currency is a hard rejection, never a fallback."""
    code = normalize_currency(currency)
    supported = settings.supported_currencies
    if code not in supported:
        raise UnsupportedCurrencyError(code, supported)
    return code


def resolve_rate(rate_service: ExchangeRateService, currency: str) -> Tuple[str, float]:
    """
    Returns (order_currency, rate). A rate provider failure falls back to the
    base currency at rate 1 instead of failing checkout.
    """
    base = settings.BASE_CURRENCY
    if currency == base:
        return base, 1.0
    try:
        return currency, rate_service.get_rate(base, currency)
    except UpstreamError as e:
        logger.warning(f"Exchange rate {base}->{currency} unavailable, falling back to {base}: {e.message}")
        return base, 1.0


def compute_order_totals(lines: Iterable[OrderLine], discount_percentage: float, rate: float) -> OrderTotals:
    """
    Every figure is rounded half-up to 2 decimals right after it is computed,
    so total == round(subtotal - discount) holds in both currencies.
    """
    pct = to_decimal(discount_percentage or 0)
    rate_dec = to_decimal(rate)

    base_subtotal = round_money(sum(
        (to_decimal(line.base_price) * line.quantity for line in lines),
        Decimal(0),
    ))
    base_discount = round_money(percentage_of(base_subtotal, pct))
    base_total = round_money(to_decimal(base_subtotal) - to_decimal(base_discount))

    subtotal = round_money(to_decimal(base_subtotal) * rate_dec)
    discount = round_money(percentage_of(subtotal, pct))
    total = round_money(to_decimal(subtotal) - to_decimal(discount))

    return OrderTotals(
        base_subtotal=base_subtotal,
        base_discount_amount=base_discount,
        base_total=base_total,
        subtotal=subtotal,
        discount_amount=discount,
        total=total,
    )


def _check_courses(db: Session, user_id: int, course_ids: List[int]):
    course_map, missing, unpublished = find_missing_and_unpublished(db, course_ids)
    if missing:
        raise CoursesUnavailable(missing)
    if unpublished:
        raise CoursesUnpublished(unpublished)

    enrolled = get_enrolled_course_ids(db, user_id, course_ids)
    if enrolled:
        raise AlreadyEnrolled([cid for cid in course_ids if cid in enrolled])
    return course_map


def _persist_order(
    db: Session,
    user_id: int,
    lines: List[OrderLine],
    payment_method: PaymentMethod,
    currency: str,
    rate: float,
    coupon_code: Optional[str],
    discount_percentage: float,
    source: OrderSource,
) -> Order:
    totals = compute_order_totals(lines, discount_percentage, rate)
    rate_dec = to_decimal(rate)

    order = Order(
        order_number=generate_order_number(),
        user_id=user_id,
        currency=currency,
        base_currency=settings.BASE_CURRENCY,
        exchange_rate=rate,
        coupon_code=coupon_code,
        discount_percentage=discount_percentage or 0.0,
        subtotal=totals.subtotal,
        discount_amount=totals.discount_amount,
        total=totals.total,
        base_subtotal=totals.base_subtotal,
        base_discount_amount=totals.base_discount_amount,
        base_total=totals.base_total,
        status=OrderStatus.PENDING,
        payment_method=payment_method,
        source=source,
    )
    order.items = [
        OrderItem(
            course_id=line.course_id,
            title=line.title,
            unit_price=round_money(to_decimal(line.base_price) * rate_dec),
            base_unit_price=round_money(line.base_price),
            quantity=line.quantity,
        )
        for line in lines
    ]
    db.add(order)
    db.flush()
    add_status_history(db, order.id, OrderStatus.PENDING, None, f"Order created from {source.value}", changed_by=user_id)
    db.commit()
    db.refresh(order)

    logger.info(
        f"Order {order.order_number} created for user {user_id}: {len(lines)} course(s), "
        f"total {order.total} {order.currency} (base {order.base_total} {order.base_currency})"
    )
    return order


def create_order_from_cart(
    db: Session,
    user_id: int,
    payment_method: PaymentMethod,
    currency: Optional[str],
    rate_service: ExchangeRateService,
) -> Tuple[Order, Cart]:
    """
    Snapshot the user's cart into a pending order.
    Returns (order, cart); the cart is left untouched for the caller to clear.
    """
    cart = get_user_cart(db, user_id)
    if not cart or not cart.items:
        raise EmptyCart()

    course_ids = [item.course_id for item in cart.items]
    course_map = _check_courses(db, user_id, course_ids)
    requested_currency = validate_currency(currency)
    order_currency, rate = resolve_rate(rate_service, requested_currency)

    coupon_code = cart.coupon_code
    discount_percentage = float(cart.discount_percentage or 0) if coupon_code else 0.0
    if coupon_code:
        subtotal = round_money(sum(
            (to_decimal(course_map[i.course_id].price) * i.quantity for i in cart.items),
            Decimal(0),
        ))
        try:
            coupon = validate_coupon_for_cart(db, coupon_code, cart_course_refs(cart), subtotal)
            discount_percentage = float(coupon.discount_percentage)
        except LearnHubError as e:
            # Keep the discount the user saw in the cart
            logger.warning(
                f"Coupon validation warning for '{coupon_code}' during order creation: {e.message}. "
                f"Using stored discount of {discount_percentage}%."
            )

    lines = [
        OrderLine(
            course_id=item.course_id,
            title=course_map[item.course_id].display_title,
            base_price=float(course_map[item.course_id].price or 0),
            quantity=item.quantity or 1,
        )
        for item in cart.items
    ]
    order = _persist_order(
        db, user_id, lines, payment_method, order_currency, rate,
        coupon_code, discount_percentage, OrderSource.CART,
    )
    return order, cart


def create_order_for_course(
    db: Session,
    user_id: int,
    course_id: int,
    payment_method: PaymentMethod,
    currency: Optional[str],
    rate_service: ExchangeRateService,
    coupon_code: Optional[str] = None,
) -> Order:
    """Single-course purchase. Same checks and pricing as the cart path; the cart is not involved."""
    course_map = _check_courses(db, user_id, [course_id])
    requested_currency = validate_currency(currency)

    discount_percentage = 0.0
    applied_code = None
    if coupon_code:
        result = validate_coupon_for_course(db, course_id, coupon_code)
        discount_percentage = result.discount_percentage
        applied_code = result.code

    order_currency, rate = resolve_rate(rate_service, requested_currency)
    course = course_map[course_id]
    lines = [OrderLine(course_id=course.id, title=course.display_title, base_price=float(course.price or 0))]
    return _persist_order(
        db, user_id, lines, payment_method, order_currency, rate,
        applied_code, discount_percentage, OrderSource.SINGLE,
    )


# ---------------- LOOKUPS ---------------- #

def get_order_by_id(db: Session, order_id: int) -> Optional[Order]:
    return db.query(Order).filter(Order.id == order_id).first()


def get_order_by_reference(db: Session, payment_reference: str) -> Optional[Order]:
    if not payment_reference:
        return None
    return db.query(Order).filter(Order.payment_reference == payment_reference).first()


def get_order_by_gateway_order_id(db: Session, gateway_order_id: str) -> Optional[Order]:
    if not gateway_order_id:
        return None
    return db.query(Order).filter(Order.gateway_order_id == gateway_order_id).first()


def get_order_for_user(db: Session, order_id: int, user_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id, Order.user_id == user_id).first()
    if not order:
        raise NotFoundError("Order not found", {"order_id": order_id})
    return order


def list_user_orders(db: Session, user_id: int, limit: int = 50) -> List[Order]:
    return db.query(Order).filter(
        Order.user_id == user_id
    ).order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()


# ---------------- STATUS CHANGES ---------------- #

def record_payment_reference(
    db: Session,
    order: Order,
    payment_reference: Optional[str] = None,
    gateway_order_id: Optional[str] = None,
    checkout_url: Optional[str] = None,
) -> Order:
    """Attach gateway handles to a pending order. Commits."""
    if payment_reference:
        order.payment_reference = payment_reference
    if gateway_order_id:
        order.gateway_order_id = gateway_order_id
    if checkout_url:
        order.checkout_url = checkout_url
    db.commit()
    db.refresh(order)
    return order


def mark_order_paid(
    db: Session,
    order_id: int,
    payment_method: Optional[PaymentMethod] = None,
    payment_reference: Optional[str] = None,
) -> bool:
    """
    The single gate for fulfillment: UPDATE ... WHERE status = 'pending'.
    Exactly one concurrent caller sees True. Does not commit.
    """
    values = {"status": OrderStatus.PAID, "paid_at": now_ist()}
    if payment_method is not None:
        values["payment_method"] = payment_method
    if payment_reference:
        values["payment_reference"] = payment_reference

    result = db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == OrderStatus.PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def mark_order_terminal(
    db: Session,
    order_id: int,
    new_status: OrderStatus,
    notes: str,
    changed_by: str,
) -> bool:
    """pending -> failed | cancelled. Returns False when the order already left pending. Commits."""
    if new_status not in (OrderStatus.FAILED, OrderStatus.CANCELLED):
        raise ValueError(f"Not a terminal failure status: {new_status}")

    result = db.execute(
        update(Order)
        .where(Order.id == order_id, Order.status == OrderStatus.PENDING)
        .values(status=new_status)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        return False

    add_status_history(db, order_id, new_status, OrderStatus.PENDING, notes, changed_by)
    db.commit()
    logger.info(f"Order {order_id} marked {new_status.value}: {notes}")
    return True
