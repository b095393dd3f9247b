"""
Checkout flows on top of the Order Builder and the Fulfillment Engine:
free checkout, gateway session creation, client confirmation, cancellation,
and applying verified gateway events to an order.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional
import logging

from sqlalchemy.orm import Session

from config import settings
from errors import ConflictError, PaymentRequiredError, UpstreamError, ValidationError
from Currency_module.exchange_rate import ExchangeRateService
from Enrollment_module.Enrollment_crud import get_enrollments_for_order
from Enrollment_module.Enrollment_model import Enrollment
from Enrollment_module.fulfillment_service import FulfillmentResult, fulfill_order
from Payment_module import razorpay_service, stripe_service
from . import Order_crud
from .Order_model import Order, OrderStatus, PaymentMethod
from .order_state import PaymentEvent, PaymentEventType, Transition, next_order_state

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    order: Order
    enrollments: List[Enrollment] = field(default_factory=list)
    requires_payment: bool = True
    session_id: Optional[str] = None
    checkout_url: Optional[str] = None
    gateway_order: Optional[Any] = None


def _complete_free_order(db: Session, order: Order) -> CheckoutResult:
    """Zero-total orders skip the gateway entirely."""
    result = fulfill_order(db, order, changed_by="system", notes="Free checkout")
    logger.info(f"Order {order.order_number} completed as free checkout")
    return CheckoutResult(order=result.order, enrollments=result.enrollments, requires_payment=False)


def checkout_cart(
    db: Session,
    user_id: int,
    payment_method: PaymentMethod,
    currency: Optional[str],
    rate_service: ExchangeRateService,
) -> CheckoutResult:
    order, _cart = Order_crud.create_order_from_cart(db, user_id, payment_method, currency, rate_service)
    if order.total <= 0:
        return _complete_free_order(db, order)
    return CheckoutResult(order=order)


def buy_now(
    db: Session,
    user_id: int,
    course_id: int,
    payment_method: PaymentMethod,
    currency: Optional[str],
    rate_service: ExchangeRateService,
    coupon_code: Optional[str] = None,
) -> CheckoutResult:
    order = Order_crud.create_order_for_course(
        db, user_id, course_id, payment_method, currency, rate_service, coupon_code=coupon_code
    )
    if order.total <= 0:
        return _complete_free_order(db, order)
    return CheckoutResult(order=order)


def start_stripe_checkout(
    db: Session,
    user_id: int,
    currency: Optional[str],
    rate_service: ExchangeRateService,
) -> CheckoutResult:
    """
    Build the order and a hosted Stripe session for it. A gateway failure leaves
    the order pending with no session attached, so the client can simply retry.
    """
    if not stripe_service.is_configured():
        raise UpstreamError("Stripe is not configured")

    order, _cart = Order_crud.create_order_from_cart(db, user_id, PaymentMethod.STRIPE, currency, rate_service)
    if order.total <= 0:
        return _complete_free_order(db, order)

    session = stripe_service.create_order_checkout_session(order)
    Order_crud.record_payment_reference(db, order, payment_reference=session.id, checkout_url=session.url)
    return CheckoutResult(order=order, session_id=session.id, checkout_url=session.url)


def start_razorpay_checkout(
    db: Session,
    user_id: int,
    currency: Optional[str],
    rate_service: ExchangeRateService,
) -> CheckoutResult:
    if not razorpay_service.is_configured():
        raise UpstreamError("Razorpay is not configured")

    order, _cart = Order_crud.create_order_from_cart(db, user_id, PaymentMethod.RAZORPAY, currency, rate_service)
    if order.total <= 0:
        return _complete_free_order(db, order)

    gateway_order = razorpay_service.create_razorpay_order(
        amount=order.total,
        currency=order.currency,
        receipt=order.order_number,
        notes={"order_id": str(order.id), "user_id": str(user_id)},
    )
    Order_crud.record_payment_reference(db, order, gateway_order_id=gateway_order.get("id"))
    return CheckoutResult(order=order, gateway_order=gateway_order)


def _verify_stripe_payment(order: Order, session_id: Optional[str]) -> str:
    session_id = session_id or order.payment_reference
    if not session_id:
        raise PaymentRequiredError("Stripe session id is required", {"order_id": order.id})

    session = stripe_service.retrieve_checkout_session(session_id)
    metadata = session.get("metadata") or {}
    if str(metadata.get("order_id")) != str(order.id):
        raise PaymentRequiredError(
            "Checkout session does not belong to this order",
            {"order_id": order.id, "session_id": session_id},
        )
    if session.get("payment_status") != "paid":
        raise PaymentRequiredError(
            "Payment has not been completed",
            {"order_id": order.id, "payment_status": session.get("payment_status")},
        )
    return session_id


def _verify_razorpay_payment(
    order: Order,
    razorpay_order_id: Optional[str],
    razorpay_payment_id: Optional[str],
    razorpay_signature: Optional[str],
) -> str:
    if not (razorpay_order_id and razorpay_payment_id and razorpay_signature):
        raise PaymentRequiredError(
            "razorpay_order_id, razorpay_payment_id and razorpay_signature are required",
            {"order_id": order.id},
        )
    if order.gateway_order_id and razorpay_order_id != order.gateway_order_id:
        raise ValidationError(
            "Razorpay order does not match this order",
            {"order_id": order.id, "razorpay_order_id": razorpay_order_id},
        )
    razorpay_service.verify_payment_signature(razorpay_order_id, razorpay_payment_id, razorpay_signature)
    return razorpay_payment_id


def confirm_order(
    db: Session,
    user_id: int,
    order_id: int,
    payment_method: Optional[PaymentMethod] = None,
    payment_reference: Optional[str] = None,
    razorpay_order_id: Optional[str] = None,
    razorpay_signature: Optional[str] = None,
) -> FulfillmentResult:
    """
    Client-side confirmation. Re-confirming a paid order returns it unchanged
    together with its enrollments.
    """
    order = Order_crud.get_order_for_user(db, order_id, user_id)
    transition = next_order_state(order.status, PaymentEvent(PaymentEventType.SUCCEEDED, source=str(user_id)))

    if not transition.changed:
        if order.status == OrderStatus.PAID:
            logger.info(f"Order {order.order_number} already paid; confirm is a no-op")
            return FulfillmentResult(
                order=order,
                enrollments=get_enrollments_for_order(db, user_id, order.id, order.course_ids),
                already_fulfilled=True,
            )
        raise ConflictError(
            f"Order is {order.status.value} and cannot be confirmed",
            {"order_id": order.id, "status": order.status.value},
        )

    method = PaymentMethod(payment_method) if payment_method else PaymentMethod(order.payment_method)
    reference = payment_reference

    if order.total > 0:
        if method == PaymentMethod.STRIPE:
            reference = _verify_stripe_payment(order, payment_reference)
        elif method == PaymentMethod.RAZORPAY:
            reference = _verify_razorpay_payment(order, razorpay_order_id, payment_reference, razorpay_signature)
        elif not reference and not settings.allow_manual_payment:
            raise PaymentRequiredError("Payment reference is required", {"order_id": order.id})

    return fulfill_order(
        db,
        order,
        payment_method=method,
        payment_reference=reference,
        changed_by=str(user_id),
        notes=f"Payment confirmed by user ({method.value})",
    )


def cancel_order(db: Session, user_id: int, order_id: int) -> Order:
    order = Order_crud.get_order_for_user(db, order_id, user_id)
    transition = next_order_state(order.status, PaymentEvent(PaymentEventType.CANCELLED, source=str(user_id)))

    if not transition.changed:
        if order.status == OrderStatus.CANCELLED:
            return order
        raise ConflictError(
            "Only pending orders can be cancelled",
            {"order_id": order.id, "status": order.status.value},
        )

    if not Order_crud.mark_order_terminal(db, order.id, OrderStatus.CANCELLED, "Cancelled by user", str(user_id)):
        db.refresh(order)
        raise ConflictError(
            "Only pending orders can be cancelled",
            {"order_id": order.id, "status": order.status.value},
        )
    db.refresh(order)
    return order


def apply_payment_event(
    db: Session,
    order: Order,
    event: PaymentEvent,
    payment_method: Optional[PaymentMethod] = None,
) -> Transition:
    """Apply a verified gateway event to an order."""
    transition = next_order_state(order.status, event)

    if transition.fulfill:
        fulfill_order(
            db,
            order,
            payment_method=payment_method,
            payment_reference=event.payment_reference,
            changed_by=event.source,
            notes=event.notes,
        )
    elif transition.changed:
        Order_crud.mark_order_terminal(db, order.id, transition.status, event.notes or transition.reason, event.source)
    elif transition.conflict:
        logger.error(
            f"Payment succeeded for order {order.order_number} which is {order.status.value}; "
            f"needs manual reconciliation (reference {event.payment_reference})"
        )
    else:
        logger.info(f"Order {order.order_number}: {transition.reason}")
    return transition
