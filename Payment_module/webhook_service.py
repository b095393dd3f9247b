"""
Processing for verified gateway webhooks.

Signature checks happen in the router before anything here runs. Each
handler maps a gateway event onto a PaymentEvent and lets the order state
machine decide; direct Stripe checkouts without an order go straight to
the legacy enrollment entry point.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from Currency_module.money import round_money, to_decimal
from Enrollment_module.fulfillment_service import enroll_user_in_courses
from Orders_module.Order_crud import get_order_by_gateway_order_id, get_order_by_id
from Orders_module.Order_model import Order, PaymentMethod
from Orders_module.checkout_service import apply_payment_event
from Orders_module.order_state import PaymentEvent, PaymentEventType
from .stripe_service import parse_course_ids

logger = logging.getLogger(__name__)

STRIPE_SUCCESS_EVENTS = {"checkout.session.completed", "checkout.session.async_payment_succeeded"}
STRIPE_FAILURE_EVENTS = {
    "checkout.session.async_payment_failed": PaymentEventType.FAILED,
    "checkout.session.expired": PaymentEventType.CANCELLED,
}

RAZORPAY_SUCCESS_EVENTS = {"payment.captured", "order.paid"}
RAZORPAY_FAILURE_EVENTS = {"payment.failed": PaymentEventType.FAILED}


def _order_from_metadata(db: Session, metadata: Dict[str, Any]) -> Optional[Order]:
    order_id = metadata.get("order_id")
    if not order_id:
        return None
    try:
        return get_order_by_id(db, int(order_id))
    except (TypeError, ValueError):
        logger.warning(f"Unreadable order_id metadata {order_id!r}")
        return None


def fulfill_direct_session(db: Session, session: Dict[str, Any]):
    """Direct-mode session: buyer and course ids come from metadata."""
    metadata = session.get("metadata") or {}
    user_id = metadata.get("user_id")
    course_ids = parse_course_ids(metadata)
    if not user_id or not course_ids:
        logger.warning(f"Stripe session {session.get('id')} has no user_id/course_ids metadata; nothing to fulfill")
        return None

    amount_paid = round_money(to_decimal(session.get("amount_total") or 0) / 100)
    currency = (session.get("currency") or "").upper() or None
    return enroll_user_in_courses(
        db,
        user_id=int(user_id),
        course_ids=course_ids,
        payment_reference=session.get("id"),
        amount_paid=amount_paid,
        payment_method=PaymentMethod.STRIPE.value,
        currency=currency,
    )


def handle_stripe_event(db: Session, event: Dict[str, Any]) -> None:
    event_type = event["type"]
    session = event["data"]["object"]
    metadata = session.get("metadata") or {}

    if event_type in STRIPE_SUCCESS_EVENTS:
        if event_type == "checkout.session.completed" and session.get("payment_status") != "paid":
            logger.info(f"Stripe session {session.get('id')} completed, payment still {session.get('payment_status')}")
            return

        order = _order_from_metadata(db, metadata)
        if order is None and metadata.get("order_id"):
            logger.warning(f"Order {metadata.get('order_id')} from Stripe session {session.get('id')} not found")
            return
        if order is None:
            fulfill_direct_session(db, session)
            return

        apply_payment_event(
            db,
            order,
            PaymentEvent(
                PaymentEventType.SUCCEEDED,
                payment_reference=session.get("id"),
                source="webhook",
                notes=f"Stripe {event_type}",
            ),
            payment_method=PaymentMethod.STRIPE,
        )
        return

    if event_type in STRIPE_FAILURE_EVENTS:
        order = _order_from_metadata(db, metadata)
        if order is None:
            logger.info(f"Stripe {event_type} for session {session.get('id')} without an order; ignoring")
            return
        apply_payment_event(
            db,
            order,
            PaymentEvent(STRIPE_FAILURE_EVENTS[event_type], source="webhook", notes=f"Stripe {event_type}"),
        )
        return

    logger.debug(f"Ignoring Stripe event type {event_type}")


def handle_razorpay_event(db: Session, data: Dict[str, Any]) -> None:
    event_type = data.get("event")
    payload = data.get("payload") or {}
    payment_entity = (payload.get("payment") or {}).get("entity") or {}
    order_entity = (payload.get("order") or {}).get("entity") or {}

    razorpay_order_id = payment_entity.get("order_id") or order_entity.get("id")
    razorpay_payment_id = payment_entity.get("id")

    if event_type not in RAZORPAY_SUCCESS_EVENTS and event_type not in RAZORPAY_FAILURE_EVENTS:
        logger.debug(f"Ignoring Razorpay event type {event_type}")
        return

    order = get_order_by_gateway_order_id(db, razorpay_order_id)
    if not order:
        logger.warning(f"Order not found for Razorpay order ID: {razorpay_order_id}")
        return

    if event_type in RAZORPAY_SUCCESS_EVENTS:
        if not razorpay_payment_id:
            logger.warning(f"Razorpay {event_type} for order {order.order_number} carries no payment id")
            return
        event = PaymentEvent(
            PaymentEventType.SUCCEEDED,
            payment_reference=razorpay_payment_id,
            source="webhook",
            notes=f"Razorpay {event_type}",
        )
        apply_payment_event(db, order, event, payment_method=PaymentMethod.RAZORPAY)
        return

    error = payment_entity.get("error_description") or "Payment failed"
    apply_payment_event(
        db,
        order,
        PaymentEvent(RAZORPAY_FAILURE_EVENTS[event_type], source="webhook", notes=f"Razorpay {event_type}: {error}"),
    )
