"""
Stripe hosted-checkout integration.

Two session flavours:
- order sessions, built from an order that already exists server-side
- direct sessions, built from raw line items with the buyer and course ids in metadata
"""
import json
import logging
from typing import Any, Dict, List, Optional

import stripe

from config import settings
from errors import PaymentRequiredError, SignatureError, UpstreamError, ValidationError
from Currency_module.money import percentage_of, round_money, to_decimal, to_minor_units

logger = logging.getLogger(__name__)

# Smallest chargeable amount per currency, major units
MINIMUM_CHARGE = {
    "USD": 0.50,
    "EUR": 0.50,
    "INR": 0.50,
}

_configured_key = None


def is_configured() -> bool:
    return bool(settings.STRIPE_SECRET_KEY)


def _configure() -> None:
    global _configured_key
    if not is_configured():
        raise UpstreamError("Stripe is not configured")
    if _configured_key != settings.STRIPE_SECRET_KEY:
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.default_http_client = stripe.RequestsClient(timeout=settings.STRIPE_TIMEOUT_SECONDS)
        _configured_key = settings.STRIPE_SECRET_KEY


def success_url(order_id: Optional[int] = None) -> str:
    if order_id is None:
        return f"{settings.FRONTEND_URL}/payment?status=success&session_id={{CHECKOUT_SESSION_ID}}"
    return f"{settings.FRONTEND_URL}/payment?status=success&orderId={order_id}&session_id={{CHECKOUT_SESSION_ID}}"


def cancel_url(order_id: Optional[int] = None) -> str:
    if order_id is None:
        return f"{settings.FRONTEND_URL}/payment?status=cancelled"
    return f"{settings.FRONTEND_URL}/payment?status=cancelled&orderId={order_id}"


def check_minimum_charge(amount: float, currency: str) -> None:
    minimum = MINIMUM_CHARGE.get(currency.upper())
    if minimum is not None and amount < minimum:
        raise PaymentRequiredError(
            f"Amount must be at least {minimum:.2f} {currency.upper()}",
            {"amount": amount, "currency": currency.upper(), "minimum": minimum},
        )


def _line_item(currency: str, name: str, unit_amount: int, quantity: int = 1) -> Dict[str, Any]:
    return {
        "quantity": quantity,
        "price_data": {
            "currency": currency,
            "unit_amount": unit_amount,
            "product_data": {"name": name},
        },
    }


def order_line_items(order) -> List[Dict[str, Any]]:
    """
    Line items for an order with the coupon discount applied per unit.
    Per-unit rounding can drift from order.total by a few minor units, so the
    last unit carries the remainder and the session charges exactly order.total.
    """
    pct = order.discount_percentage or 0
    currency = order.currency.lower()
    line_items = []
    for item in order.items:
        unit_price = to_decimal(item.unit_price)
        discounted = round_money(unit_price - percentage_of(unit_price, pct))
        line_items.append(
            _line_item(currency, item.title or "Course", max(0, to_minor_units(discounted)), item.quantity or 1)
        )

    charged = sum(li["price_data"]["unit_amount"] * li["quantity"] for li in line_items)
    remainder = to_minor_units(order.total) - charged
    if remainder and line_items:
        last = line_items[-1]
        if last["quantity"] > 1:
            last["quantity"] -= 1
            last = _line_item(currency, last["price_data"]["product_data"]["name"], last["price_data"]["unit_amount"])
            line_items.append(last)
        last["price_data"]["unit_amount"] = max(0, last["price_data"]["unit_amount"] + remainder)
    return line_items


def create_order_checkout_session(order):
    """Hosted checkout for an existing pending order. Returns the Stripe session."""
    _configure()
    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            line_items=order_line_items(order),
            client_reference_id=str(order.id),
            metadata={
                "order_id": str(order.id),
                "user_id": str(order.user_id),
            },
            success_url=success_url(order.id),
            cancel_url=cancel_url(order.id),
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe session creation failed for order {order.order_number}: {e}", exc_info=True)
        raise UpstreamError(
            "Payment gateway error while creating checkout session",
            {"order_id": order.id, "gateway_message": getattr(e, "user_message", None) or str(e)},
        )

    logger.info(f"Stripe session {session.id} created for order {order.order_number}")
    return session


def create_direct_checkout_session(user_id: int, items: List[Dict[str, Any]], currency: str = "USD"):
    """
    Direct mode: raw {name, price, course_id} items, no server-side course validation.
    The buyer and course ids ride along in session metadata for the webhook.
    """
    if not items:
        raise ValidationError("At least one item is required")

    currency = currency.upper()
    total = round_money(sum((to_decimal(item["price"]) for item in items), to_decimal(0)))
    check_minimum_charge(total, currency)

    course_ids = [item.get("course_id") for item in items]
    if any(course_id is None for course_id in course_ids):
        raise ValidationError("Every item needs a course_id", {"items": len(items)})

    _configure()
    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            payment_method_types=["card"],
            line_items=[
                _line_item(currency.lower(), item["name"], to_minor_units(item["price"]))
                for item in items
            ],
            metadata={
                "user_id": str(user_id),
                "course_ids": json.dumps(course_ids),
            },
            success_url=success_url(),
            cancel_url=cancel_url(),
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe direct session creation failed for user {user_id}: {e}", exc_info=True)
        raise UpstreamError("Payment gateway error while creating checkout session")

    logger.info(f"Stripe direct session {session.id} created for user {user_id}, courses {course_ids}")
    return session


def retrieve_checkout_session(session_id: str) -> Dict[str, Any]:
    """Fetch a checkout session and return it as a plain dict, metadata included."""
    _configure()
    try:
        session = stripe.checkout.Session.retrieve(session_id)
    except stripe.InvalidRequestError as e:
        logger.warning(f"Stripe session {session_id} not retrievable: {e}")
        raise ValidationError("Invalid checkout session", {"session_id": session_id})
    except stripe.StripeError as e:
        logger.error(f"Stripe session lookup failed for {session_id}: {e}", exc_info=True)
        raise UpstreamError("Payment gateway error while verifying payment")
    return session.to_dict()


def construct_webhook_event(payload: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
    """
    Verify the Stripe-Signature header before trusting any field of the payload.
    Returns the event as a plain dict.
    """
    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("Stripe webhook received but STRIPE_WEBHOOK_SECRET is not set")
        raise SignatureError("Webhook secret not configured")
    if not signature_header:
        raise SignatureError("Missing Stripe-Signature header")

    body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    try:
        stripe.WebhookSignature.verify_header(body, signature_header, settings.STRIPE_WEBHOOK_SECRET)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Stripe webhook signature verification failed: {e}")
        raise SignatureError("Invalid webhook signature")

    try:
        event = json.loads(body)
    except ValueError as e:
        logger.warning(f"Stripe webhook payload could not be parsed: {e}")
        raise SignatureError("Invalid webhook payload")
    if not isinstance(event, dict) or "id" not in event or "type" not in event:
        raise SignatureError("Invalid webhook payload")
    return event


def parse_course_ids(metadata: Optional[Dict[str, Any]]) -> List[int]:
    """course_ids metadata is a JSON list; anything else yields no courses."""
    raw = (metadata or {}).get("course_ids")
    if not raw:
        return []
    try:
        values = json.loads(raw) if isinstance(raw, str) else raw
        return [int(v) for v in values]
    except (TypeError, ValueError) as e:
        logger.warning(f"Unreadable course_ids metadata {raw!r}: {e}")
        return []
