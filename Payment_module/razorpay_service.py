"""
Razorpay payment gateway integration service.
"""
import razorpay
import logging
import hmac
import hashlib
from typing import Dict, Any, Optional

from config import settings
from errors import SignatureError, UpstreamError
from Currency_module.money import to_minor_units

logger = logging.getLogger(__name__)

_client = None


def is_configured() -> bool:
    return bool(settings.RAZORPAY_KEY_ID and settings.RAZORPAY_KEY_SECRET)


def get_client() -> razorpay.Client:
    """Razorpay client, created on first use so the app boots without credentials."""
    global _client
    if not is_configured():
        raise UpstreamError("Razorpay is not configured")
    if _client is None:
        _client = razorpay.Client(auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET))
    return _client


def create_razorpay_order(amount: float, currency: str = "INR", receipt: Optional[str] = None, notes: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Create a Razorpay order.

    Args:
        amount: Amount in major units (converted to paise/cents)
        currency: Currency code (default: INR)
        receipt: Receipt ID for internal tracking
        notes: Additional notes/metadata

    Returns:
        Razorpay order object
    """
    order_data = {
        "amount": to_minor_units(amount),
        "currency": currency,
        "payment_capture": 1,  # Auto-capture payment
    }
    if receipt:
        order_data["receipt"] = receipt
    if notes:
        order_data["notes"] = notes

    client = get_client()
    try:
        order = client.order.create(data=order_data)
    except razorpay.errors.BadRequestError as e:
        logger.error(f"Razorpay bad request error: {e}")
        raise UpstreamError(f"Invalid request to Razorpay: {str(e)}")
    except razorpay.errors.ServerError as e:
        logger.error(f"Razorpay server error: {e}")
        raise UpstreamError(f"Razorpay server error: {str(e)}")

    logger.info(f"Razorpay order created: {order.get('id')} for amount {amount} {currency}")
    return order


def _hmac_sha256(secret: str, message: str) -> str:
    return hmac.new(secret.encode('utf-8'), message.encode('utf-8'), hashlib.sha256).hexdigest()


def verify_payment_signature(razorpay_order_id: str, razorpay_payment_id: str, razorpay_signature: str) -> None:
    """
    Verify the checkout signature: HMAC-SHA256 of "order_id|payment_id" keyed by the API secret.
    Raises SignatureError when it does not match.
    """
    if not settings.RAZORPAY_KEY_SECRET:
        raise UpstreamError("Razorpay is not configured")

    expected = _hmac_sha256(settings.RAZORPAY_KEY_SECRET, f"{razorpay_order_id}|{razorpay_payment_id}")
    if not hmac.compare_digest(expected, razorpay_signature or ""):
        logger.warning(f"Invalid payment signature for order: {razorpay_order_id}")
        raise SignatureError("Invalid payment signature", {"razorpay_order_id": razorpay_order_id})

    logger.info(f"Payment signature verified for order: {razorpay_order_id}")


def verify_webhook_signature(body: str, signature: Optional[str]) -> None:
    """X-Razorpay-Signature is HMAC-SHA256 of the raw body keyed by the webhook secret."""
    if not settings.RAZORPAY_WEBHOOK_SECRET:
        logger.error("Razorpay webhook received but RAZORPAY_WEBHOOK_SECRET is not set")
        raise SignatureError("Webhook secret not configured")
    if not signature:
        raise SignatureError("Missing webhook signature")

    expected = _hmac_sha256(settings.RAZORPAY_WEBHOOK_SECRET, body)
    if not hmac.compare_digest(expected, signature):
        logger.warning("Invalid Razorpay webhook signature")
        raise SignatureError("Invalid webhook signature")
