from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session
import json
import logging

from config import settings
from deps import get_db
from errors import NotFoundError, SignatureError, UnsupportedCurrencyError
from Enrollment_module.Enrollment_crud import get_enrollments_for_order
from Enrollment_module.Enrollment_router import enrollment_to_dict
from Login_module.User.user_model import User
from Login_module.Utils.auth_user import get_current_user
from Orders_module.Order_crud import get_order_by_id
from Orders_module.Order_model import PaymentMethod
from Orders_module.checkout_service import apply_payment_event
from Orders_module.order_state import PaymentEvent, PaymentEventType
from . import stripe_service, razorpay_service
from .Payment_crud import record_webhook_event, mark_webhook_processed, mark_webhook_failed
from .Payment_schema import DirectCheckoutRequest, VerifyPaymentRequest
from .webhook_service import fulfill_direct_session, handle_razorpay_event, handle_stripe_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/create-checkout-session")
def create_checkout_session(
    request_data: DirectCheckoutRequest,
    current_user: User = Depends(get_current_user),
):
    """
    Direct/legacy checkout. Line items come straight from the client; the
    webhook enrolls the buyer from the session metadata.
    """
    if request_data.currency not in settings.supported_currencies:
        raise UnsupportedCurrencyError(request_data.currency, settings.supported_currencies)

    session = stripe_service.create_direct_checkout_session(
        user_id=current_user.id,
        items=[item.model_dump() for item in request_data.items],
        currency=request_data.currency,
    )
    return {
        "status": "success",
        "message": "Stripe session created",
        "data": {"session_id": session.id, "url": session.url}
    }


@router.post("/verify-payment")
def verify_payment(
    request_data: VerifyPaymentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Polling fallback for when webhooks are unavailable. Runs the same
    idempotent fulfillment as the webhook once Stripe reports the session paid.
    """
    session = stripe_service.retrieve_checkout_session(request_data.session_id)
    metadata = session.get("metadata") or {}
    if str(metadata.get("user_id")) != str(current_user.id):
        raise NotFoundError("Checkout session not found", {"session_id": request_data.session_id})

    payment_status = session.get("payment_status")
    if payment_status != "paid":
        logger.info(f"verify-payment: session {request_data.session_id} is {payment_status}")
        return {"success": False, "payment_status": payment_status}

    order = None
    if metadata.get("order_id"):
        order = get_order_by_id(db, int(metadata["order_id"]))
        if not order or order.user_id != current_user.id:
            raise NotFoundError("Order not found", {"order_id": metadata.get("order_id")})

    if order:
        apply_payment_event(
            db,
            order,
            PaymentEvent(
                PaymentEventType.SUCCEEDED,
                payment_reference=session.get("id"),
                source=str(current_user.id),
                notes="Stripe payment verified by client",
            ),
            payment_method=PaymentMethod.STRIPE,
        )
        db.refresh(order)
        enrollments = get_enrollments_for_order(db, current_user.id, order.id, order.course_ids)
    else:
        result = fulfill_direct_session(db, session)
        enrollments = result.enrollments if result else []

    return {
        "success": True,
        "payment": {
            "session_id": session.get("id"),
            "amount_total": session.get("amount_total"),
            "currency": (session.get("currency") or "").upper(),
            "order_id": order.id if order else None,
            "order_status": order.status.value if order else None,
            "enrollments": [enrollment_to_dict(e) for e in enrollments],
        }
    }


def _process_webhook(db: Session, provider: str, event_id: str, event_type: str, handler, payload) -> None:
    """
    Record the delivery and run the handler. Processing errors are logged and
    recorded, never raised: the gateway always gets its 200.
    """
    record = None
    try:
        record, should_process = record_webhook_event(db, provider, event_id, event_type)
        if not should_process:
            return
        handler(db, payload)
        mark_webhook_processed(db, record)
        logger.info(f"{provider} webhook {event_id} ({event_type}) processed")
    except Exception as e:
        db.rollback()
        logger.error(f"Error processing {provider} webhook {event_id} ({event_type}): {e}", exc_info=True)
        if record is not None:
            try:
                mark_webhook_failed(db, record, str(e))
            except Exception as log_error:
                db.rollback()
                logger.error(f"Could not record webhook failure for {event_id}: {log_error}")


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Stripe webhook. 400 on a bad signature, otherwise 200 with an empty body,
    even when processing fails (Stripe would retry forever otherwise).
    """
    payload = await request.body()
    event = stripe_service.construct_webhook_event(payload, request.headers.get("Stripe-Signature"))

    _process_webhook(db, "stripe", event["id"], event["type"], handle_stripe_event, event)
    return Response(status_code=200)


@router.post("/razorpay/webhook")
async def razorpay_webhook(
    request: Request,
    db: Session = Depends(get_db)
):
    """Razorpay webhook: payment.captured / order.paid / payment.failed."""
    body_str = (await request.body()).decode('utf-8')
    razorpay_service.verify_webhook_signature(body_str, request.headers.get("X-Razorpay-Signature"))

    try:
        data = json.loads(body_str)
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in Razorpay webhook payload: {e}")
        raise SignatureError("Invalid webhook payload")

    event_type = data.get("event") or "unknown"
    payment_entity = ((data.get("payload") or {}).get("payment") or {}).get("entity") or {}
    event_id = request.headers.get("X-Razorpay-Event-Id") or f"{event_type}:{payment_entity.get('id') or data.get('created_at')}"

    _process_webhook(db, "razorpay", event_id, event_type, handle_razorpay_event, data)
    return Response(status_code=200)
