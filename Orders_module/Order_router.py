from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import logging

from config import settings
from deps import get_db, get_exchange_rate_service
from Currency_module.exchange_rate import ExchangeRateService
from Enrollment_module.Enrollment_router import enrollment_to_dict
from Login_module.User.user_model import User
from Login_module.Utils.auth_user import get_current_user
from Login_module.Utils.datetime_utils import to_ist_isoformat
from .Order_model import Order
from .Order_schema import CheckoutRequest, GatewaySessionRequest, BuyNowRequest, ConfirmOrderRequest
from . import Order_crud, checkout_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])


def order_to_dict(order: Order, include_history: bool = False) -> dict:
    data = {
        "order_id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "status": order.status.value,
        "source": order.source.value,
        "payment_method": order.payment_method.value,
        "payment_reference": order.payment_reference,
        "currency": order.currency,
        "base_currency": order.base_currency,
        "exchange_rate": order.exchange_rate,
        "coupon_code": order.coupon_code,
        "discount_percentage": order.discount_percentage,
        "subtotal": order.subtotal,
        "discount_amount": order.discount_amount,
        "total": order.total,
        "base_subtotal": order.base_subtotal,
        "base_discount_amount": order.base_discount_amount,
        "base_total": order.base_total,
        "paid_at": to_ist_isoformat(order.paid_at),
        "created_at": to_ist_isoformat(order.created_at),
        "items": [
            {
                "order_item_id": item.id,
                "course_id": item.course_id,
                "title": item.title,
                "unit_price": item.unit_price,
                "base_unit_price": item.base_unit_price,
                "quantity": item.quantity,
            }
            for item in order.items
        ],
    }
    if include_history:
        data["status_history"] = [
            {
                "status": h.status,
                "previous_status": h.previous_status,
                "notes": h.notes,
                "changed_by": h.changed_by,
                "created_at": to_ist_isoformat(h.created_at),
            }
            for h in order.status_history
        ]
    return data


def checkout_response(result: checkout_service.CheckoutResult, message: str) -> dict:
    data = {
        "order": order_to_dict(result.order),
        "requires_payment": result.requires_payment,
    }
    if not result.requires_payment:
        data["enrollments"] = [enrollment_to_dict(e) for e in result.enrollments]
        message = "Order completed (free checkout)"
    return {"status": "success", "message": message, "data": data}


@router.post("/checkout")
def checkout(
    request_data: CheckoutRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    rate_service: ExchangeRateService = Depends(get_exchange_rate_service)
):
    """Build a pending order from the cart. Zero-total orders are fulfilled immediately."""
    result = checkout_service.checkout_cart(
        db, current_user.id, request_data.payment_method, request_data.currency, rate_service
    )
    return checkout_response(result, "Order created")


@router.post("/stripe-session")
def create_stripe_session(
    request_data: GatewaySessionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    rate_service: ExchangeRateService = Depends(get_exchange_rate_service)
):
    result = checkout_service.start_stripe_checkout(db, current_user.id, request_data.currency, rate_service)
    response = checkout_response(result, "Stripe session created")
    if result.requires_payment:
        response["data"]["session_id"] = result.session_id
        response["data"]["url"] = result.checkout_url
    return response


@router.post("/razorpay-order")
def create_razorpay_order(
    request_data: GatewaySessionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    rate_service: ExchangeRateService = Depends(get_exchange_rate_service)
):
    result = checkout_service.start_razorpay_checkout(db, current_user.id, request_data.currency, rate_service)
    response = checkout_response(result, "Razorpay order created")
    if result.requires_payment:
        response["data"]["razorpay_order_id"] = result.gateway_order.get("id")
        response["data"]["amount"] = result.gateway_order.get("amount")
        response["data"]["key_id"] = settings.RAZORPAY_KEY_ID
    return response


@router.post("/buy-now")
def buy_now(
    request_data: BuyNowRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    rate_service: ExchangeRateService = Depends(get_exchange_rate_service)
):
    """Single-course order. The cart is left alone."""
    result = checkout_service.buy_now(
        db,
        current_user.id,
        request_data.course_id,
        request_data.payment_method,
        request_data.currency,
        rate_service,
        coupon_code=request_data.coupon_code,
    )
    return checkout_response(result, "Order created")


@router.post("/confirm")
def confirm_order(
    request_data: ConfirmOrderRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Finalize payment and enroll. Safe to retry: a paid order comes back unchanged."""
    result = checkout_service.confirm_order(
        db,
        current_user.id,
        request_data.order_id,
        payment_method=request_data.payment_method,
        payment_reference=request_data.payment_reference,
        razorpay_order_id=request_data.razorpay_order_id,
        razorpay_signature=request_data.razorpay_signature,
    )
    message = "Order already confirmed" if result.already_fulfilled else "Payment confirmed and enrollment completed"
    return {
        "status": "success",
        "message": message,
        "data": {
            "order": order_to_dict(result.order),
            "enrollments": [enrollment_to_dict(e) for e in result.enrollments],
        }
    }


@router.get("/list")
def list_orders(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    orders = Order_crud.list_user_orders(db, current_user.id, limit=limit)
    return {
        "status": "success",
        "message": f"Found {len(orders)} order(s)",
        "data": [order_to_dict(o) for o in orders]
    }


@router.get("/{order_id}")
def get_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    order = Order_crud.get_order_for_user(db, order_id, current_user.id)
    return {
        "status": "success",
        "message": "Order retrieved successfully",
        "data": order_to_dict(order, include_history=True)
    }


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    order = checkout_service.cancel_order(db, current_user.id, order_id)
    return {
        "status": "success",
        "message": f"Order {order.order_number} cancelled",
        "data": order_to_dict(order)
    }
