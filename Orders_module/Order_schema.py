"""
Order schemas for request/response models.
One explicit request schema per endpoint, validated before business logic runs.
"""
from pydantic import BaseModel, Field, field_validator
from typing import Optional

from .Order_model import PaymentMethod


def _upper(v: Optional[str]) -> Optional[str]:
    return v.strip().upper() if v else v


class CheckoutRequest(BaseModel):
    """Build an order from the cart; auto-completes when the total is zero"""
    payment_method: PaymentMethod = PaymentMethod.MANUAL
    currency: str = Field("INR", min_length=3, max_length=3)

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v):
        return _upper(v)


class GatewaySessionRequest(BaseModel):
    """Build an order from the cart plus a hosted gateway session"""
    currency: str = Field("INR", min_length=3, max_length=3)

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v):
        return _upper(v)


class BuyNowRequest(BaseModel):
    course_id: int = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.MANUAL
    currency: str = Field("INR", min_length=3, max_length=3)
    coupon_code: Optional[str] = Field(None, max_length=50)

    @field_validator('currency', 'coupon_code')
    @classmethod
    def normalize_codes(cls, v):
        return _upper(v) or None


class ConfirmOrderRequest(BaseModel):
    order_id: int = Field(..., gt=0)
    payment_method: Optional[PaymentMethod] = None
    payment_reference: Optional[str] = Field(
        None, max_length=255,
        description="Stripe session id, Razorpay payment id or a manual reference"
    )
    razorpay_order_id: Optional[str] = Field(None, max_length=255)
    razorpay_signature: Optional[str] = Field(None, max_length=255)
