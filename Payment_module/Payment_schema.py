"""
Payment schemas for request/response models.
"""
from pydantic import BaseModel, Field, field_validator
from typing import List


class DirectCheckoutItem(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    price: float = Field(..., ge=0, description="Major units, e.g. 19.99")
    course_id: int = Field(..., gt=0, description="Course enrolled once the session is paid")


class DirectCheckoutRequest(BaseModel):
    """Direct/legacy checkout: raw line items, no server-side course validation"""
    items: List[DirectCheckoutItem] = Field(..., min_length=1)
    currency: str = Field("USD", min_length=3, max_length=3)

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v):
        return v.strip().upper()


class VerifyPaymentRequest(BaseModel):
    session_id: str = Field(..., min_length=1, description="Stripe checkout session id")
