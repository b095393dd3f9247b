from pydantic import BaseModel, Field, field_validator
from typing import Optional, List


class CartAdd(BaseModel):
    course_id: int = Field(..., gt=0)


class ApplyCouponRequest(BaseModel):
    coupon_code: str

    @field_validator('coupon_code')
    @classmethod
    def validate_coupon_code(cls, v):
        if not v or not v.strip():
            raise ValueError('Coupon code is required')
        return v.strip().upper()


class CartItemDetail(BaseModel):
    cart_item_id: int
    course_id: int
    title: str
    price: float
    quantity: int
    total_amount: float
    published: bool


class CartSummary(BaseModel):
    cart_id: int
    total_items: int
    subtotal_amount: float
    coupon_code: Optional[str] = None
    discount_percentage: float = 0.0
    discount_amount: float = 0.0
    grand_total: float


class CartData(BaseModel):
    cart_summary: CartSummary
    cart_items: List[CartItemDetail]


class CartResponse(BaseModel):
    status: str
    message: str
    data: CartData
