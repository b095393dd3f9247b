from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime


def _normalize_code(v: str) -> str:
    if not v or not v.strip():
        raise ValueError('Coupon code is required')
    return v.strip().upper()


class CouponCreate(BaseModel):
    code: str = Field(..., max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    discount_percentage: float = Field(..., ge=0, le=100)
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, gt=0, description="Leave empty for unlimited uses")
    minimum_purchase: float = Field(0.0, ge=0)
    applicable_courses: List[int] = []
    applicable_pending_courses: List[int] = []
    is_active: bool = True

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return _normalize_code(v)


class CouponUpdate(BaseModel):
    description: Optional[str] = Field(None, max_length=500)
    discount_percentage: Optional[float] = Field(None, ge=0, le=100)
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, gt=0)
    minimum_purchase: Optional[float] = Field(None, ge=0)
    applicable_courses: Optional[List[int]] = None
    applicable_pending_courses: Optional[List[int]] = None
    is_active: Optional[bool] = None


class CourseCouponCreate(BaseModel):
    """Coupon locked to a single course; the course id comes from the path."""
    code: str = Field(..., max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    discount_percentage: float = Field(..., ge=0, le=100)
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = Field(None, gt=0)
    minimum_purchase: float = Field(0.0, ge=0)

    @field_validator('code')
    @classmethod
    def validate_code(cls, v):
        return _normalize_code(v)


class ValidateCourseCouponRequest(BaseModel):
    course_id: int = Field(..., gt=0)
    coupon_code: str

    @field_validator('coupon_code')
    @classmethod
    def validate_coupon_code(cls, v):
        return _normalize_code(v)


class CouponResponse(BaseModel):
    id: int
    code: str
    description: Optional[str] = None
    discount_percentage: float
    is_active: bool
    valid_until: Optional[datetime] = None
    max_uses: Optional[int] = None
    used_count: int
    minimum_purchase: float
    applicable_courses: List[int] = []
    applicable_pending_courses: List[int] = []
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
