"""
Coupon model for managing discount coupons.
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, JSON, ForeignKey, func
from sqlalchemy.orm import relationship
from database import Base


class Coupon(Base):
    """
    Percentage discount rule applied at checkout.
    Codes are stored uppercase; lookups normalize the input the same way.
    """
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(String(500), nullable=True)

    discount_percentage = Column(Float, nullable=False)  # 0-100
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)  # None = never expires

    # Usage limits
    max_uses = Column(Integer, nullable=True)  # None = unlimited
    used_count = Column(Integer, nullable=False, default=0)

    minimum_purchase = Column(Float, nullable=False, default=0.0)

    # Both empty = applies to every course
    applicable_courses = Column(JSON, nullable=False, default=list)  # published course ids
    applicable_pending_courses = Column(JSON, nullable=False, default=list)  # draft course ids

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    creator = relationship("User")

    @property
    def is_restricted(self) -> bool:
        return bool(self.applicable_courses or self.applicable_pending_courses)
