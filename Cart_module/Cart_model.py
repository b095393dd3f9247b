from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, func, String, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base


class Cart(Base):
    """
    Cart table - one cart per user.
    Ephemeral pre-order state; once an order exists the order is the source of truth.
    """
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)

    # Applied coupon, re-validated whenever the cart changes
    coupon_code = Column(String(50), nullable=True)
    discount_percentage = Column(Float, nullable=False, default=0.0)

    # Base currency (INR)
    total_before_discount = Column(Float, nullable=False, default=0.0)
    total_after_discount = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    last_activity_at = Column(DateTime(timezone=True), nullable=True)  # Last time any item was added/removed

    user = relationship("User")
    items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan", order_by="CartItem.id")


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (
        UniqueConstraint("cart_id", "course_id", name="uq_cart_items_cart_course"),
    )

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    cart = relationship("Cart", back_populates="items")
    course = relationship("Course")
