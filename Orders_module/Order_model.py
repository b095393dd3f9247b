"""
Order model - immutable snapshot of one checkout attempt.
Totals are kept both in the order currency and in the base currency (INR).
"""
from sqlalchemy import Column, Integer, String, Float, DateTime, func, Enum, ForeignKey, Text
from sqlalchemy.orm import relationship
from database import Base
import enum


class OrderStatus(str, enum.Enum):
    """pending -> paid | failed | cancelled. Nothing leaves a terminal state."""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PaymentMethod(str, enum.Enum):
    MANUAL = "manual"
    STRIPE = "stripe"
    RAZORPAY = "razorpay"


class OrderSource(str, enum.Enum):
    CART = "cart"
    SINGLE = "single"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    currency = Column(String(3), nullable=False, default="INR")
    base_currency = Column(String(3), nullable=False, default="INR")
    exchange_rate = Column(Float, nullable=False, default=1.0)  # base -> order currency

    coupon_code = Column(String(50), nullable=True, index=True)
    discount_percentage = Column(Float, nullable=False, default=0.0)

    # Order currency
    subtotal = Column(Float, nullable=False)
    discount_amount = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False)

    # Base currency, kept for audit and refunds
    base_subtotal = Column(Float, nullable=False)
    base_discount_amount = Column(Float, nullable=False, default=0.0)
    base_total = Column(Float, nullable=False)

    status = Column(
        Enum(OrderStatus, name="orderstatus", values_callable=_enum_values),
        nullable=False, default=OrderStatus.PENDING, index=True
    )
    payment_method = Column(
        Enum(PaymentMethod, name="paymentmethod", values_callable=_enum_values),
        nullable=False, default=PaymentMethod.MANUAL
    )
    payment_reference = Column(String(255), nullable=True, unique=True, index=True)  # Stripe session id / Razorpay payment id
    gateway_order_id = Column(String(255), nullable=True, index=True)  # Razorpay order id
    checkout_url = Column(Text, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    source = Column(
        Enum(OrderSource, name="ordersource", values_callable=_enum_values),
        nullable=False, default=OrderSource.CART
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")
    status_history = relationship(
        "OrderStatusHistory", back_populates="order", cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id"
    )

    @property
    def course_ids(self):
        return [item.course_id for item in self.items]


class OrderItem(Base):
    """One course line. Title and prices are snapshots taken when the order was built."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    unit_price = Column(Float, nullable=False)  # Order currency
    base_unit_price = Column(Float, nullable=False)  # Base currency
    quantity = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    order = relationship("Order", back_populates="items")
    course = relationship("Course")


class OrderStatusHistory(Base):
    """
    Order status history - tracks all status changes for an order.
    """
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    previous_status = Column(String(20), nullable=True)  # NULL for initial status
    notes = Column(Text, nullable=False)
    changed_by = Column(String(100), nullable=False)  # user_id, "system" or "webhook"
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    order = relationship("Order", back_populates="status_history")
