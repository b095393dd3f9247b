"""
Inbound webhook log. event_id is the idempotency key for at-least-once delivery.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, UniqueConstraint, func
from database import Base


class WebhookEvent(Base):
    __tablename__ = "webhook_events"
    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_webhook_events_provider_event"),
    )

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(20), nullable=False, index=True)  # stripe | razorpay
    event_id = Column(String(255), nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    status = Column(String(20), nullable=False, default="received", index=True)  # received | processed | failed
    attempts = Column(Integer, nullable=False, default=1)
    error = Column(Text, nullable=True)

    received_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
