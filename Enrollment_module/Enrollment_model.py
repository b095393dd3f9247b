from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, JSON, UniqueConstraint, func
from sqlalchemy.orm import relationship
from database import Base


class Enrollment(Base):
    """
    Grants a user access to a course.
    UNIQUE(user_id, course_id) is the storage-level guard against double fulfillment.
    """
    __tablename__ = "enrollments"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_enrollments_user_course"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    enrolled_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    payment_method = Column(String(20), nullable=True)  # manual | stripe | razorpay | free
    amount_paid = Column(Float, nullable=False, default=0.0)  # Share of the order total, order currency
    currency = Column(String(3), nullable=True)
    payment_id = Column(String(255), nullable=True, index=True)  # Gateway payment reference
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)

    user = relationship("User")
    course = relationship("Course")
    order = relationship("Order")
    progress = relationship("CourseProgress", back_populates="enrollment", uselist=False, cascade="all, delete-orphan")


class CourseProgress(Base):
    """Progress tracker created alongside each enrollment."""
    __tablename__ = "course_progress"

    id = Column(Integer, primary_key=True, index=True)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    completed_lessons = Column(JSON, nullable=False, default=list)
    progress_percentage = Column(Float, nullable=False, default=0.0)
    last_accessed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    enrollment = relationship("Enrollment", back_populates="progress")
