"""
Course models.

A course lives in two tables: PendingCourse is the instructor's draft,
Course is the published copy. Each side keeps the other's id so coupons
and lookups can match either one.
"""
from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Boolean, func
from sqlalchemy.orm import relationship
from database import Base


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    landing_title = Column(String(255), nullable=True)
    price = Column(Float, nullable=False, default=0.0)  # Base currency (INR)
    published = Column(Boolean, nullable=False, default=False, index=True)
    instructor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    # Draft this course was published from
    pending_course_id = Column(Integer, ForeignKey("pending_courses.id", ondelete="SET NULL"), nullable=True, index=True)

    # Derived counter, incremented once per new enrollment
    learner_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    instructor = relationship("User")
    pending_course = relationship("PendingCourse", foreign_keys=[pending_course_id])

    @property
    def display_title(self) -> str:
        return self.title or self.landing_title or "Course"


class PendingCourse(Base):
    __tablename__ = "pending_courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    price = Column(Float, nullable=False, default=0.0)
    instructor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="draft")  # draft | submitted | approved | rejected

    # Published copy, filled when the draft is approved
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="SET NULL", use_alter=True, name="fk_pending_courses_course_id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    instructor = relationship("User")
