"""
Enrollment persistence. create_enrollment_for_user is insert-or-ignore:
the (user_id, course_id) unique constraint decides the winner of a race.
"""
from typing import Iterable, List, Optional, Set, Tuple
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .Enrollment_model import Enrollment, CourseProgress

logger = logging.getLogger(__name__)


def get_enrollment(db: Session, user_id: int, course_id: int) -> Optional[Enrollment]:
    return db.query(Enrollment).filter(
        Enrollment.user_id == user_id,
        Enrollment.course_id == course_id
    ).first()


def get_enrolled_course_ids(db: Session, user_id: int, course_ids: Iterable[int]) -> Set[int]:
    ids = list({int(cid) for cid in course_ids})
    if not ids:
        return set()
    rows = db.query(Enrollment.course_id).filter(
        Enrollment.user_id == user_id,
        Enrollment.course_id.in_(ids)
    ).all()
    return {row[0] for row in rows}


def list_user_enrollments(db: Session, user_id: int) -> List[Enrollment]:
    return db.query(Enrollment).filter(
        Enrollment.user_id == user_id
    ).order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc()).all()


def get_enrollments_for_order(db: Session, user_id: int, order_id: int, course_ids: Iterable[int]) -> List[Enrollment]:
    """
    Enrollments covering an order's courses. Includes enrollments created by an
    earlier order for the same course, so a re-confirm returns the full set.
    """
    ids = list(course_ids)
    if not ids:
        return []
    rows = db.query(Enrollment).filter(
        Enrollment.user_id == user_id,
        Enrollment.course_id.in_(ids)
    ).all()
    by_course = {e.course_id: e for e in rows}
    return [by_course[cid] for cid in ids if cid in by_course]


def create_enrollment_for_user(
    db: Session,
    user_id: int,
    course_id: int,
    payment_method: Optional[str] = None,
    amount_paid: float = 0.0,
    currency: Optional[str] = None,
    payment_id: Optional[str] = None,
    order_id: Optional[int] = None,
) -> Tuple[Enrollment, bool]:
    """
    Create the enrollment and its progress tracker inside a SAVEPOINT.
    Returns (enrollment, created). An existing enrollment is returned unchanged.
    Does not commit.
    """
    existing = get_enrollment(db, user_id, course_id)
    if existing:
        return existing, False

    try:
        with db.begin_nested():
            enrollment = Enrollment(
                user_id=user_id,
                course_id=course_id,
                payment_method=payment_method,
                amount_paid=amount_paid,
                currency=currency,
                payment_id=payment_id,
                order_id=order_id,
            )
            db.add(enrollment)
            db.flush()
            db.add(CourseProgress(
                enrollment_id=enrollment.id,
                user_id=user_id,
                course_id=course_id,
                completed_lessons=[],
                progress_percentage=0.0,
            ))
            db.flush()
    except IntegrityError:
        # Lost the race to a concurrent fulfillment
        existing = get_enrollment(db, user_id, course_id)
        if existing is None:
            raise
        logger.info(f"Enrollment for user {user_id}, course {course_id} created concurrently; reusing it")
        return existing, False

    return enrollment, True
