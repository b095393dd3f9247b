from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from deps import get_db
from Login_module.User.user_model import User
from Login_module.Utils.auth_user import get_current_user
from Login_module.Utils.datetime_utils import to_ist_isoformat
from .Enrollment_crud import list_user_enrollments
from .Enrollment_model import Enrollment

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/enrollments", tags=["Enrollments"])


def enrollment_to_dict(enrollment: Enrollment) -> dict:
    progress = enrollment.progress
    return {
        "enrollment_id": enrollment.id,
        "course_id": enrollment.course_id,
        "course_title": enrollment.course.display_title if enrollment.course else None,
        "enrolled_at": to_ist_isoformat(enrollment.enrolled_at),
        "payment_method": enrollment.payment_method,
        "amount_paid": enrollment.amount_paid,
        "currency": enrollment.currency,
        "payment_id": enrollment.payment_id,
        "order_id": enrollment.order_id,
        "progress": {
            "completed_lessons": progress.completed_lessons or [],
            "progress_percentage": progress.progress_percentage,
            "last_accessed_at": to_ist_isoformat(progress.last_accessed_at),
        } if progress else None,
    }


@router.get("/my")
def get_my_enrollments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the caller's enrollments with their progress records."""
    enrollments = list_user_enrollments(db, current_user.id)
    return {
        "status": "success",
        "message": f"Found {len(enrollments)} enrollment(s)",
        "data": [enrollment_to_dict(e) for e in enrollments]
    }
