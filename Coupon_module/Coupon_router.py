from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
import logging

from deps import get_db
from errors import LearnHubError, NotFoundError, status_code_for
from Course_module.course_service import CourseRef, resolve_course_ref
from Login_module.User.user_model import User
from Login_module.Utils.auth_user import get_current_user, require_instructor, is_admin
from Login_module.Utils.datetime_utils import to_ist_isoformat
from .Coupon_model import Coupon
from .Coupon_schema import CouponCreate, CouponUpdate, CourseCouponCreate, ValidateCourseCouponRequest
from . import Coupon_crud
from .coupon_service import validate_coupon_for_course

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/coupons", tags=["Coupons"])


def coupon_to_dict(coupon: Coupon) -> dict:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "description": coupon.description,
        "discount_percentage": coupon.discount_percentage,
        "is_active": coupon.is_active,
        "valid_until": to_ist_isoformat(coupon.valid_until),
        "max_uses": coupon.max_uses,
        "used_count": coupon.used_count,
        "remaining_uses": coupon.max_uses - coupon.used_count if coupon.max_uses is not None else None,
        "minimum_purchase": coupon.minimum_purchase,
        "applicable_courses": coupon.applicable_courses or [],
        "applicable_pending_courses": coupon.applicable_pending_courses or [],
        "created_by": coupon.created_by,
        "created_at": to_ist_isoformat(coupon.created_at),
    }


def _course_for_owner(db: Session, course_id: int, user: User, action: str) -> CourseRef:
    """Resolve the course and make sure the caller owns it (admins pass)."""
    ref = resolve_course_ref(db, course_id)
    if ref.instructor_id != user.id and not is_admin(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You can only {action} coupons for your own courses"
        )
    return ref


@router.get("/")
def list_all_coupons(
    current_user: User = Depends(require_instructor),
    db: Session = Depends(get_db)
):
    """List every coupon (instructor/admin only)."""
    coupons = Coupon_crud.list_coupons(db)
    return {
        "status": "success",
        "message": f"Found {len(coupons)} coupon(s)",
        "data": [coupon_to_dict(c) for c in coupons]
    }


@router.get("/available")
def list_available_coupons(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Active, unexpired coupons a learner can try."""
    coupons = Coupon_crud.list_available_coupons(db)
    return {
        "status": "success",
        "message": f"Found {len(coupons)} available coupon(s)",
        "data": [
            {
                "code": c.code,
                "discount_percentage": c.discount_percentage,
                "description": c.description,
            }
            for c in coupons
        ]
    }


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_coupon(
    coupon_data: CouponCreate,
    current_user: User = Depends(require_instructor),
    db: Session = Depends(get_db)
):
    coupon = Coupon_crud.create_coupon(db, coupon_data, created_by=current_user.id)
    return {
        "status": "success",
        "message": f"Coupon '{coupon.code}' created successfully",
        "data": coupon_to_dict(coupon)
    }


@router.put("/{coupon_id}")
def update_coupon(
    coupon_id: int,
    coupon_data: CouponUpdate,
    current_user: User = Depends(require_instructor),
    db: Session = Depends(get_db)
):
    coupon = Coupon_crud.update_coupon(db, coupon_id, coupon_data)
    return {
        "status": "success",
        "message": f"Coupon '{coupon.code}' updated successfully",
        "data": coupon_to_dict(coupon)
    }


@router.delete("/{coupon_id}")
def delete_coupon(
    coupon_id: int,
    current_user: User = Depends(require_instructor),
    db: Session = Depends(get_db)
):
    Coupon_crud.delete_coupon(db, coupon_id)
    return {"status": "success", "message": "Coupon deleted successfully"}


@router.post("/generate-default")
def generate_default_coupons(
    current_user: User = Depends(require_instructor),
    db: Session = Depends(get_db)
):
    created = Coupon_crud.generate_default_coupons(db, created_by=current_user.id)
    return {
        "status": "success",
        "message": "Default coupons created successfully",
        "data": {
            "created_coupons": [coupon_to_dict(c) for c in created],
            "total_created": len(created)
        }
    }


@router.post("/validate-course")
def validate_course_coupon(
    request_data: ValidateCourseCouponRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Check a coupon against one course (course detail page "Apply" button).
    Rejections come back as {"valid": false, "message": ...}.
    """
    try:
        result = validate_coupon_for_course(db, request_data.course_id, request_data.coupon_code)
    except LearnHubError as e:
        logger.info(
            f"Coupon '{request_data.coupon_code}' rejected for course {request_data.course_id} "
            f"(user {current_user.id}): {e.message}"
        )
        return JSONResponse(
            status_code=status_code_for(e),
            content={"valid": False, "message": e.message}
        )
    return result.to_response()


@router.get("/course/{course_id}")
def list_course_coupons(
    course_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    ref = _course_for_owner(db, course_id, current_user, "view")
    coupons = Coupon_crud.list_course_coupons(db, ref)
    return {
        "status": "success",
        "message": f"Found {len(coupons)} coupon(s) for course {course_id}",
        "data": [coupon_to_dict(c) for c in coupons]
    }


@router.post("/course/{course_id}", status_code=status.HTTP_201_CREATED)
def create_course_coupon(
    course_id: int,
    coupon_data: CourseCouponCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    ref = _course_for_owner(db, course_id, current_user, "create")
    coupon = Coupon_crud.create_course_coupon(db, ref, coupon_data, created_by=current_user.id)
    return {
        "status": "success",
        "message": f"Coupon '{coupon.code}' created for course {course_id}",
        "data": coupon_to_dict(coupon)
    }


@router.delete("/course/{course_id}/{coupon_id}")
def delete_course_coupon(
    course_id: int,
    coupon_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    ref = _course_for_owner(db, course_id, current_user, "delete")

    coupon = Coupon_crud.get_coupon_by_id(db, coupon_id)
    if not coupon:
        raise NotFoundError("Coupon not found", {"coupon_id": coupon_id})

    if not Coupon_crud.coupon_matches_course(coupon, ref):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This coupon does not belong to this course"
        )

    Coupon_crud.delete_coupon(db, coupon_id)
    return {"status": "success", "message": "Coupon deleted successfully"}
