"""
CRUD operations for coupons.
"""
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from errors import ConflictError, NotFoundError
from Course_module.course_service import CourseRef
from Login_module.Utils.datetime_utils import is_past, now_ist
from .Coupon_model import Coupon
from .Coupon_schema import CouponCreate, CouponUpdate, CourseCouponCreate
from .coupon_service import normalize_code

logger = logging.getLogger(__name__)

DEFAULT_COUPONS = [
    {
        "code": "WELCOME40",
        "discount_percentage": 40,
        "description": "Welcome discount - 40% off for first-time purchasers",
        "max_uses": 1000,
        "minimum_purchase": 0,
    },
    {
        "code": "NEWUSER40",
        "discount_percentage": 40,
        "description": "New user special - 40% off for first-time buyers",
        "max_uses": 500,
        "minimum_purchase": 0,
    },
    {
        "code": "SPRING40",
        "discount_percentage": 40,
        "description": "Spring sale - 40% off for everyone",
        "max_uses": 200,
        "minimum_purchase": 0,
    },
]


def get_coupon_by_id(db: Session, coupon_id: int) -> Optional[Coupon]:
    return db.query(Coupon).filter(Coupon.id == coupon_id).first()


def get_coupon_by_code(db: Session, code: str) -> Optional[Coupon]:
    return db.query(Coupon).filter(Coupon.code == normalize_code(code)).first()


def _ensure_code_free(db: Session, code: str):
    if get_coupon_by_code(db, code):
        raise ConflictError("Coupon code already exists", {"coupon_code": normalize_code(code)})


def list_coupons(db: Session) -> List[Coupon]:
    return db.query(Coupon).order_by(Coupon.created_at.desc(), Coupon.id.desc()).all()


def list_available_coupons(db: Session) -> List[Coupon]:
    """Active coupons that have not expired."""
    coupons = db.query(Coupon).filter(Coupon.is_active == True).order_by(Coupon.id).all()
    now = now_ist()
    return [c for c in coupons if not is_past(c.valid_until, now)]


def create_coupon(db: Session, data: CouponCreate, created_by: Optional[int]) -> Coupon:
    _ensure_code_free(db, data.code)

    coupon = Coupon(
        code=normalize_code(data.code),
        description=data.description,
        discount_percentage=data.discount_percentage,
        is_active=data.is_active,
        valid_until=data.valid_until,
        max_uses=data.max_uses,
        used_count=0,
        minimum_purchase=data.minimum_purchase,
        applicable_courses=list(data.applicable_courses),
        applicable_pending_courses=list(data.applicable_pending_courses),
        created_by=created_by,
    )
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    logger.info(f"Coupon '{coupon.code}' created by user {created_by}")
    return coupon


def update_coupon(db: Session, coupon_id: int, data: CouponUpdate) -> Coupon:
    coupon = get_coupon_by_id(db, coupon_id)
    if not coupon:
        raise NotFoundError("Coupon not found", {"coupon_id": coupon_id})

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(coupon, field, value)

    db.commit()
    db.refresh(coupon)
    logger.info(f"Coupon '{coupon.code}' updated")
    return coupon


def delete_coupon(db: Session, coupon_id: int) -> None:
    coupon = get_coupon_by_id(db, coupon_id)
    if not coupon:
        raise NotFoundError("Coupon not found", {"coupon_id": coupon_id})
    db.delete(coupon)
    db.commit()
    logger.info(f"Coupon '{coupon.code}' deleted")


def generate_default_coupons(db: Session, created_by: Optional[int]) -> List[Coupon]:
    """Seed the default 40% coupons. Codes that already exist are left alone."""
    created = []
    for entry in DEFAULT_COUPONS:
        if get_coupon_by_code(db, entry["code"]):
            continue
        coupon = Coupon(created_by=created_by, used_count=0, is_active=True, **entry)
        db.add(coupon)
        created.append(coupon)

    db.commit()
    for coupon in created:
        db.refresh(coupon)
    logger.info(f"Generated {len(created)} default coupon(s)")
    return created


# Course-scoped coupons

def coupon_matches_course(coupon: Coupon, ref: CourseRef) -> bool:
    published = [int(cid) for cid in (coupon.applicable_courses or [])]
    drafts = [int(cid) for cid in (coupon.applicable_pending_courses or [])]
    return (ref.published_id is not None and ref.published_id in published) or \
        (ref.draft_id is not None and ref.draft_id in drafts)


def list_course_coupons(db: Session, ref: CourseRef) -> List[Coupon]:
    # JSON list membership checked in Python
    coupons = list_coupons(db)
    return [c for c in coupons if coupon_matches_course(c, ref)]


def create_course_coupon(
    db: Session,
    ref: CourseRef,
    data: CourseCouponCreate,
    created_by: int
) -> Coupon:
    """Create a coupon locked to one course, listing both its published and draft ids."""
    _ensure_code_free(db, data.code)

    coupon = Coupon(
        code=normalize_code(data.code),
        description=data.description or f"{data.discount_percentage:g}% off on this course",
        discount_percentage=data.discount_percentage,
        is_active=True,
        valid_until=data.valid_until,
        max_uses=data.max_uses,
        used_count=0,
        minimum_purchase=data.minimum_purchase,
        applicable_courses=[ref.published_id] if ref.published_id is not None else [],
        applicable_pending_courses=[ref.draft_id] if ref.draft_id is not None else [],
        created_by=created_by,
    )
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    logger.info(f"Course coupon '{coupon.code}' created for course {ref.published_id or ref.draft_id}")
    return coupon
