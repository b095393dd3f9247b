from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from deps import get_db
from Currency_module.money import round_money, to_decimal
from Login_module.User.user_model import User
from Login_module.Utils.auth_user import get_current_user
from .Cart_model import Cart
from .Cart_schema import CartAdd, ApplyCouponRequest, CartResponse
from . import Cart_crud

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cart", tags=["Cart"])


def build_cart_data(cart: Cart) -> dict:
    items = []
    for item in cart.items:
        course = item.course
        if course is None:
            continue
        price = round_money(course.price)
        items.append({
            "cart_item_id": item.id,
            "course_id": course.id,
            "title": course.display_title,
            "price": price,
            "quantity": item.quantity,
            "total_amount": round_money(to_decimal(price) * item.quantity),
            "published": bool(course.published),
        })

    subtotal = cart.total_before_discount or 0.0
    grand_total = cart.total_after_discount or 0.0
    return {
        "cart_summary": {
            "cart_id": cart.id,
            "total_items": len(items),
            "subtotal_amount": subtotal,
            "coupon_code": cart.coupon_code,
            "discount_percentage": cart.discount_percentage or 0.0,
            "discount_amount": round_money(to_decimal(subtotal) - to_decimal(grand_total)),
            "grand_total": grand_total,
        },
        "cart_items": items,
    }


@router.get("/view", response_model=CartResponse)
def view_cart(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    cart = Cart_crud.get_or_create_user_cart(db, current_user.id)
    Cart_crud.recalculate_totals(cart)
    db.commit()
    db.refresh(cart)
    return {
        "status": "success",
        "message": "Cart retrieved successfully" if cart.items else "Cart is empty",
        "data": build_cart_data(cart)
    }


@router.post("/add", response_model=CartResponse)
def add_to_cart(
    item: CartAdd,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    cart = Cart_crud.add_course_to_cart(db, current_user.id, item.course_id)
    return {
        "status": "success",
        "message": "Course added to cart",
        "data": build_cart_data(cart)
    }


@router.delete("/remove/{course_id}", response_model=CartResponse)
def remove_from_cart(
    course_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    cart = Cart_crud.remove_course_from_cart(db, current_user.id, course_id)
    return {
        "status": "success",
        "message": "Course removed from cart",
        "data": build_cart_data(cart)
    }


@router.post("/apply-coupon", response_model=CartResponse)
def apply_coupon(
    request_data: ApplyCouponRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Apply coupon code to cart. The coupon must apply to every course in the cart."""
    cart = Cart_crud.apply_coupon(db, current_user.id, request_data.coupon_code)
    return {
        "status": "success",
        "message": f"Coupon '{cart.coupon_code}' applied successfully",
        "data": build_cart_data(cart)
    }


@router.delete("/remove-coupon")
def remove_coupon(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    removed = Cart_crud.remove_coupon(db, current_user.id)
    if not removed:
        return {"status": "success", "message": "No coupon was applied to your cart."}
    return {"status": "success", "message": "Coupon removed from cart."}


@router.delete("/clear")
def clear_cart(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    removed = Cart_crud.clear_user_cart(db, current_user.id)
    return {
        "status": "success",
        "message": f"Cart cleared. {removed} item(s) removed.",
        "data": {"items_removed": removed}
    }
