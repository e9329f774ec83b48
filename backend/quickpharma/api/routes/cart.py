"""Customer cart and wishlist. The caller is always the cart owner."""
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db, require_customer
from quickpharma.core.exceptions import BusinessError
from quickpharma.models.user import User
from quickpharma.schemas.cart import CartAdd, CartUpdate, WishlistAdd
from quickpharma.services import cart_service, safety_service
from quickpharma.services.cart_service import CartResult

router = APIRouter()

STOCK_REASONS = {"OUT_OF_STOCK", "EXCEEDS_AVAILABLE_STOCK"}


def _raise_for(result: CartResult) -> None:
    body = asdict(result)
    if result.reason in ("PRODUCT_NOT_FOUND", "NOT_FOUND"):
        raise BusinessError.not_found("Cart item" if result.reason == "NOT_FOUND" else "Product")
    if result.reason in STOCK_REASONS:
        raise BusinessError.conflict(body)
    raise BusinessError.bad_request(body)


@router.get("/Cart")
def get_cart(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(50, alias="pageSize"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    return cart_service.list_cart(db, current_user.id, page_number, page_size)


@router.get("/Cart/summary")
def get_cart_summary(db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    return cart_service.cart_summary(db, current_user.id)


@router.get("/Cart/check-medication")
def check_medication(db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    """Allergy and illness conflicts of the cart products against the caller's health profile."""
    items = cart_service.cart_items(db, current_user.id)
    conflicts = safety_service.incompatibility_map(db, current_user.id, [i.product_id for i in items])
    flagged = [
        {
            "product_id": item.product_id,
            "product_name": item.product.name,
            "allergies": conflicts[item.product_id]["allergies"],
            "illnesses": conflicts[item.product_id]["illnesses"],
        }
        for item in items
        if conflicts.get(item.product_id)
        and (conflicts[item.product_id]["allergies"] or conflicts[item.product_id]["illnesses"])
    ]
    return {"has_conflicts": bool(flagged), "items": flagged}


@router.post("/Cart")
def add_to_cart(body: CartAdd, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    result = cart_service.add_to_cart(db, current_user.id, body.product_id, body.quantity)
    if not result.ok:
        _raise_for(result)
    return asdict(result)


@router.put("/Cart/{product_id}")
def update_cart(
    product_id: int,
    body: CartUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    result = cart_service.update_cart_quantity(db, current_user.id, product_id, body.quantity)
    if not result.ok:
        _raise_for(result)
    return asdict(result)


@router.delete("/Cart/{product_id}")
def remove_from_cart(product_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    if not cart_service.remove_from_cart(db, current_user.id, product_id):
        raise BusinessError.not_found("Cart item")
    return {"removed": True}


@router.delete("/Cart")
def clear_cart(db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    return {"removed": cart_service.clear_cart(db, current_user.id)}


# ------------------------------------------------------------------------------
# Wishlist
# ------------------------------------------------------------------------------

@router.get("/Wishlist")
def get_wishlist(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    return cart_service.list_wishlist(db, current_user.id, page_number, page_size)


@router.get("/Wishlist/ids")
def get_wishlist_ids(db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    return cart_service.wishlist_ids(db, current_user.id)


@router.post("/Wishlist")
def add_to_wishlist(body: WishlistAdd, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    if not cart_service.add_to_wishlist(db, current_user.id, body.product_id):
        raise BusinessError.conflict({"added": False})
    return {"added": True}


@router.delete("/Wishlist/{product_id}")
def remove_from_wishlist(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    if not cart_service.remove_from_wishlist(db, current_user.id, product_id):
        raise BusinessError.not_found("Wishlist item")
    return {"removed": True}
