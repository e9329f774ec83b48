"""Customer cart and wishlist.

Cart quantities are soft-checked against non-expired stock across all
branches on add/update; checkout re-validates against the fulfilling branch.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quickpharma.core.config import settings
from quickpharma.models.cart import CartItem, WishlistItem
from quickpharma.models.catalog import Product
from quickpharma.services.inventory_service import available_stock_map
from quickpharma.services.paging import apply_page, normalize_page, paged

logger = logging.getLogger(__name__)

WISHLIST_MAX_PAGE_SIZE = 50


@dataclass
class CartResult:
    ok: bool
    reason: str
    quantity: int = 0
    available: int = 0


def stock_status(available: int) -> str:
    if available <= 0:
        return "OUT_OF_STOCK"
    if available <= settings.LOW_STOCK_THRESHOLD:
        return "LOW_STOCK"
    return "IN_STOCK"


def _available(db: Session, product_id: int) -> int:
    return available_stock_map(db, None, [product_id]).get(product_id, 0)


def add_to_cart(db: Session, user_id: int, product_id: int, quantity: int = 1) -> CartResult:
    if not user_id or user_id <= 0:
        return CartResult(False, "INVALID_USER")
    if not product_id or product_id <= 0:
        return CartResult(False, "INVALID_PRODUCT")
    if quantity is None or quantity <= 0:
        return CartResult(False, "INVALID_QTY")
    if not db.query(Product.id).filter(Product.id == product_id).first():
        return CartResult(False, "PRODUCT_NOT_FOUND")

    available = _available(db, product_id)
    if available <= 0:
        return CartResult(False, "OUT_OF_STOCK", available=available)

    item = db.query(CartItem).filter(CartItem.user_id == user_id, CartItem.product_id == product_id).first()
    new_qty = (item.quantity if item else 0) + quantity
    if new_qty > available:
        return CartResult(False, "EXCEEDS_AVAILABLE_STOCK", quantity=item.quantity if item else 0, available=available)

    if item:
        item.quantity = new_qty
    else:
        db.add(CartItem(user_id=user_id, product_id=product_id, quantity=new_qty))
    db.commit()
    return CartResult(True, "OK", quantity=new_qty, available=available)


def update_cart_quantity(db: Session, user_id: int, product_id: int, quantity: int) -> CartResult:
    item = db.query(CartItem).filter(CartItem.user_id == user_id, CartItem.product_id == product_id).first()
    if not item:
        return CartResult(False, "NOT_FOUND")

    if quantity is None or quantity <= 0:
        db.delete(item)
        db.commit()
        return CartResult(True, "REMOVED")

    available = _available(db, product_id)
    if quantity > available:
        return CartResult(False, "EXCEEDS_AVAILABLE_STOCK", quantity=item.quantity, available=available)

    item.quantity = quantity
    db.commit()
    return CartResult(True, "OK", quantity=quantity, available=available)


def remove_from_cart(db: Session, user_id: int, product_id: int) -> bool:
    item = db.query(CartItem).filter(CartItem.user_id == user_id, CartItem.product_id == product_id).first()
    if not item:
        return False
    db.delete(item)
    db.commit()
    return True


def clear_cart(db: Session, user_id: int, commit: bool = True) -> int:
    removed = db.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)
    if commit:
        db.commit()
    return removed


def cart_items(db: Session, user_id: int) -> List[CartItem]:
    return (
        db.query(CartItem)
        .filter(CartItem.user_id == user_id)
        .order_by(CartItem.id)
        .all()
    )


def _line_dict(item: CartItem, available: int) -> dict:
    product = item.product
    price = Decimal(product.price or 0)
    return {
        "cart_item_id": item.id,
        "product_id": item.product_id,
        "product_name": product.name,
        "unit_price": float(price),
        "quantity": item.quantity,
        "line_total": float(price * item.quantity),
        "requires_prescription": bool(product.requires_prescription),
        "is_controlled": bool(product.is_controlled),
        "available_quantity": available,
        "stock_status": stock_status(available),
    }


def list_cart(db: Session, user_id: int, page_number: int = 1, page_size: int = 50) -> dict:
    page_number, page_size = normalize_page(page_number, page_size, default_size=50)
    q = db.query(CartItem).filter(CartItem.user_id == user_id)
    total = q.count()
    rows = apply_page(q.order_by(CartItem.id), page_number, page_size).all()
    stock = available_stock_map(db, None, [r.product_id for r in rows])

    result = paged([_line_dict(r, stock.get(r.product_id, 0)) for r in rows], total, page_number, page_size)
    result["summary"] = cart_summary(db, user_id)
    return result


def cart_summary(db: Session, user_id: int) -> dict:
    total_qty = 0
    total_amount = Decimal("0")
    for item in cart_items(db, user_id):
        total_qty += item.quantity
        total_amount += Decimal(item.product.price or 0) * item.quantity
    return {"total_quantity": total_qty, "total_amount": float(total_amount)}


def add_to_wishlist(db: Session, user_id: int, product_id: int) -> bool:
    """False for unknown products and duplicates."""
    if not db.query(Product.id).filter(Product.id == product_id).first():
        return False
    exists = db.query(WishlistItem.id).filter(
        WishlistItem.user_id == user_id, WishlistItem.product_id == product_id
    ).first()
    if exists:
        return False

    db.add(WishlistItem(user_id=user_id, product_id=product_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def remove_from_wishlist(db: Session, user_id: int, product_id: int) -> bool:
    item = db.query(WishlistItem).filter(
        WishlistItem.user_id == user_id, WishlistItem.product_id == product_id
    ).first()
    if not item:
        return False
    db.delete(item)
    db.commit()
    return True


def wishlist_ids(db: Session, user_id: int) -> List[int]:
    rows = db.query(WishlistItem.product_id).filter(WishlistItem.user_id == user_id).order_by(WishlistItem.id).all()
    return [r[0] for r in rows]


def list_wishlist(db: Session, user_id: int, page_number: int = 1, page_size: int = 10) -> dict:
    page_number, page_size = normalize_page(page_number, page_size, max_size=WISHLIST_MAX_PAGE_SIZE)
    q = db.query(WishlistItem).filter(WishlistItem.user_id == user_id)
    total = q.count()
    rows = apply_page(q.order_by(WishlistItem.id.desc()), page_number, page_size).all()
    stock = available_stock_map(db, None, [r.product_id for r in rows])

    items = [
        {
            "product_id": r.product_id,
            "product_name": r.product.name,
            "price": float(r.product.price or 0),
            "requires_prescription": bool(r.product.requires_prescription),
            "stock_status": stock_status(stock.get(r.product_id, 0)),
        }
        for r in rows
    ]
    return paged(items, total, page_number, page_size)
