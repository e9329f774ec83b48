"""
Inventory batches: availability, FEFO consumption, staff CRUD and expiry disposal.

A batch counts towards available stock when quantity > 0 and it has no expiry
date or expires today or later. Consumption is first-expiring-first-out:
dated batches by ascending expiry, undated batches last.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from quickpharma.core.clock import local_today
from quickpharma.models.catalog import Product
from quickpharma.models.inventory import Inventory
from quickpharma.models.location import Branch
from quickpharma.services.paging import apply_page, normalize_page, paged

logger = logging.getLogger(__name__)

_SEARCH_PATTERN = re.compile(r"^[A-Za-z0-9+\- ]*$")


class StockChangedError(Exception):
    """Raised when a batch walk cannot cover the requested quantity."""

    def __init__(self, product_id: int, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(f"Stock changed while placing order (productId={product_id})")


def available_clause(today: date):
    return (
        (Inventory.quantity > 0)
        & or_(Inventory.expiry_date.is_(None), Inventory.expiry_date >= today)
    )


def available_stock(db: Session, branch_id: int, product_id: int, today: Optional[date] = None) -> int:
    today = today or local_today()
    total = (
        db.query(func.coalesce(func.sum(Inventory.quantity), 0))
        .filter(Inventory.branch_id == branch_id, Inventory.product_id == product_id)
        .filter(available_clause(today))
        .scalar()
    )
    return int(total or 0)


def available_stock_map(
    db: Session,
    branch_id: Optional[int],
    product_ids: Iterable[int],
    today: Optional[date] = None,
) -> Dict[int, int]:
    """Available quantity per product. branch_id=None sums across all branches."""
    today = today or local_today()
    ids = sorted({pid for pid in product_ids if pid and pid > 0})
    result = {pid: 0 for pid in ids}
    if not ids:
        return result

    q = (
        db.query(Inventory.product_id, func.coalesce(func.sum(Inventory.quantity), 0))
        .filter(Inventory.product_id.in_(ids))
        .filter(available_clause(today))
    )
    if branch_id is not None:
        q = q.filter(Inventory.branch_id == branch_id)

    for product_id, qty in q.group_by(Inventory.product_id).all():
        result[product_id] = int(qty or 0)
    return result


def branch_availability(db: Session, product_id: int, today: Optional[date] = None) -> List[dict]:
    """Available quantity of one product at every branch."""
    today = today or local_today()
    rows = (
        db.query(Inventory.branch_id, func.coalesce(func.sum(Inventory.quantity), 0))
        .filter(Inventory.product_id == product_id)
        .filter(available_clause(today))
        .group_by(Inventory.branch_id)
        .all()
    )
    stock = {branch_id: int(qty or 0) for branch_id, qty in rows}
    return [
        {"branch_id": b.id, "branch_name": b.city_name, "available_quantity": stock.get(b.id, 0)}
        for b in db.query(Branch).order_by(Branch.id).all()
    ]


def fefo_batches(db: Session, branch_id: int, product_id: int, today: date, lock: bool = True) -> List[Inventory]:
    q = (
        db.query(Inventory)
        .filter(Inventory.branch_id == branch_id, Inventory.product_id == product_id)
        .filter(available_clause(today))
        .order_by(Inventory.expiry_date.is_(None), Inventory.expiry_date, Inventory.id)
    )
    if lock:
        # Ignored by SQLite; row locks on PostgreSQL/MySQL.
        q = q.with_for_update()
    return q.all()


def consume_fefo(
    db: Session,
    branch_id: int,
    product_id: int,
    quantity: int,
    today: Optional[date] = None,
) -> List[Tuple[int, int]]:
    """
    Take quantity units of product from branch batches, first-expiring first.

    Does not commit. Raises StockChangedError, without touching any batch, when
    the available batches cannot cover quantity; the caller rolls back its
    transaction.

    Returns:
        [(inventory_id, taken), ...] in consumption order
    """
    if quantity <= 0:
        return []

    today = today or local_today()
    batches = fefo_batches(db, branch_id, product_id, today)
    total = sum(b.quantity or 0 for b in batches)
    if total < quantity:
        raise StockChangedError(product_id, quantity, total)

    remaining = quantity
    taken: List[Tuple[int, int]] = []
    for batch in batches:
        if remaining <= 0:
            break
        on_hand = batch.quantity or 0
        if on_hand <= 0:
            continue
        take = min(on_hand, remaining)
        batch.quantity = on_hand - take
        remaining -= take
        taken.append((batch.id, take))

    if remaining > 0:
        raise StockChangedError(product_id, quantity, quantity - remaining)

    db.flush()
    return taken


# ------------------------------------------------------------------------------
# Staff inventory management
# ------------------------------------------------------------------------------

@dataclass
class InventoryResult:
    ok: bool
    reason: str = "OK"
    message: str = ""
    item: Optional[Inventory] = None


def inventory_to_dict(item: Inventory, today: Optional[date] = None) -> dict:
    today = today or local_today()
    qty = item.quantity or 0
    return {
        "inventory_id": item.id,
        "product_id": item.product_id,
        "product_name": item.product.name if item.product else None,
        "branch_id": item.branch_id,
        "branch_name": item.branch.city_name if item.branch else None,
        "quantity": qty,
        "expiry_date": item.expiry_date.isoformat() if item.expiry_date else None,
        "is_expired": bool(item.expiry_date and item.expiry_date < today),
    }


def list_inventory(
    db: Session,
    page_number: int = 1,
    page_size: int = 10,
    search: Optional[str] = None,
    branch_id: Optional[int] = None,
    expiry_date: Optional[date] = None,
) -> dict:
    page_number, page_size = normalize_page(page_number, page_size)

    term = (search or "").strip()
    if term and not _SEARCH_PATTERN.match(term):
        return paged([], 0, page_number, page_size)

    q = db.query(Inventory).join(Product, Inventory.product_id == Product.id)
    if branch_id:
        q = q.filter(Inventory.branch_id == branch_id)
    if term:
        if term.isdigit():
            q = q.filter(Inventory.id == int(term))
        else:
            q = q.filter(func.lower(Product.name).like(f"{term.lower()}%"))
    if expiry_date:
        q = q.filter(Inventory.expiry_date == expiry_date)

    total = q.count()
    rows = apply_page(q.order_by(Inventory.id), page_number, page_size).all()
    return paged([inventory_to_dict(r) for r in rows], total, page_number, page_size)


def get_inventory(db: Session, inventory_id: int) -> Optional[Inventory]:
    return db.query(Inventory).filter(Inventory.id == inventory_id).first()


def _validate_batch(db: Session, product_id: int, branch_id: int, quantity: int) -> Optional[InventoryResult]:
    if quantity is None or quantity < 0:
        return InventoryResult(False, "INVALID_QTY", "Quantity must be zero or more.")
    if not db.query(Product.id).filter(Product.id == product_id).first():
        return InventoryResult(False, "PRODUCT_NOT_FOUND", "Product not found.")
    if not db.query(Branch.id).filter(Branch.id == branch_id).first():
        return InventoryResult(False, "BRANCH_NOT_FOUND", "Branch not found.")
    return None


def create_inventory(db: Session, product_id: int, branch_id: int, quantity: int,
                     expiry_date: Optional[date]) -> InventoryResult:
    failure = _validate_batch(db, product_id, branch_id, quantity)
    if failure:
        return failure

    item = Inventory(product_id=product_id, branch_id=branch_id, quantity=quantity, expiry_date=expiry_date)
    db.add(item)
    db.commit()
    db.refresh(item)
    logger.info(f"Inventory batch #{item.id} created: product={product_id} branch={branch_id} qty={quantity}")
    return InventoryResult(True, item=item)


def update_inventory(db: Session, item: Inventory, product_id: Optional[int] = None,
                     branch_id: Optional[int] = None, quantity: Optional[int] = None,
                     expiry_date: Optional[date] = None, clear_expiry: bool = False) -> InventoryResult:
    new_product = product_id if product_id is not None else item.product_id
    new_branch = branch_id if branch_id is not None else item.branch_id
    new_qty = quantity if quantity is not None else (item.quantity or 0)

    failure = _validate_batch(db, new_product, new_branch, new_qty)
    if failure:
        return failure

    item.product_id = new_product
    item.branch_id = new_branch
    item.quantity = new_qty
    if clear_expiry:
        item.expiry_date = None
    elif expiry_date is not None:
        item.expiry_date = expiry_date

    db.commit()
    db.refresh(item)
    return InventoryResult(True, item=item)


def delete_inventory(db: Session, item: Inventory) -> None:
    db.delete(item)
    db.commit()


def list_expired(db: Session, branch_id: Optional[int] = None, today: Optional[date] = None) -> List[dict]:
    """Batches past their expiry that still hold stock, oldest expiry first."""
    today = today or local_today()
    q = db.query(Inventory).filter(
        Inventory.expiry_date.isnot(None),
        Inventory.expiry_date < today,
        Inventory.quantity > 0,
    )
    if branch_id:
        q = q.filter(Inventory.branch_id == branch_id)
    return [inventory_to_dict(r, today) for r in q.order_by(Inventory.expiry_date, Inventory.id).all()]


def dispose_expired(db: Session, item: Inventory, today: Optional[date] = None) -> InventoryResult:
    today = today or local_today()
    if not item.expiry_date or item.expiry_date >= today:
        return InventoryResult(False, "NOT_EXPIRED", "Only expired batches can be disposed.")
    db.delete(item)
    db.commit()
    return InventoryResult(True)
