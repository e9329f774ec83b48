"""Supplier orders placed by staff, reorder rules and automatic reordering."""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from quickpharma.core.clock import local_now
from quickpharma.core.permissions import is_admin
from quickpharma.models.catalog import Product, Supplier
from quickpharma.models.location import Branch
from quickpharma.models.lookup import SupplierOrderStatus, SupplierOrderStatusId
from quickpharma.models.supplier_order import Reorder, SupplierOrder
from quickpharma.models.user import User
from quickpharma.services import log_service
from quickpharma.services.inventory_service import available_stock_map
from quickpharma.services.paging import apply_page, normalize_page, paged

logger = logging.getLogger(__name__)

_ID_PATTERN = re.compile(r"^[0-9]*$")
_NAME_PATTERN = re.compile(r"^[A-Za-z0-9 .\-+]*$")

BRANCH_NOT_FOUND = "Employee branch not found."


@dataclass
class SupplierOrderResult:
    ok: bool
    reason: str = "OK"
    message: str = ""
    record: Optional[object] = None


def resolve_branch(db: Session, user: User, requested_branch_id: Optional[int] = None) -> Optional[int]:
    """Admins may target any existing branch; everyone else uses their own."""
    if is_admin(user) and requested_branch_id:
        exists = db.query(Branch.id).filter(Branch.id == requested_branch_id).first()
        return requested_branch_id if exists else None
    return user.branch_id or None


def _check_refs(db: Session, product_id: int, supplier_id: int, quantity: int) -> Optional[SupplierOrderResult]:
    if not quantity or quantity <= 0:
        return SupplierOrderResult(False, "INVALID_QTY", "Quantity must be greater than zero.")
    if not db.query(Product.id).filter(Product.id == product_id).first():
        return SupplierOrderResult(False, "PRODUCT_NOT_FOUND", "Product not found.")
    if not db.query(Supplier.id).filter(Supplier.id == supplier_id).first():
        return SupplierOrderResult(False, "SUPPLIER_NOT_FOUND", "Supplier not found.")
    return None


def _search_filter(q, term: str, id_column):
    if term.isdigit():
        return q.filter(id_column == int(term))
    lower = f"{term.lower()}%"
    return q.filter(or_(
        func.lower(Supplier.name).like(lower),
        func.lower(Product.name).like(lower),
    ))


def supplier_order_to_dict(so: SupplierOrder) -> dict:
    return {
        "supplier_order_id": so.id,
        "supplier_id": so.supplier_id,
        "supplier_name": so.supplier.name if so.supplier else None,
        "product_id": so.product_id,
        "product_name": so.product.name if so.product else None,
        "employee_id": so.employee_id,
        "employee_name": so.employee.full_name if so.employee else "System",
        "branch_id": so.branch_id,
        "branch_name": so.branch.city_name if so.branch else None,
        "quantity": so.quantity,
        "status_id": so.status_id,
        "status_name": so.status.name if so.status else None,
        "order_date": so.order_date.isoformat() if so.order_date else None,
    }


def list_supplier_orders(
    db: Session,
    page_number: int = 1,
    page_size: int = 10,
    search: Optional[str] = None,
    status_id: Optional[int] = None,
    order_date: Optional[date] = None,
    branch_id: Optional[int] = None,
) -> dict:
    page_number, page_size = normalize_page(page_number, page_size)

    term = (search or "").strip()
    if term and not (_ID_PATTERN.match(term) or _NAME_PATTERN.match(term)):
        return paged([], 0, page_number, page_size)

    q = (
        db.query(SupplierOrder)
        .join(Supplier, Supplier.id == SupplierOrder.supplier_id)
        .join(Product, Product.id == SupplierOrder.product_id)
    )
    if branch_id:
        q = q.filter(SupplierOrder.branch_id == branch_id)
    if term:
        q = _search_filter(q, term, SupplierOrder.id)
    if status_id and status_id > 0:
        q = q.filter(SupplierOrder.status_id == status_id)
    if order_date:
        start = datetime.combine(order_date, datetime.min.time())
        q = q.filter(SupplierOrder.order_date >= start, SupplierOrder.order_date < start + timedelta(days=1))

    total = q.count()
    rows = apply_page(q.order_by(SupplierOrder.order_date.desc(), SupplierOrder.id.desc()), page_number, page_size).all()
    return paged([supplier_order_to_dict(r) for r in rows], total, page_number, page_size)


def get_supplier_order(db: Session, supplier_order_id: int) -> Optional[SupplierOrder]:
    return db.query(SupplierOrder).filter(SupplierOrder.id == supplier_order_id).first()


def create_supplier_order(
    db: Session,
    user: User,
    product_id: int,
    supplier_id: int,
    quantity: int,
    branch_id: Optional[int] = None,
) -> SupplierOrderResult:
    resolved = resolve_branch(db, user, branch_id)
    if not resolved:
        return SupplierOrderResult(False, "BRANCH_NOT_FOUND", BRANCH_NOT_FOUND)
    failure = _check_refs(db, product_id, supplier_id, quantity)
    if failure:
        return failure

    so = SupplierOrder(
        supplier_id=supplier_id,
        product_id=product_id,
        employee_id=user.id,
        branch_id=resolved,
        quantity=quantity,
        status_id=SupplierOrderStatusId.PENDING,
        order_date=local_now(),
    )
    db.add(so)
    db.commit()
    db.refresh(so)
    log_service.create_add_record_log(db, user.id, "SupplierOrder", so.id)
    return SupplierOrderResult(True, record=so)


def update_supplier_order(
    db: Session,
    user: User,
    so: SupplierOrder,
    product_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    quantity: Optional[int] = None,
    status_id: Optional[int] = None,
) -> SupplierOrderResult:
    new_product = product_id or so.product_id
    new_supplier = supplier_id or so.supplier_id
    new_qty = quantity if quantity is not None else so.quantity
    failure = _check_refs(db, new_product, new_supplier, new_qty)
    if failure:
        return failure
    if status_id is not None and not db.query(SupplierOrderStatus.id).filter(SupplierOrderStatus.id == status_id).first():
        return SupplierOrderResult(False, "INVALID_STATUS", "Invalid supplier order status.")

    so.product_id = new_product
    so.supplier_id = new_supplier
    so.quantity = new_qty
    if status_id is not None:
        so.status_id = status_id
    db.commit()
    db.refresh(so)
    log_service.create_edit_record_log(db, user.id, "SupplierOrder", so.id)
    return SupplierOrderResult(True, record=so)


def delete_supplier_order(db: Session, user: User, so: SupplierOrder) -> None:
    record_id = so.id
    db.delete(so)
    db.commit()
    log_service.create_delete_record_log(db, user.id, "SupplierOrder", record_id)


def list_statuses(db: Session) -> List[dict]:
    return [{"id": s.id, "name": s.name} for s in db.query(SupplierOrderStatus).order_by(SupplierOrderStatus.id).all()]


# ------------------------------------------------------------------------------
# Reorder rules
# ------------------------------------------------------------------------------

def reorder_to_dict(r: Reorder) -> dict:
    return {
        "reorder_id": r.id,
        "product_id": r.product_id,
        "product_name": r.product.name if r.product else None,
        "supplier_id": r.supplier_id,
        "supplier_name": r.supplier.name if r.supplier else None,
        "branch_id": r.branch_id,
        "branch_name": r.branch.city_name if r.branch else None,
        "threshold": r.threshold,
        "quantity": r.quantity,
    }


def list_reorders(
    db: Session,
    page_number: int = 1,
    page_size: int = 10,
    search: Optional[str] = None,
    branch_id: Optional[int] = None,
) -> dict:
    page_number, page_size = normalize_page(page_number, page_size)

    term = (search or "").strip()
    if term and not (_ID_PATTERN.match(term) or _NAME_PATTERN.match(term)):
        return paged([], 0, page_number, page_size)

    q = (
        db.query(Reorder)
        .join(Supplier, Supplier.id == Reorder.supplier_id)
        .join(Product, Product.id == Reorder.product_id)
    )
    if branch_id:
        q = q.filter(Reorder.branch_id == branch_id)
    if term:
        q = _search_filter(q, term, Reorder.id)

    total = q.count()
    rows = apply_page(q.order_by(Reorder.id), page_number, page_size).all()
    return paged([reorder_to_dict(r) for r in rows], total, page_number, page_size)


def get_reorder(db: Session, reorder_id: int) -> Optional[Reorder]:
    return db.query(Reorder).filter(Reorder.id == reorder_id).first()


def _check_rule(threshold: Optional[int], quantity: Optional[int]) -> Optional[SupplierOrderResult]:
    if threshold is None or threshold < 0:
        return SupplierOrderResult(False, "INVALID_THRESHOLD", "Threshold must be zero or more.")
    if not quantity or quantity <= 0:
        return SupplierOrderResult(False, "INVALID_QTY", "Quantity must be greater than zero.")
    return None


def create_reorder(
    db: Session,
    user: User,
    product_id: int,
    supplier_id: int,
    threshold: int,
    quantity: int,
    branch_id: Optional[int] = None,
) -> SupplierOrderResult:
    resolved = resolve_branch(db, user, branch_id)
    if not resolved:
        return SupplierOrderResult(False, "BRANCH_NOT_FOUND", BRANCH_NOT_FOUND)
    failure = _check_rule(threshold, quantity) or _check_refs(db, product_id, supplier_id, quantity)
    if failure:
        return failure

    existing = db.query(Reorder.id).filter(Reorder.product_id == product_id, Reorder.branch_id == resolved).first()
    if existing:
        return SupplierOrderResult(False, "DUPLICATE", "A reorder rule already exists for this product and branch.")

    rule = Reorder(
        product_id=product_id,
        supplier_id=supplier_id,
        branch_id=resolved,
        user_id=user.id,
        threshold=threshold,
        quantity=quantity,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    log_service.create_add_record_log(db, user.id, "Reorder", rule.id)
    return SupplierOrderResult(True, record=rule)


def update_reorder(
    db: Session,
    user: User,
    rule: Reorder,
    supplier_id: Optional[int] = None,
    threshold: Optional[int] = None,
    quantity: Optional[int] = None,
) -> SupplierOrderResult:
    new_supplier = supplier_id or rule.supplier_id
    new_threshold = threshold if threshold is not None else rule.threshold
    new_qty = quantity if quantity is not None else rule.quantity
    failure = _check_rule(new_threshold, new_qty) or _check_refs(db, rule.product_id, new_supplier, new_qty)
    if failure:
        return failure

    rule.supplier_id = new_supplier
    rule.threshold = new_threshold
    rule.quantity = new_qty
    db.commit()
    db.refresh(rule)
    log_service.create_edit_record_log(db, user.id, "Reorder", rule.id)
    return SupplierOrderResult(True, record=rule)


def delete_reorder(db: Session, user: User, rule: Reorder) -> None:
    record_id = rule.id
    db.delete(rule)
    db.commit()
    log_service.create_delete_record_log(db, user.id, "Reorder", record_id)


def check_reorder_thresholds(
    db: Session,
    branch_id: Optional[int] = None,
    product_ids: Optional[Iterable[int]] = None,
) -> List[SupplierOrder]:
    """
    Place a Pending supplier order for every rule whose branch stock has
    fallen to its threshold, unless one is already pending for that
    product and branch.
    """
    q = db.query(Reorder)
    if branch_id:
        q = q.filter(Reorder.branch_id == branch_id)
    if product_ids is not None:
        q = q.filter(Reorder.product_id.in_(list(product_ids)))

    placed = []
    for rule in q.all():
        stock = available_stock_map(db, rule.branch_id, [rule.product_id]).get(rule.product_id, 0)
        if stock > rule.threshold:
            continue
        pending = db.query(SupplierOrder.id).filter(
            SupplierOrder.product_id == rule.product_id,
            SupplierOrder.branch_id == rule.branch_id,
            SupplierOrder.status_id == SupplierOrderStatusId.PENDING,
        ).first()
        if pending:
            continue

        so = SupplierOrder(
            supplier_id=rule.supplier_id,
            product_id=rule.product_id,
            employee_id=None,
            branch_id=rule.branch_id,
            quantity=rule.quantity,
            status_id=SupplierOrderStatusId.PENDING,
            order_date=local_now(),
        )
        db.add(so)
        db.commit()
        db.refresh(so)
        placed.append(so)

        logger.info(f"Automated reorder #{so.id}: product {rule.product_id} at branch {rule.branch_id} (stock {stock})")
        log_service.create_automated_reorder_log(
            db,
            rule.product.name if rule.product else f"Product #{rule.product_id}",
            rule.branch.city_name if rule.branch else f"Branch {rule.branch_id}",
            rule.quantity,
            so.id,
        )
    return placed
