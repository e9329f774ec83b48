"""
Per-role dashboard figures.

Admin sees the whole chain; manager, pharmacist and driver figures are
confined to one branch. "Today" is the store day (UTC+3), converted back to
a UTC window for timestamps stored in UTC.
"""
import logging
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session

from quickpharma.core.clock import local_today
from quickpharma.core.config import settings
from quickpharma.models.catalog import Category, Product, Supplier
from quickpharma.models.inventory import Inventory
from quickpharma.models.location import Address, Branch, City
from quickpharma.models.log import Log
from quickpharma.models.lookup import OrderStatusId, PrescriptionStatusId, Role, RoleName
from quickpharma.models.order import Order, ProductOrder, Shipping
from quickpharma.models.prescription import Approval, Prescription
from quickpharma.models.user import User
from quickpharma.services.inventory_service import available_clause

logger = logging.getLogger(__name__)

EXPIRING_WITHIN_DAYS = 30


def _today_window() -> Tuple[datetime, datetime]:
    start = datetime.combine(local_today(), time.min)
    return start, start + timedelta(days=1)


def _money(value) -> float:
    return float(value or Decimal("0"))


def _branch_labels(db: Session) -> dict:
    return {b.id: b.city_name for b in db.query(Branch).all()}


def _staff_count(db: Session, branch_id: Optional[int] = None) -> int:
    q = db.query(func.count(User.id)).join(Role, Role.id == User.role_id).filter(Role.name.in_(RoleName.STAFF))
    if branch_id is not None:
        q = q.filter(User.branch_id == branch_id)
    return q.scalar() or 0


def _sales_by(db: Session, label_column, join_model, join_on, branch_id: Optional[int] = None) -> List[dict]:
    """Line revenue grouped by a product attribute (category or supplier)."""
    q = (
        db.query(label_column, func.sum(ProductOrder.unit_price * ProductOrder.quantity))
        .select_from(ProductOrder)
        .join(Product, Product.id == ProductOrder.product_id)
        .join(join_model, join_on)
    )
    if branch_id is not None:
        q = (
            q.join(Order, Order.id == ProductOrder.order_id)
            .join(Shipping, Shipping.id == Order.shipping_id)
            .filter(Shipping.branch_id == branch_id)
        )
    rows = q.group_by(label_column).order_by(label_column).all()
    return [{"name": name or "Unknown", "total_sales": _money(total)} for name, total in rows]


def admin_dashboard(db: Session) -> dict:
    labels = _branch_labels(db)

    sales_rows = (
        db.query(Shipping.branch_id, func.sum(Order.total))
        .join(Order, Order.shipping_id == Shipping.id)
        .group_by(Shipping.branch_id)
        .all()
    )
    inventory_rows = (
        db.query(Inventory.branch_id, func.coalesce(func.sum(Inventory.quantity), 0))
        .group_by(Inventory.branch_id)
        .all()
    )
    dispensed_rows = (
        db.query(Shipping.branch_id, func.count(distinct(ProductOrder.prescription_id)))
        .join(Order, Order.shipping_id == Shipping.id)
        .join(ProductOrder, ProductOrder.order_id == Order.id)
        .filter(ProductOrder.prescription_id.isnot(None))
        .group_by(Shipping.branch_id)
        .all()
    )
    employee_rows = (
        db.query(User.branch_id, func.count(User.id))
        .join(Role, Role.id == User.role_id)
        .filter(Role.name.in_(RoleName.STAFF), User.branch_id.isnot(None))
        .group_by(User.branch_id)
        .all()
    )

    start, end = _today_window()
    return {
        "sales_per_branch": [
            {"branch_id": bid, "branch_name": labels.get(bid, "Unknown"), "total_sales": _money(total)}
            for bid, total in sales_rows if bid is not None
        ],
        "inventory_per_branch": [
            {"branch_id": bid, "branch_name": labels.get(bid, "Unknown"), "total_inventory": int(qty or 0)}
            for bid, qty in inventory_rows
        ],
        "prescriptions_per_branch": [
            {"branch_id": bid, "branch_name": labels.get(bid, "Unknown"), "total_prescriptions": count}
            for bid, count in dispensed_rows if bid is not None
        ],
        "employees_per_branch": [
            {"branch_id": bid, "branch_name": labels.get(bid, "Unknown"), "employee_count": count}
            for bid, count in employee_rows
        ],
        "sales_per_category": _sales_by(db, Category.name, Category, Category.id == Product.category_id),
        "sales_per_supplier": _sales_by(db, Supplier.name, Supplier, Supplier.id == Product.supplier_id),
        "total_orders": db.query(func.count(Order.id)).scalar() or 0,
        "todays_orders": db.query(func.count(Order.id)).filter(
            Order.created_at >= start, Order.created_at < end,
        ).scalar() or 0,
        "total_employees": _staff_count(db),
        "total_suppliers": db.query(func.count(Supplier.id)).scalar() or 0,
        "total_logs": db.query(func.count(Log.id)).scalar() or 0,
    }


def _branch_prescriptions(db: Session, branch_id: int):
    """Prescriptions whose address city is served by branch_id."""
    return (
        db.query(Prescription)
        .join(Address, Address.id == Prescription.address_id)
        .join(City, City.id == Address.city_id)
        .filter(City.branch_id == branch_id)
    )


def _branch_orders(db: Session, branch_id: int):
    return db.query(Order).join(Shipping, Shipping.id == Order.shipping_id).filter(Shipping.branch_id == branch_id)


def manager_dashboard(db: Session, branch_id: int) -> dict:
    today = local_today()
    start, end = _today_window()

    orders = _branch_orders(db, branch_id)
    status_rows = (
        db.query(Order.order_status_id, func.count(Order.id))
        .join(Shipping, Shipping.id == Order.shipping_id)
        .filter(Shipping.branch_id == branch_id)
        .group_by(Order.order_status_id)
        .all()
    )
    approvals = (
        db.query(User.first_name, User.last_name, func.count(Approval.id))
        .select_from(Approval)
        .join(User, User.id == Approval.user_id)
        .filter(User.branch_id == branch_id)
        .group_by(User.id, User.first_name, User.last_name)
        .all()
    )

    stock_rows = (
        db.query(Inventory.product_id, func.sum(Inventory.quantity))
        .filter(Inventory.branch_id == branch_id)
        .filter(available_clause(today))
        .group_by(Inventory.product_id)
        .all()
    )
    low_stock = sum(1 for _, qty in stock_rows if int(qty or 0) <= settings.LOW_STOCK_THRESHOLD)

    return {
        "branch_id": branch_id,
        "total_sales": _money(orders.with_entities(func.sum(Order.total)).scalar()),
        "todays_sales": _money(
            orders.filter(Order.created_at >= start, Order.created_at < end)
            .with_entities(func.sum(Order.total)).scalar()
        ),
        "orders_by_status": {status_id: count for status_id, count in status_rows},
        "sales_per_category": _sales_by(db, Category.name, Category, Category.id == Product.category_id, branch_id),
        "sales_per_supplier": _sales_by(db, Supplier.name, Supplier, Supplier.id == Product.supplier_id, branch_id),
        "approvals_per_pharmacist": [
            {"pharmacist_name": f"{first or ''} {last or ''}".strip(), "total_approvals": count}
            for first, last, count in approvals
        ],
        "total_employees": _staff_count(db, branch_id),
        "pending_prescriptions": _branch_prescriptions(db, branch_id).filter(
            Prescription.status_id == PrescriptionStatusId.PENDING,
        ).count(),
        "total_deliveries": db.query(func.count(Shipping.id)).filter(
            Shipping.branch_id == branch_id, Shipping.is_delivery.is_(True),
        ).scalar() or 0,
        "total_inventory": int(
            db.query(func.coalesce(func.sum(Inventory.quantity), 0))
            .filter(Inventory.branch_id == branch_id)
            .filter(available_clause(today))
            .scalar() or 0
        ),
        "low_stock_products": low_stock,
        "expiring_batches": db.query(func.count(Inventory.id)).filter(
            Inventory.branch_id == branch_id,
            Inventory.quantity > 0,
            Inventory.expiry_date >= today,
            Inventory.expiry_date <= today + timedelta(days=EXPIRING_WITHIN_DAYS),
        ).scalar() or 0,
    }


def pharmacist_dashboard(db: Session, pharmacist_id: int, branch_id: int) -> dict:
    today = local_today()
    prescriptions = _branch_prescriptions(db, branch_id)
    controlled = (
        db.query(func.count(ProductOrder.id))
        .join(Product, Product.id == ProductOrder.product_id)
        .join(Order, Order.id == ProductOrder.order_id)
        .join(Shipping, Shipping.id == Order.shipping_id)
        .filter(Product.is_controlled.is_(True), Shipping.branch_id == branch_id)
        .scalar()
    )
    return {
        "branch_id": branch_id,
        "my_total_approvals": db.query(func.count(Approval.id)).filter(Approval.user_id == pharmacist_id).scalar() or 0,
        "my_approvals_today": db.query(func.count(Approval.id)).filter(
            Approval.user_id == pharmacist_id, Approval.approval_date == today,
        ).scalar() or 0,
        "branch_pending_prescriptions": prescriptions.filter(
            Prescription.status_id == PrescriptionStatusId.PENDING,
        ).count(),
        "branch_total_prescriptions": prescriptions.count(),
        "branch_total_orders": _branch_orders(db, branch_id).count(),
        "branch_controlled_dispensed": controlled or 0,
    }


def driver_dashboard(db: Session, driver: User) -> dict:
    """Driver's slot figures; urgent deliveries of the branch count towards every driver."""
    if not driver.branch_id or not driver.slot_id:
        return {"slot_name": None, "metrics": None}

    local_start = datetime.combine(local_today(), time.min)
    branch_deliveries = (
        db.query(Shipping)
        .join(Order, Order.shipping_id == Shipping.id)
        .filter(Shipping.branch_id == driver.branch_id, Shipping.is_delivery.is_(True))
    )
    mine = branch_deliveries.filter(
        (Shipping.slot_id == driver.slot_id) | Shipping.is_urgent.is_(True),
    )
    open_statuses = (OrderStatusId.PENDING, OrderStatusId.OUT_FOR_DELIVERY)

    return {
        "slot_name": driver.slot.name if driver.slot else None,
        "metrics": {
            "my_slot_open_deliveries": mine.filter(Order.order_status_id.in_(open_statuses)).count(),
            "my_slot_todays_deliveries": mine.filter(
                Shipping.shipping_date >= local_start,
                Shipping.shipping_date < local_start + timedelta(days=1),
            ).count(),
            "my_slot_urgent_deliveries": mine.filter(
                Shipping.is_urgent.is_(True), Order.order_status_id.in_(open_statuses),
            ).count(),
            "my_slot_total_deliveries": mine.count(),
            "branch_open_deliveries": branch_deliveries.filter(Order.order_status_id.in_(open_statuses)).count(),
            "branch_total_deliveries": branch_deliveries.count(),
        },
    }
