"""Supplier orders and reorder rules (Admin, Manager, Pharmacist)."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db, require_roles
from quickpharma.core.audit import AuditLog
from quickpharma.core.exceptions import BusinessError
from quickpharma.core.permissions import ensure_same_branch, is_admin
from quickpharma.models.lookup import RoleName
from quickpharma.models.supplier_order import Reorder, SupplierOrder
from quickpharma.models.user import User
from quickpharma.schemas.supplier_order import ReorderCreate, ReorderUpdate, SupplierOrderCreate, SupplierOrderUpdate
from quickpharma.services import supplier_order_service
from quickpharma.services.supplier_order_service import BRANCH_NOT_FOUND, SupplierOrderResult

router = APIRouter()

require_purchasing_staff = require_roles(RoleName.ADMIN, RoleName.MANAGER, RoleName.PHARMACIST)

NOT_FOUND_REASONS = {"PRODUCT_NOT_FOUND": "Product", "SUPPLIER_NOT_FOUND": "Supplier"}


def _raise_for(result: SupplierOrderResult) -> None:
    if result.reason in NOT_FOUND_REASONS:
        raise BusinessError.not_found(NOT_FOUND_REASONS[result.reason])
    if result.reason == "DUPLICATE":
        raise BusinessError.conflict(result.message)
    raise BusinessError.bad_request(result.message)


def _list_branch(user: User, requested: Optional[int]) -> Optional[int]:
    if is_admin(user):
        return requested
    if not user.branch_id:
        raise BusinessError.bad_request(BRANCH_NOT_FOUND)
    return user.branch_id


def _load_order(db: Session, user: User, supplier_order_id: int) -> SupplierOrder:
    so = supplier_order_service.get_supplier_order(db, supplier_order_id)
    if not so:
        raise BusinessError.not_found("Supplier order")
    ensure_same_branch(user, so.branch_id, "supplier_order", so.id)
    return so


def _load_rule(db: Session, user: User, reorder_id: int) -> Reorder:
    rule = supplier_order_service.get_reorder(db, reorder_id)
    if not rule:
        raise BusinessError.not_found("Reorder")
    ensure_same_branch(user, rule.branch_id, "reorder", rule.id)
    return rule


# ------------------------------------------------------------------------------
# Supplier orders
# ------------------------------------------------------------------------------

@router.get("/SupplierOrder")
def list_supplier_orders(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    search: Optional[str] = Query(None),
    status_id: Optional[int] = Query(None, alias="statusId"),
    order_date: Optional[date] = Query(None, alias="orderDate"),
    branch_id: Optional[int] = Query(None, alias="branchId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchasing_staff),
):
    return supplier_order_service.list_supplier_orders(
        db, page_number, page_size, search, status_id, order_date, _list_branch(current_user, branch_id),
    )


@router.get("/SupplierOrder/statuses")
def supplier_order_statuses(db: Session = Depends(get_db)):
    return supplier_order_service.list_statuses(db)


@router.get("/SupplierOrder/{supplier_order_id}")
def supplier_order_details(
    supplier_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchasing_staff),
):
    return supplier_order_service.supplier_order_to_dict(_load_order(db, current_user, supplier_order_id))


@router.post("/SupplierOrder", status_code=status.HTTP_201_CREATED)
def create_supplier_order(
    body: SupplierOrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchasing_staff),
):
    result = supplier_order_service.create_supplier_order(
        db, current_user, body.product_id, body.supplier_id, body.quantity, body.branch_id,
    )
    if not result.ok:
        _raise_for(result)
    AuditLog.log_action("create", "supplier_order", result.record.id, current_user,
                        changes={"quantity": body.quantity})
    return supplier_order_service.supplier_order_to_dict(result.record)


@router.put("/SupplierOrder/{supplier_order_id}")
def update_supplier_order(
    supplier_order_id: int,
    body: SupplierOrderUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchasing_staff),
):
    so = _load_order(db, current_user, supplier_order_id)
    result = supplier_order_service.update_supplier_order(
        db, current_user, so, body.product_id, body.supplier_id, body.quantity, body.status_id,
    )
    if not result.ok:
        _raise_for(result)
    AuditLog.log_action("update", "supplier_order", so.id, current_user)
    return supplier_order_service.supplier_order_to_dict(result.record)


@router.delete("/SupplierOrder/{supplier_order_id}")
def delete_supplier_order(
    supplier_order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchasing_staff),
):
    so = _load_order(db, current_user, supplier_order_id)
    supplier_order_service.delete_supplier_order(db, current_user, so)
    AuditLog.log_action("delete", "supplier_order", supplier_order_id, current_user)
    return {"deleted": True}


# ------------------------------------------------------------------------------
# Reorder rules
# ------------------------------------------------------------------------------

@router.get("/Reorder")
def list_reorders(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    search: Optional[str] = Query(None),
    branch_id: Optional[int] = Query(None, alias="branchId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchasing_staff),
):
    return supplier_order_service.list_reorders(
        db, page_number, page_size, search, _list_branch(current_user, branch_id),
    )


@router.get("/Reorder/{reorder_id}")
def reorder_details(reorder_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_purchasing_staff)):
    return supplier_order_service.reorder_to_dict(_load_rule(db, current_user, reorder_id))


@router.post("/Reorder", status_code=status.HTTP_201_CREATED)
def create_reorder(
    body: ReorderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchasing_staff),
):
    result = supplier_order_service.create_reorder(
        db, current_user, body.product_id, body.supplier_id, body.threshold, body.quantity, body.branch_id,
    )
    if not result.ok:
        _raise_for(result)
    AuditLog.log_action("create", "reorder", result.record.id, current_user)
    return supplier_order_service.reorder_to_dict(result.record)


@router.put("/Reorder/{reorder_id}")
def update_reorder(
    reorder_id: int,
    body: ReorderUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_purchasing_staff),
):
    rule = _load_rule(db, current_user, reorder_id)
    result = supplier_order_service.update_reorder(db, current_user, rule, body.supplier_id, body.threshold, body.quantity)
    if not result.ok:
        _raise_for(result)
    AuditLog.log_action("update", "reorder", rule.id, current_user)
    return supplier_order_service.reorder_to_dict(result.record)


@router.delete("/Reorder/{reorder_id}")
def delete_reorder(reorder_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_purchasing_staff)):
    rule = _load_rule(db, current_user, reorder_id)
    supplier_order_service.delete_reorder(db, current_user, rule)
    AuditLog.log_action("delete", "reorder", reorder_id, current_user)
    return {"deleted": True}
