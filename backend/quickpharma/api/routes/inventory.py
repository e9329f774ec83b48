"""Inventory batches and expiry disposal for staff (branch-isolated for non-admins)."""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db, require_admin, require_roles
from quickpharma.core.audit import AuditLog
from quickpharma.core.exceptions import BusinessError
from quickpharma.core.permissions import ensure_same_branch, staff_branch_scope
from quickpharma.models.inventory import Inventory
from quickpharma.models.lookup import RoleName
from quickpharma.models.user import User
from quickpharma.schemas.inventory import InventoryCreate, InventoryUpdate
from quickpharma.services import inventory_service, log_service
from quickpharma.services.inventory_service import InventoryResult

router = APIRouter()

require_inventory_staff = require_roles(RoleName.ADMIN, RoleName.MANAGER, RoleName.PHARMACIST)

NOT_FOUND_REASONS = {"PRODUCT_NOT_FOUND": "Product", "BRANCH_NOT_FOUND": "Branch"}


def _raise_for(result: InventoryResult) -> None:
    if result.reason in NOT_FOUND_REASONS:
        raise BusinessError.not_found(NOT_FOUND_REASONS[result.reason])
    raise BusinessError.bad_request(result.message)


def _load_scoped(db: Session, user: User, inventory_id: int) -> Inventory:
    item = inventory_service.get_inventory(db, inventory_id)
    if not item:
        raise BusinessError.not_found("Inventory")
    ensure_same_branch(user, item.branch_id, "inventory", item.id)
    return item


def _batch_details(item: Inventory) -> str:
    expiry = item.expiry_date.isoformat() if item.expiry_date else "none"
    product = item.product.name if item.product else item.product_id
    return f"Product: {product}, Branch ID: {item.branch_id}, Quantity: {item.quantity}, Expiry: {expiry}"


@router.get("/Inventory")
def list_inventory(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    search: Optional[str] = Query(None),
    branch_id: Optional[int] = Query(None, alias="branchId"),
    expiry_date: Optional[date] = Query(None, alias="expiryDate"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_inventory_staff),
):
    scope = staff_branch_scope(current_user, "inventory")
    if scope is not None:
        branch_id = scope
    return inventory_service.list_inventory(db, page_number, page_size, search, branch_id, expiry_date)


@router.get("/Inventory/{inventory_id}")
def get_inventory(
    inventory_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_inventory_staff),
):
    return inventory_service.inventory_to_dict(_load_scoped(db, current_user, inventory_id))


@router.post("/Inventory", status_code=status.HTTP_201_CREATED)
def create_inventory(
    body: InventoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    result = inventory_service.create_inventory(db, body.product_id, body.branch_id, body.quantity, body.expiry_date)
    if not result.ok:
        _raise_for(result)

    item = result.item
    log_service.create_inventory_change_log(
        db, current_user.id, item.product.name if item.product else None,
        item.branch.city_name if item.branch else None, inventory_id=item.id,
    )
    log_service.create_add_record_log(db, current_user.id, "Inventory", item.id, _batch_details(item))
    AuditLog.log_action("create", "inventory", item.id, current_user, changes={"quantity": item.quantity})
    return inventory_service.inventory_to_dict(item)


@router.put("/Inventory/{inventory_id}")
def update_inventory(
    inventory_id: int,
    body: InventoryUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_inventory_staff),
):
    item = _load_scoped(db, current_user, inventory_id)
    if body.branch_id is not None and body.branch_id != item.branch_id:
        ensure_same_branch(current_user, body.branch_id, "inventory", item.id)

    before = _batch_details(item)
    result = inventory_service.update_inventory(
        db, item, body.product_id, body.branch_id, body.quantity, body.expiry_date, body.clear_expiry,
    )
    if not result.ok:
        _raise_for(result)

    item = result.item
    log_service.create_inventory_change_log(
        db, current_user.id, item.product.name if item.product else None,
        item.branch.city_name if item.branch else None, inventory_id=item.id,
    )
    log_service.create_edit_record_log(
        db, current_user.id, "Inventory", item.id, f"{before} -> {_batch_details(item)}",
    )
    AuditLog.log_action("update", "inventory", item.id, current_user, changes={"quantity": item.quantity})
    return inventory_service.inventory_to_dict(item)


@router.delete("/Inventory/{inventory_id}")
def delete_inventory(
    inventory_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_inventory_staff),
):
    item = _load_scoped(db, current_user, inventory_id)
    details = _batch_details(item)
    product_name = item.product.name if item.product else None
    branch_name = item.branch.city_name if item.branch else None

    inventory_service.delete_inventory(db, item)

    log_service.create_inventory_change_log(db, current_user.id, product_name, branch_name)
    log_service.create_delete_record_log(db, current_user.id, "Inventory", inventory_id, details)
    AuditLog.log_action("delete", "inventory", inventory_id, current_user)
    return {"deleted": True}


# ------------------------------------------------------------------------------
# Expired batches
# ------------------------------------------------------------------------------

@router.get("/ExpiredProducts")
def expired_products(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_inventory_staff),
):
    scope = staff_branch_scope(current_user, "inventory")
    if scope is not None:
        branch_id = scope
    return inventory_service.list_expired(db, branch_id)


@router.post("/ExpiredProducts/dispose/{inventory_id}")
def dispose_expired(
    inventory_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_inventory_staff),
):
    item = _load_scoped(db, current_user, inventory_id)
    details = _batch_details(item)
    product_name = item.product.name if item.product else None
    branch_name = item.branch.city_name if item.branch else None

    result = inventory_service.dispose_expired(db, item)
    if not result.ok:
        raise BusinessError.bad_request(result.message)

    log_service.create_inventory_change_log(db, current_user.id, product_name, branch_name)
    log_service.create_delete_record_log(db, current_user.id, "Inventory", inventory_id, f"Disposed expired batch. {details}")
    AuditLog.log_action("dispose", "inventory", inventory_id, current_user)
    return {"disposed": True}
