"""Per-role dashboards. Branch dashboards use the caller's branch; an admin picks one with branchId."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db, require_admin, require_roles
from quickpharma.core.exceptions import BusinessError
from quickpharma.core.permissions import staff_branch_scope
from quickpharma.models.lookup import RoleName
from quickpharma.models.user import User
from quickpharma.services import dashboard_service

router = APIRouter()


def _dashboard_branch(user: User, requested: Optional[int]) -> int:
    scope = staff_branch_scope(user, "dashboard")
    branch_id = scope if scope is not None else requested
    if not branch_id:
        raise BusinessError.bad_request("branchId is required.")
    return branch_id


@router.get("/AdminDashboard")
def admin_dashboard(db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    return dashboard_service.admin_dashboard(db)


@router.get("/ManagerDashboard")
def manager_dashboard(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(RoleName.MANAGER, RoleName.ADMIN)),
):
    return dashboard_service.manager_dashboard(db, _dashboard_branch(current_user, branch_id))


@router.get("/PharmacistDashboard")
def pharmacist_dashboard(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(RoleName.PHARMACIST)),
):
    return dashboard_service.pharmacist_dashboard(db, current_user.id, _dashboard_branch(current_user, None))


@router.get("/DriverDashboard")
def driver_dashboard(db: Session = Depends(get_db), current_user: User = Depends(require_roles(RoleName.DRIVER))):
    return dashboard_service.driver_dashboard(db, current_user)
