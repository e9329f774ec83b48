"""Customer prescription plans: monthly refills of an approved health prescription."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db, require_customer
from quickpharma.core.audit import AuditLog
from quickpharma.core.exceptions import BusinessError
from quickpharma.core.permissions import ensure_self
from quickpharma.models.user import User
from quickpharma.schemas.prescription import PlanRequest
from quickpharma.services import plan_service
from quickpharma.services.plan_service import PlanResult

router = APIRouter()


def _raise_for(result: PlanResult) -> None:
    if result.reason == "NOT_FOUND":
        raise BusinessError.not_found("Plan")
    if result.reason == "PLAN_EXISTS":
        raise BusinessError.conflict({"reason": result.reason})
    raise BusinessError.bad_request({"reason": result.reason})


@router.get("/PrescriptionPlan/user/{user_id}")
def list_plans(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    ensure_self(current_user, user_id, "prescription_plan")
    return plan_service.list_user_plans(db, user_id)


@router.get("/PrescriptionPlan/user/{user_id}/eligible")
def eligible_prescriptions(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    ensure_self(current_user, user_id, "prescription_plan")
    return plan_service.list_eligible_prescriptions(db, user_id)


@router.get("/PrescriptionPlan/user/{user_id}/eligible/{prescription_id}/items")
def eligible_items(
    user_id: int,
    prescription_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    ensure_self(current_user, user_id, "prescription_plan")
    return plan_service.plan_items(db, user_id, prescription_id)


@router.get("/PrescriptionPlan/user/{user_id}/{plan_id}")
def plan_details(user_id: int, plan_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    ensure_self(current_user, user_id, "prescription_plan")
    plan = plan_service.get_user_plan(db, user_id, plan_id)
    if not plan:
        raise BusinessError.not_found("Plan")
    return plan_service.plan_to_dict(db, plan)


@router.post("/PrescriptionPlan/user/{user_id}", status_code=status.HTTP_201_CREATED)
def create_plan(
    user_id: int,
    body: PlanRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    ensure_self(current_user, user_id, "prescription_plan")
    if not body.prescription_id:
        raise BusinessError.bad_request({"reason": "PRESCRIPTION_REQUIRED"})

    result = plan_service.create_plan(
        db, user_id, body.prescription_id, body.method,
        body.branch_id, body.city_id, body.block, body.road, body.building_floor,
    )
    if not result.ok:
        _raise_for(result)
    AuditLog.log_action("create", "prescription_plan", result.plan.id, current_user)
    return plan_service.plan_to_dict(db, result.plan)


@router.put("/PrescriptionPlan/user/{user_id}/{plan_id}")
def update_plan(
    user_id: int,
    plan_id: int,
    body: PlanRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    ensure_self(current_user, user_id, "prescription_plan")
    result = plan_service.update_plan(
        db, user_id, plan_id, body.method,
        body.branch_id, body.city_id, body.block, body.road, body.building_floor,
    )
    if not result.ok:
        _raise_for(result)
    AuditLog.log_action("update", "prescription_plan", plan_id, current_user)
    return plan_service.plan_to_dict(db, result.plan)


@router.delete("/PrescriptionPlan/user/{user_id}/{plan_id}")
def delete_plan(user_id: int, plan_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    ensure_self(current_user, user_id, "prescription_plan")
    if not plan_service.delete_plan(db, user_id, plan_id):
        raise BusinessError.not_found("Plan")
    AuditLog.log_action("delete", "prescription_plan", plan_id, current_user)
    return {"deleted": True}
