"""
Prescription API.

Customers manage their health prescriptions under /Prescription/user/{userId}
(own records only) and stage checkout prescriptions. Staff review, approve
and reject; non-admin staff only see prescriptions whose address city is
served by their branch.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db, require_customer, require_roles
from quickpharma.core.audit import AuditLog
from quickpharma.core.exceptions import BusinessError
from quickpharma.core.permissions import ensure_same_branch, ensure_self, staff_branch_scope
from quickpharma.models.lookup import RoleName
from quickpharma.models.prescription import Prescription
from quickpharma.models.user import User
from quickpharma.schemas.prescription import CheckoutValidateRequest, PrescriptionApprove, PrescriptionReject
from quickpharma.services import cart_service, log_service, notification_service, prescription_service
from quickpharma.services.prescription_service import PrescriptionResult, UploadedFile

router = APIRouter()

require_reviewer = require_roles(RoleName.ADMIN, RoleName.MANAGER, RoleName.PHARMACIST)

NOT_FOUND_REASONS = {"PRESCRIPTION_NOT_FOUND": "Prescription", "PRODUCT_NOT_FOUND": "Product"}
CONFLICT_REASONS = {"NOT_PENDING", "IN_PLAN", "IN_ORDER", "PRESCRIPTION_REJECTED"}


def _raise_for(reason: str, body: dict) -> None:
    if reason in NOT_FOUND_REASONS:
        raise BusinessError.not_found(NOT_FOUND_REASONS[reason])
    if reason in CONFLICT_REASONS:
        raise BusinessError.conflict(body)
    raise BusinessError.bad_request(body)


async def _read_upload(upload: Optional[UploadFile]) -> Optional[UploadedFile]:
    if upload is None:
        return None
    content = await upload.read()
    if not content:
        return None
    return upload.filename or "document", content, upload.content_type


def _document_response(p: Prescription, kind: str, inline: bool = True) -> Response:
    if kind == "cpr":
        content, name, ctype = p.cpr_document, p.cpr_document_file_name, p.cpr_document_content_type
    else:
        content, name, ctype = p.document, p.document_file_name, p.document_content_type
    if not content:
        raise BusinessError.not_found("Document")
    disposition = "inline" if inline else "attachment"
    return Response(
        content=content,
        media_type=ctype or "application/octet-stream",
        headers={"Content-Disposition": f'{disposition}; filename="{name or kind}"'},
    )


def _check_kind(kind: str) -> str:
    if kind not in ("prescription", "cpr"):
        raise BusinessError.not_found("Document")
    return kind


# ------------------------------------------------------------------------------
# Customer: health prescriptions
# ------------------------------------------------------------------------------

def _own_health_prescription(db: Session, user: User, user_id: int, prescription_id: int) -> Prescription:
    ensure_self(user, user_id, "prescription")
    p = prescription_service.get_health_prescription(db, user_id, prescription_id)
    if not p:
        raise BusinessError.not_found("Prescription")
    return p


@router.get("/Prescription/user/{user_id}/health")
def list_health_prescriptions(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    ensure_self(current_user, user_id, "prescription")
    return prescription_service.list_health_prescriptions(db, user_id)


@router.get("/Prescription/user/{user_id}/health/{prescription_id}")
def get_health_prescription(
    user_id: int,
    prescription_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    p = _own_health_prescription(db, current_user, user_id, prescription_id)
    return prescription_service.prescription_to_dict(p)


@router.post("/Prescription/user/{user_id}/health", status_code=status.HTTP_201_CREATED)
async def create_health_prescription(
    user_id: int,
    prescription_name: Optional[str] = Form(None, alias="prescriptionName"),
    prescription_file: Optional[UploadFile] = File(None, alias="prescriptionFile"),
    cpr_file: Optional[UploadFile] = File(None, alias="cprFile"),
    city_id: Optional[int] = Form(None, alias="cityId"),
    block: Optional[str] = Form(None),
    road: Optional[str] = Form(None),
    building_floor: Optional[str] = Form(None, alias="buildingFloor"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    ensure_self(current_user, user_id, "prescription")
    result = prescription_service.create_health_prescription(
        db, user_id, prescription_name,
        await _read_upload(prescription_file), await _read_upload(cpr_file),
        city_id, block, road, building_floor,
    )
    if not result.ok:
        _raise_for(result.reason, {"reason": result.reason})
    return prescription_service.prescription_to_dict(result.prescription)


@router.put("/Prescription/user/{user_id}/health/{prescription_id}")
async def update_health_prescription(
    user_id: int,
    prescription_id: int,
    prescription_name: Optional[str] = Form(None, alias="prescriptionName"),
    prescription_file: Optional[UploadFile] = File(None, alias="prescriptionFile"),
    cpr_file: Optional[UploadFile] = File(None, alias="cprFile"),
    city_id: Optional[int] = Form(None, alias="cityId"),
    block: Optional[str] = Form(None),
    road: Optional[str] = Form(None),
    building_floor: Optional[str] = Form(None, alias="buildingFloor"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    p = _own_health_prescription(db, current_user, user_id, prescription_id)
    result: PrescriptionResult = prescription_service.update_health_prescription(
        db, p, prescription_name,
        await _read_upload(prescription_file), await _read_upload(cpr_file),
        city_id, block, road, building_floor,
    )
    if not result.ok:
        _raise_for(result.reason, {"reason": result.reason})
    return prescription_service.prescription_to_dict(result.prescription)


@router.delete("/Prescription/user/{user_id}/health/{prescription_id}")
def delete_health_prescription(
    user_id: int,
    prescription_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    p = _own_health_prescription(db, current_user, user_id, prescription_id)
    result = prescription_service.delete_health_prescription(db, p)
    if not result.ok:
        _raise_for(result.reason, {"reason": result.reason})
    return {"deleted": True}


@router.get("/Prescription/user/{user_id}/{prescription_id}/{kind}")
def download_own_document(
    user_id: int,
    prescription_id: int,
    kind: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    ensure_self(current_user, user_id, "prescription")
    p = prescription_service.get_user_prescription(db, user_id, prescription_id)
    if not p:
        raise BusinessError.not_found("Prescription")
    return _document_response(p, _check_kind(kind), inline=False)


# ------------------------------------------------------------------------------
# Customer: checkout prescriptions
# ------------------------------------------------------------------------------

@router.post("/Prescription/checkout/validate")
def validate_checkout_prescription(
    body: CheckoutValidateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    """Validate an approved prescription against the given lines, or the prescribed lines of the cart."""
    ensure_self(current_user, body.user_id, "prescription")
    if body.items is not None:
        lines = [(i.product_id, i.product_name, i.quantity) for i in body.items]
    else:
        lines = [
            (i.product_id, i.product.name, i.quantity)
            for i in cart_service.cart_items(db, body.user_id)
            if i.product.requires_prescription
        ]
    return prescription_service.validate_checkout_prescription(
        db, body.user_id, body.prescription_id, lines, is_health_profile=body.is_health_profile,
    ).as_dict()


@router.post("/Prescription/checkout/{user_id}", status_code=status.HTTP_201_CREATED)
async def upload_checkout_prescription(
    user_id: int,
    prescription_file: Optional[UploadFile] = File(None, alias="prescriptionFile"),
    cpr_file: Optional[UploadFile] = File(None, alias="cprFile"),
    city_id: Optional[int] = Form(None, alias="cityId"),
    block: Optional[str] = Form(None),
    road: Optional[str] = Form(None),
    building_floor: Optional[str] = Form(None, alias="buildingFloor"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    ensure_self(current_user, user_id, "prescription")
    result = prescription_service.add_checkout_prescription(
        db, user_id, await _read_upload(prescription_file), await _read_upload(cpr_file),
        city_id, block, road, building_floor,
    )
    if not result.ok:
        db.rollback()
        _raise_for(result.reason, {"reason": result.reason})
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return {"prescription_id": result.prescription.id}


# ------------------------------------------------------------------------------
# Staff review
# ------------------------------------------------------------------------------

def _scoped_prescription(db: Session, user: User, prescription_id: int) -> Prescription:
    p = prescription_service.get_prescription(db, prescription_id)
    if not p:
        raise BusinessError.not_found("Prescription")
    ensure_same_branch(user, prescription_service.branch_of_prescription(p), "prescription", p.id)
    return p


@router.get("/Prescription")
def list_prescriptions(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    customer_name: Optional[str] = Query(None, alias="customerName"),
    status_id: Optional[int] = Query(None, alias="statusId"),
    prescription_date: Optional[date] = Query(None, alias="prescriptionDate"),
    branch_id: Optional[int] = Query(None, alias="branchId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer),
):
    scope = staff_branch_scope(current_user, "prescription")
    if scope is not None:
        branch_id = scope
    return prescription_service.list_prescriptions(
        db, page_number, page_size, customer_name, status_id, prescription_date, branch_id,
    )


@router.get("/Prescription/statuses")
def prescription_statuses(db: Session = Depends(get_db)) -> List[dict]:
    return prescription_service.list_statuses(db)


@router.get("/Prescription/{prescription_id}")
def prescription_details(
    prescription_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer),
):
    return prescription_service.prescription_details(db, _scoped_prescription(db, current_user, prescription_id))


@router.get("/Prescription/{prescription_id}/documents/{kind}")
def prescription_document(
    prescription_id: int,
    kind: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer),
):
    p = _scoped_prescription(db, current_user, prescription_id)
    return _document_response(p, _check_kind(kind))


@router.post("/Prescription/{prescription_id}/approve")
def approve_prescription(
    prescription_id: int,
    body: PrescriptionApprove,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer),
):
    _scoped_prescription(db, current_user, prescription_id)
    result = prescription_service.approve_prescription(
        db, prescription_id, current_user.id, body.product_id, body.quantity, body.dosage, body.expiry_date,
    )
    if not result.approved:
        _raise_for(result.reason, {"approved": False, "reason": result.reason})

    notification_service.send_prescription_approved(
        result.customer_email, result.customer_name or "Customer", prescription_id,
        result.product_name, result.expiry_date, result.order_id,
    )
    log_service.create_prescription_approval_log(db, current_user.id, prescription_id)
    log_service.create_add_record_log(
        db, current_user.id, "Approval", result.approval_id,
        f"Product: {result.product_name}, Quantity: {result.quantity}, Dosage: {result.dosage}, "
        f"Expiry: {result.expiry_date}",
    )
    log_service.create_edit_record_log(
        db, current_user.id, "Prescription", prescription_id, "Status -> Approved",
    )
    if result.is_controlled:
        log_service.create_controlled_dispensed_log(db, current_user.id, result.product_name, prescription_id)
    AuditLog.log_action("approve", "prescription", prescription_id, current_user,
                        changes={"product_id": body.product_id, "quantity": body.quantity})

    return {
        "approved": True,
        "approval_id": result.approval_id,
        "order_id": result.order_id,
        "shipping_id": result.shipping_id,
    }


@router.post("/Prescription/{prescription_id}/reject")
def reject_prescription(
    prescription_id: int,
    body: PrescriptionReject,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_reviewer),
):
    _scoped_prescription(db, current_user, prescription_id)
    result = prescription_service.reject_prescription(db, prescription_id)
    if not result.ok:
        _raise_for(result.reason, {"rejected": False, "reason": result.reason})

    p = result.prescription
    customer = p.user
    if customer:
        notification_service.send_prescription_rejected(customer.email, customer.full_name, p.id, body.reason)
    log_service.create_prescription_rejection_log(db, current_user.id, p.id, body.reason)
    AuditLog.log_action("reject", "prescription", p.id, current_user)
    return {"rejected": True}
