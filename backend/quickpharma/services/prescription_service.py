"""
Prescriptions: customer health prescriptions, checkout uploads, staff review.

Status flow: Pending -> Approved | Rejected; Approved -> Expired once the
latest approval's expiry date is in the past. Expiry is applied lazily on
read (expire_health_prescriptions) and periodically by the scheduler.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from quickpharma.core.clock import local_now, local_today
from quickpharma.models.catalog import Product
from quickpharma.models.location import Address, City
from quickpharma.models.lookup import PrescriptionStatus, PrescriptionStatusId
from quickpharma.models.order import Order, ProductOrder
from quickpharma.models.prescription import Approval, Prescription, PrescriptionPlan
from quickpharma.models.user import User
from quickpharma.services.paging import apply_page, normalize_page, paged

logger = logging.getLogger(__name__)

# (file_name, content, content_type)
UploadedFile = Tuple[str, bytes, Optional[str]]

_CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}


def normalize_content_type(file_name: Optional[str], content_type: Optional[str]) -> str:
    ct = (content_type or "").strip().lower()
    if ct in ("application/pdf", "image/jpeg", "image/png"):
        return ct
    if ct == "image/jpg":
        return "image/jpeg"
    name = (file_name or "").lower()
    for ext, mapped in _CONTENT_TYPES.items():
        if name.endswith(ext):
            return mapped
    return "application/octet-stream"


def latest_expiry(prescription: Prescription) -> Optional[date]:
    dates = [a.prescription_expiry_date for a in prescription.approvals if a.prescription_expiry_date]
    return max(dates) if dates else None


def latest_approvals_by_product(prescription: Prescription) -> Dict[int, Approval]:
    latest: Dict[int, Approval] = {}
    for a in prescription.approvals:
        current = latest.get(a.product_id)
        if current is None or (a.timestamp, a.id) > (current.timestamp, current.id):
            latest[a.product_id] = a
    return latest


def expire_health_prescriptions(db: Session, today: Optional[date] = None, user_id: Optional[int] = None) -> int:
    """Approved health prescriptions whose latest approval expired -> Expired."""
    today = today or local_today()
    latest = (
        db.query(Approval.prescription_id, func.max(Approval.prescription_expiry_date).label("expiry"))
        .group_by(Approval.prescription_id)
        .subquery()
    )
    q = (
        db.query(Prescription)
        .join(latest, latest.c.prescription_id == Prescription.id)
        .filter(
            Prescription.is_health.is_(True),
            Prescription.status_id == PrescriptionStatusId.APPROVED,
            latest.c.expiry < today,
        )
    )
    if user_id:
        q = q.filter(Prescription.user_id == user_id)

    expired = q.all()
    for p in expired:
        p.status_id = PrescriptionStatusId.EXPIRED
    if expired:
        db.commit()
        logger.info(f"Expired {len(expired)} health prescription(s)")
    return len(expired)


def _address_fields(address: Optional[Address]) -> dict:
    return {
        "address_id": address.id if address else None,
        "city_id": address.city_id if address else None,
        "city_name": address.city.name if address and address.city else None,
        "block": address.block if address else None,
        "road": address.road if address else None,
        "building_floor": address.building_floor if address else None,
    }


def prescription_to_dict(p: Prescription) -> dict:
    expiry = latest_expiry(p)
    data = {
        "prescription_id": p.id,
        "prescription_name": p.name,
        "status_id": p.status_id,
        "status_name": p.status.name if p.status else None,
        "creation_date": p.creation_date.isoformat() if p.creation_date else None,
        "is_health": bool(p.is_health),
        "has_prescription_document": bool(p.document),
        "has_cpr_document": bool(p.cpr_document),
        "prescription_file_name": p.document_file_name,
        "cpr_file_name": p.cpr_document_file_name,
        "latest_approval_expiry_date": expiry.isoformat() if expiry else None,
    }
    data.update(_address_fields(p.address))
    return data


# ------------------------------------------------------------------------------
# Customer side
# ------------------------------------------------------------------------------

@dataclass
class PrescriptionResult:
    ok: bool
    reason: str = "OK"
    prescription: Optional[Prescription] = None


def list_health_prescriptions(db: Session, user_id: int, today: Optional[date] = None) -> List[dict]:
    expire_health_prescriptions(db, today, user_id=user_id)
    rows = (
        db.query(Prescription)
        .filter(Prescription.user_id == user_id, Prescription.is_health.is_(True))
        .order_by(Prescription.creation_date.desc(), Prescription.id.desc())
        .all()
    )
    return [prescription_to_dict(p) for p in rows]


def get_user_prescription(db: Session, user_id: int, prescription_id: int) -> Optional[Prescription]:
    return db.query(Prescription).filter(
        Prescription.id == prescription_id, Prescription.user_id == user_id
    ).first()


def get_health_prescription(db: Session, user_id: int, prescription_id: int,
                            today: Optional[date] = None) -> Optional[Prescription]:
    expire_health_prescriptions(db, today, user_id=user_id)
    p = get_user_prescription(db, user_id, prescription_id)
    if not p or not p.is_health:
        return None
    return p


def valid_address(db: Session, city_id: Optional[int], block: Optional[str], road: Optional[str],
                  building_floor: Optional[str]) -> bool:
    if not city_id or city_id <= 0:
        return False
    if not (block or "").strip() or not (road or "").strip() or not (building_floor or "").strip():
        return False
    return db.query(City.id).filter(City.id == city_id).first() is not None


def _new_address(db: Session, city_id: int, block: str, road: str, building_floor: str) -> Address:
    address = Address(
        city_id=city_id,
        block=block.strip(),
        road=road.strip(),
        building_floor=building_floor.strip(),
        is_profile_address=False,
    )
    db.add(address)
    db.flush()
    return address


def _attach_files(p: Prescription, document: Optional[UploadedFile], cpr: Optional[UploadedFile]) -> None:
    if document:
        name, content, ctype = document
        p.document = content
        p.document_file_name = name
        p.document_content_type = normalize_content_type(name, ctype)
    if cpr:
        name, content, ctype = cpr
        p.cpr_document = content
        p.cpr_document_file_name = name
        p.cpr_document_content_type = normalize_content_type(name, ctype)


def _has_content(upload: Optional[UploadedFile]) -> bool:
    return bool(upload and upload[1])


def create_health_prescription(
    db: Session,
    user_id: int,
    name: Optional[str],
    document: Optional[UploadedFile],
    cpr: Optional[UploadedFile],
    city_id: Optional[int],
    block: Optional[str],
    road: Optional[str],
    building_floor: Optional[str],
) -> PrescriptionResult:
    if user_id <= 0:
        return PrescriptionResult(False, "INVALID_USER")
    if not (name or "").strip():
        return PrescriptionResult(False, "NAME_REQUIRED")
    if not _has_content(document) or not _has_content(cpr):
        return PrescriptionResult(False, "FILES_REQUIRED")
    if not valid_address(db, city_id, block, road, building_floor):
        return PrescriptionResult(False, "ADDRESS_REQUIRED")

    try:
        address = _new_address(db, city_id, block, road, building_floor)
        p = Prescription(
            user_id=user_id,
            name=name.strip(),
            status_id=PrescriptionStatusId.PENDING,
            creation_date=local_today(),
            is_health=True,
            address_id=address.id,
        )
        _attach_files(p, document, cpr)
        db.add(p)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(p)
    logger.info(f"Health prescription #{p.id} created for user {user_id}")
    return PrescriptionResult(True, prescription=p)


def update_health_prescription(
    db: Session,
    p: Prescription,
    name: Optional[str] = None,
    document: Optional[UploadedFile] = None,
    cpr: Optional[UploadedFile] = None,
    city_id: Optional[int] = None,
    block: Optional[str] = None,
    road: Optional[str] = None,
    building_floor: Optional[str] = None,
) -> PrescriptionResult:
    """Only pending prescriptions can be edited; omitted fields are kept."""
    if p.status_id != PrescriptionStatusId.PENDING:
        return PrescriptionResult(False, "NOT_PENDING")

    if name is not None:
        if not name.strip():
            return PrescriptionResult(False, "NAME_REQUIRED")
        p.name = name.strip()

    if any(v is not None for v in (city_id, block, road, building_floor)):
        address = p.address
        merged = {
            "city_id": city_id if city_id is not None else (address.city_id if address else None),
            "block": block if block is not None else (address.block if address else None),
            "road": road if road is not None else (address.road if address else None),
            "building_floor": building_floor if building_floor is not None else (address.building_floor if address else None),
        }
        if not valid_address(db, **merged):
            return PrescriptionResult(False, "ADDRESS_REQUIRED")
        if address and not address.is_profile_address:
            address.city_id = merged["city_id"]
            address.block = merged["block"].strip()
            address.road = merged["road"].strip()
            address.building_floor = merged["building_floor"].strip()
        else:
            p.address_id = _new_address(db, **merged).id

    _attach_files(p, document if _has_content(document) else None, cpr if _has_content(cpr) else None)
    db.commit()
    db.refresh(p)
    return PrescriptionResult(True, prescription=p)


def delete_health_prescription(db: Session, p: Prescription) -> PrescriptionResult:
    in_plan = (
        db.query(PrescriptionPlan.id)
        .join(Approval, Approval.id == PrescriptionPlan.approval_id)
        .filter(Approval.prescription_id == p.id)
        .first()
    )
    if in_plan:
        return PrescriptionResult(False, "IN_PLAN")
    if db.query(ProductOrder.id).filter(ProductOrder.prescription_id == p.id).first():
        return PrescriptionResult(False, "IN_ORDER")

    address = p.address
    try:
        db.delete(p)
        db.flush()
        if address and not address.is_profile_address:
            db.delete(address)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return PrescriptionResult(True)


def add_checkout_prescription(
    db: Session,
    user_id: int,
    document: Optional[UploadedFile],
    cpr: Optional[UploadedFile],
    city_id: Optional[int],
    block: Optional[str],
    road: Optional[str],
    building_floor: Optional[str],
) -> PrescriptionResult:
    """Stage a one-off checkout prescription (Pending). Flushes, never commits."""
    if not _has_content(document) or not _has_content(cpr):
        return PrescriptionResult(False, "FILES_REQUIRED")
    if not valid_address(db, city_id, block, road, building_floor):
        return PrescriptionResult(False, "ADDRESS_REQUIRED")

    now = local_now()
    address = _new_address(db, city_id, block, road, building_floor)
    p = Prescription(
        user_id=user_id,
        name=f"Checkout Prescription - {now:%Y%m%d%H%M%S}",
        status_id=PrescriptionStatusId.PENDING,
        creation_date=now.date(),
        is_health=False,
        address_id=address.id,
    )
    _attach_files(p, document, cpr)
    db.add(p)
    db.flush()
    return PrescriptionResult(True, prescription=p)


# ------------------------------------------------------------------------------
# Checkout validation
# ------------------------------------------------------------------------------

@dataclass
class PrescriptionItemCheck:
    product_id: int
    product_name: Optional[str]
    cart_quantity: int
    approved_quantity: Optional[int] = None
    matches: bool = False
    reason: str = "OK"


@dataclass
class PrescriptionValidation:
    is_valid: bool
    reason: str
    items: List[PrescriptionItemCheck] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "reason": self.reason,
            "items": [vars(i) for i in self.items],
        }


def validate_checkout_prescription(
    db: Session,
    user_id: int,
    prescription_id: int,
    prescribed_lines: Iterable[Tuple[int, Optional[str], int]],
    is_health_profile: bool = False,
) -> PrescriptionValidation:
    """
    Check an approved prescription against the prescribed cart lines.

    Args:
        prescribed_lines: (product_id, product_name, cart_quantity) for every
            cart line that requires a prescription
        is_health_profile: the customer picked it from their health profile,
            so it must be a health prescription

    Matching uses the latest approval per product; the cart quantity must
    equal the approved quantity. A cart without prescribed lines needs no
    prescription and is valid.
    """
    lines = list(prescribed_lines)
    if user_id <= 0 or not prescription_id or prescription_id <= 0:
        return PrescriptionValidation(False, "INVALID_INPUT")
    if not lines:
        return PrescriptionValidation(True, "NO_PRESCRIPTION_ITEMS")

    p = db.query(Prescription).filter(Prescription.id == prescription_id).first()
    if not p:
        return PrescriptionValidation(False, "PRESCRIPTION_NOT_FOUND")
    if p.user_id != user_id:
        return PrescriptionValidation(False, "NOT_OWNER")
    if p.status_id != PrescriptionStatusId.APPROVED:
        return PrescriptionValidation(False, "NOT_APPROVED")
    if is_health_profile and not p.is_health:
        return PrescriptionValidation(False, "NOT_HEALTH_PRESCRIPTION")

    approvals = latest_approvals_by_product(p)
    items = []
    for product_id, product_name, qty in lines:
        check = PrescriptionItemCheck(product_id, product_name, qty)
        approval = approvals.get(product_id)
        if approval is None:
            check.reason = "PRODUCT_NOT_IN_PRESCRIPTION"
        else:
            check.approved_quantity = approval.quantity
            if qty != approval.quantity:
                check.reason = "QUANTITY_MISMATCH"
            else:
                check.matches = True
        items.append(check)

    valid = all(i.matches for i in items)
    return PrescriptionValidation(valid, "OK" if valid else "MISMATCH", items)


# ------------------------------------------------------------------------------
# Staff side
# ------------------------------------------------------------------------------

def _branch_of(p: Prescription) -> Optional[int]:
    if p.address and p.address.city:
        return p.address.city.branch_id
    return None


def list_prescriptions(
    db: Session,
    page_number: int = 1,
    page_size: int = 10,
    customer_name: Optional[str] = None,
    status_id: Optional[int] = None,
    prescription_date: Optional[date] = None,
    branch_id: Optional[int] = None,
) -> dict:
    page_number, page_size = normalize_page(page_number, page_size)

    q = db.query(Prescription).join(User, User.id == Prescription.user_id)
    if customer_name and customer_name.strip():
        term = f"%{customer_name.strip().lower()}%"
        full_name = func.lower(func.coalesce(User.first_name, "") + " " + func.coalesce(User.last_name, ""))
        q = q.filter(full_name.like(term))
    if status_id and status_id > 0:
        q = q.filter(Prescription.status_id == status_id)
    if prescription_date:
        q = q.filter(Prescription.creation_date == prescription_date)
    if branch_id:
        q = (
            q.join(Address, Address.id == Prescription.address_id)
            .join(City, City.id == Address.city_id)
            .filter(City.branch_id == branch_id)
        )

    total = q.count()
    rows = apply_page(
        q.order_by(Prescription.creation_date.desc(), Prescription.id.desc()), page_number, page_size
    ).all()

    items = []
    for p in rows:
        data = prescription_to_dict(p)
        data["patient_id"] = p.user_id
        data["patient_name"] = p.user.full_name if p.user else "Unknown"
        data["branch_id"] = _branch_of(p)
        items.append(data)
    return paged(items, total, page_number, page_size)


def get_prescription(db: Session, prescription_id: int) -> Optional[Prescription]:
    return db.query(Prescription).filter(Prescription.id == prescription_id).first()


def branch_of_prescription(p: Prescription) -> Optional[int]:
    return _branch_of(p)


def prescription_details(db: Session, p: Prescription) -> dict:
    data = prescription_to_dict(p)
    customer = p.user
    data.update({
        "patient_id": p.user_id,
        "patient_name": customer.full_name if customer else "Unknown",
        "patient_email": customer.email if customer else None,
        "patient_phone": customer.contact_number if customer else None,
        "branch_id": _branch_of(p),
        "approvals": [
            {
                "approval_id": a.id,
                "product_id": a.product_id,
                "product_name": a.product_name,
                "quantity": a.quantity,
                "dosage": a.dosage,
                "expiry_date": a.prescription_expiry_date.isoformat(),
                "approval_date": a.approval_date.isoformat(),
                "pharmacist_name": a.pharmacist.full_name if a.pharmacist else None,
            }
            for a in sorted(p.approvals, key=lambda a: (a.timestamp, a.id))
        ],
    })

    line = db.query(ProductOrder).filter(ProductOrder.prescription_id == p.id).first()
    data["order_id"] = line.order_id if line else None
    data["requested_products"] = [
        {"product_id": r.product_id, "product_name": r.product.name if r.product else None, "quantity": r.quantity}
        for r in db.query(ProductOrder).filter(ProductOrder.prescription_id == p.id).all()
    ]
    return data


def list_statuses(db: Session) -> List[dict]:
    return [{"id": s.id, "name": s.name} for s in db.query(PrescriptionStatus).order_by(PrescriptionStatus.id).all()]


@dataclass
class ApprovalResult:
    approved: bool
    reason: str = "OK"
    approval_id: Optional[int] = None
    order_id: Optional[int] = None
    shipping_id: Optional[int] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    prescription_name: Optional[str] = None
    product_name: Optional[str] = None
    is_controlled: bool = False
    expiry_date: Optional[date] = None
    dosage: Optional[str] = None
    quantity: int = 0


def _parse_date(value) -> Optional[date]:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except (TypeError, ValueError):
        return None


def approve_prescription(
    db: Session,
    prescription_id: int,
    pharmacist_id: int,
    product_id: int,
    quantity: int,
    dosage: Optional[str],
    expiry_date,
    now: Optional[datetime] = None,
) -> ApprovalResult:
    now = now or local_now()

    if not product_id or product_id <= 0:
        return ApprovalResult(False, "INVALID_PRODUCT")
    if not quantity or quantity <= 0:
        return ApprovalResult(False, "INVALID_QUANTITY")
    dosage = (dosage or "").strip()
    if not dosage:
        return ApprovalResult(False, "DOSAGE_REQUIRED")
    expiry = _parse_date(expiry_date)
    if expiry is None:
        return ApprovalResult(False, "INVALID_EXPIRY_DATE")
    if expiry < now.date():
        return ApprovalResult(False, "EXPIRY_IN_PAST")

    p = get_prescription(db, prescription_id)
    if not p:
        return ApprovalResult(False, "PRESCRIPTION_NOT_FOUND")
    if p.status_id == PrescriptionStatusId.REJECTED:
        return ApprovalResult(False, "PRESCRIPTION_REJECTED")
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        return ApprovalResult(False, "PRODUCT_NOT_FOUND")

    try:
        approval = Approval(
            prescription_id=p.id,
            user_id=pharmacist_id,
            product_id=product.id,
            product_name=product.name,
            quantity=quantity,
            dosage=dosage,
            prescription_expiry_date=expiry,
            approval_date=now.date(),
            timestamp=now,
        )
        db.add(approval)
        p.status_id = PrescriptionStatusId.APPROVED
        db.flush()

        line = db.query(ProductOrder).filter(ProductOrder.prescription_id == p.id).first()
        order = db.query(Order).filter(Order.id == line.order_id).first() if line else None
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Approval of prescription #{prescription_id} failed", exc_info=True)
        raise

    customer = p.user
    return ApprovalResult(
        approved=True,
        approval_id=approval.id,
        order_id=order.id if order else None,
        shipping_id=order.shipping_id if order else None,
        customer_email=customer.email if customer else None,
        customer_name=customer.full_name if customer else None,
        prescription_name=p.name or "Prescription",
        product_name=product.name,
        is_controlled=bool(product.is_controlled),
        expiry_date=expiry,
        dosage=dosage,
        quantity=quantity,
    )


def reject_prescription(db: Session, prescription_id: int) -> PrescriptionResult:
    p = get_prescription(db, prescription_id)
    if not p:
        return PrescriptionResult(False, "PRESCRIPTION_NOT_FOUND")
    if p.status_id != PrescriptionStatusId.PENDING:
        return PrescriptionResult(False, "NOT_PENDING")
    p.status_id = PrescriptionStatusId.REJECTED
    db.commit()
    return PrescriptionResult(True, prescription=p)
