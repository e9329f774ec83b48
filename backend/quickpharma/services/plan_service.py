"""
Prescription plans: monthly refills of an approved health prescription.

A plan owns its own (never urgent) shipping leg and a schedule of email
jobs. The scheduler calls send_due_plan_emails(); READY_TODAY jobs also take
one month of stock from the plan's branch, at most once per job.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from quickpharma.core.clock import local_now, local_to_utc, local_today, utc_now
from quickpharma.core.config import settings
from quickpharma.models.catalog import Product
from quickpharma.models.location import Address, Branch
from quickpharma.models.lookup import PlanStatusId, PrescriptionStatusId
from quickpharma.models.order import Shipping
from quickpharma.models.prescription import Approval, PlanEmailJob, Prescription, PrescriptionPlan
from quickpharma.services import log_service, notification_service
from quickpharma.services.inventory_service import StockChangedError, available_stock_map, consume_fefo
from quickpharma.services.prescription_service import (
    expire_health_prescriptions, latest_approvals_by_product, valid_address,
)
from quickpharma.services.safety_service import incompatibility_map
from quickpharma.services.slot_service import map_city_to_branch

logger = logging.getLogger(__name__)

STAGE_READY = "READY_TODAY"
STAGE_REMINDER = "REMINDER"

SEND_TIME_LOCAL = time(7, 30)
CYCLE_DAYS = 30
REMINDER_DAYS_BEFORE = 3
MAX_CYCLES = 24
DUE_BATCH_SIZE = 300


@dataclass
class PlanResult:
    ok: bool
    reason: str = "OK"
    plan: Optional[PrescriptionPlan] = None


def _valid_approvals(prescription: Prescription, today: date) -> List[Approval]:
    """Latest approval per product, keeping only the ones not yet expired."""
    return [
        a for a in latest_approvals_by_product(prescription).values()
        if a.prescription_expiry_date >= today
    ]


def _has_ongoing_plan(db: Session, prescription_id: int) -> bool:
    return db.query(PrescriptionPlan.id).join(Approval, Approval.id == PrescriptionPlan.approval_id).filter(
        Approval.prescription_id == prescription_id,
        PrescriptionPlan.status_id == PlanStatusId.ONGOING,
    ).first() is not None


def list_eligible_prescriptions(db: Session, user_id: int, today: Optional[date] = None) -> List[dict]:
    today = today or local_today()
    expire_health_prescriptions(db, today, user_id=user_id)

    rows = db.query(Prescription).filter(
        Prescription.user_id == user_id,
        Prescription.is_health.is_(True),
        Prescription.status_id == PrescriptionStatusId.APPROVED,
    ).order_by(Prescription.id).all()

    result = []
    for p in rows:
        if not any(a.prescription_expiry_date >= today for a in p.approvals):
            continue
        if _has_ongoing_plan(db, p.id):
            continue
        result.append({
            "prescription_id": p.id,
            "prescription_name": p.name,
            "expiry_date": max(a.prescription_expiry_date for a in p.approvals).isoformat(),
        })
    return result


def plan_items(db: Session, user_id: int, prescription_id: int, today: Optional[date] = None) -> List[dict]:
    today = today or local_today()
    p = db.query(Prescription).filter(Prescription.id == prescription_id, Prescription.user_id == user_id).first()
    if not p:
        return []

    approvals = _valid_approvals(p, today)
    products = {
        prod.id: prod
        for prod in db.query(Product).filter(Product.id.in_([a.product_id for a in approvals])).all()
    }
    incompat = incompatibility_map(db, user_id, products.keys())

    items = []
    for a in sorted(approvals, key=lambda x: x.id):
        product = products.get(a.product_id)
        price = Decimal(product.price or 0) if product else Decimal("0")
        flags = incompat.get(a.product_id, {"allergies": [], "illnesses": []})
        items.append({
            "approval_id": a.id,
            "product_id": a.product_id,
            "product_name": product.name if product else a.product_name,
            "quantity": a.quantity,
            "dosage": a.dosage,
            "expiry_date": a.prescription_expiry_date.isoformat(),
            "price": float(price),
            "line_total": float(price * a.quantity),
            "allergy_conflicts": flags["allergies"],
            "illness_conflicts": flags["illnesses"],
        })
    return items


def _subtotal(db: Session, approvals: List[Approval]) -> Decimal:
    total = Decimal("0")
    for a in approvals:
        product = db.query(Product).filter(Product.id == a.product_id).first()
        if product:
            total += Decimal(product.price or 0) * a.quantity
    return total


def _resolve_location(db: Session, method: str, branch_id: Optional[int], city_id: Optional[int],
                      block: Optional[str] = None, road: Optional[str] = None,
                      building_floor: Optional[str] = None):
    if method == "pickup":
        if not branch_id or not db.query(Branch.id).filter(Branch.id == branch_id).first():
            return None, "BRANCH_REQUIRED"
        return branch_id, None
    if method == "delivery":
        mapped = map_city_to_branch(db, city_id)
        if not mapped:
            return None, "CITY_NOT_MAPPED"
        if not valid_address(db, city_id, block, road, building_floor):
            return None, "ADDRESS_REQUIRED"
        return mapped, None
    return None, "INVALID_METHOD"


def create_plan(
    db: Session,
    user_id: int,
    prescription_id: int,
    method: str,
    branch_id: Optional[int] = None,
    city_id: Optional[int] = None,
    block: Optional[str] = None,
    road: Optional[str] = None,
    building_floor: Optional[str] = None,
    today: Optional[date] = None,
) -> PlanResult:
    today = today or local_today()
    method = (method or "").strip().lower()

    p = db.query(Prescription).filter(Prescription.id == prescription_id, Prescription.user_id == user_id).first()
    if not p or not p.is_health or p.status_id != PrescriptionStatusId.APPROVED:
        return PlanResult(False, "PRESCRIPTION_NOT_ELIGIBLE")
    if _has_ongoing_plan(db, p.id):
        return PlanResult(False, "PLAN_EXISTS")

    approvals = _valid_approvals(p, today)
    if not approvals:
        return PlanResult(False, "NO_VALID_APPROVAL")
    latest = max(approvals, key=lambda a: (a.timestamp, a.id))

    resolved_branch, error = _resolve_location(db, method, branch_id, city_id, block, road, building_floor)
    if error:
        return PlanResult(False, error)

    is_delivery = method == "delivery"
    total = _subtotal(db, approvals) + (Decimal(settings.DELIVERY_FEE) if is_delivery else Decimal("0"))

    try:
        address_id = None
        if is_delivery:
            address = Address(city_id=city_id, block=block.strip(), road=road.strip(),
                              building_floor=building_floor.strip(),
                              is_profile_address=False)
            db.add(address)
            db.flush()
            address_id = address.id

        shipping = Shipping(
            user_id=user_id,
            branch_id=resolved_branch,
            address_id=address_id,
            is_delivery=is_delivery,
            is_urgent=False,
            shipping_date=local_now(),
        )
        db.add(shipping)
        db.flush()

        plan = PrescriptionPlan(
            user_id=user_id,
            approval_id=latest.id,
            shipping_id=shipping.id,
            status_id=PlanStatusId.ONGOING,
            creation_date=today,
            total_amount=total,
        )
        db.add(plan)
        db.flush()

        expiry = max(a.prescription_expiry_date for a in approvals)
        schedule_plan_emails(db, plan, today, expiry)
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Creating plan for prescription #{prescription_id} failed", exc_info=True)
        raise

    db.refresh(plan)
    logger.info(f"Prescription plan #{plan.id} created for user {user_id} ({method})")
    return PlanResult(True, plan=plan)


def update_plan(
    db: Session,
    user_id: int,
    plan_id: int,
    method: str,
    branch_id: Optional[int] = None,
    city_id: Optional[int] = None,
    block: Optional[str] = None,
    road: Optional[str] = None,
    building_floor: Optional[str] = None,
    today: Optional[date] = None,
) -> PlanResult:
    today = today or local_today()
    method = (method or "").strip().lower()

    plan = get_user_plan(db, user_id, plan_id)
    if not plan or not plan.shipping or not plan.approval:
        return PlanResult(False, "NOT_FOUND")

    approvals = _valid_approvals(plan.approval.prescription, today)
    if not approvals:
        return PlanResult(False, "NO_VALID_APPROVAL")

    resolved_branch, error = _resolve_location(db, method, branch_id, city_id, block, road, building_floor)
    if error:
        return PlanResult(False, error)

    is_delivery = method == "delivery"
    shipping = plan.shipping
    old_address = shipping.address
    try:
        if is_delivery:
            if old_address and not old_address.is_profile_address:
                address = old_address
            else:
                address = Address(is_profile_address=False)
                db.add(address)
            address.city_id = city_id
            address.block = block.strip()
            address.road = road.strip()
            address.building_floor = building_floor.strip()
            shipping.address = address
        else:
            shipping.address = None
            if old_address and not old_address.is_profile_address:
                db.flush()
                db.delete(old_address)

        shipping.branch_id = resolved_branch
        shipping.is_delivery = is_delivery
        shipping.shipping_date = local_now()
        plan.total_amount = _subtotal(db, approvals) + (
            Decimal(settings.DELIVERY_FEE) if is_delivery else Decimal("0")
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Updating plan #{plan_id} failed", exc_info=True)
        raise

    db.refresh(plan)
    return PlanResult(True, plan=plan)


def delete_plan(db: Session, user_id: int, plan_id: int) -> bool:
    plan = get_user_plan(db, user_id, plan_id)
    if not plan:
        return False

    shipping = plan.shipping
    address = shipping.address if shipping else None
    try:
        db.delete(plan)
        db.flush()
        if shipping:
            db.delete(shipping)
            db.flush()
        if address and not address.is_profile_address:
            db.delete(address)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return True


def get_user_plan(db: Session, user_id: int, plan_id: int) -> Optional[PrescriptionPlan]:
    return db.query(PrescriptionPlan).filter(
        PrescriptionPlan.id == plan_id, PrescriptionPlan.user_id == user_id
    ).first()


def plan_to_dict(db: Session, plan: PrescriptionPlan, today: Optional[date] = None) -> dict:
    shipping = plan.shipping
    method = "delivery" if shipping and shipping.is_delivery else "pickup"
    address = shipping.address if shipping else None
    prescription = plan.approval.prescription if plan.approval else None

    return {
        "plan_id": plan.id,
        "name": prescription.name if prescription else None,
        "prescription_id": prescription.id if prescription else None,
        "status_id": plan.status_id,
        "status_name": plan.status.name if plan.status else None,
        "creation_date": plan.creation_date.isoformat() if plan.creation_date else None,
        "total_amount": float(plan.total_amount or 0),
        "shipping": {
            "method": method,
            "branch_id": shipping.branch_id if shipping else None,
            "pickup_branch": shipping.branch.city_name if shipping and shipping.branch and method == "pickup" else None,
            "address": {
                "city_id": address.city_id,
                "city": address.city.name if address.city else None,
                "block": address.block,
                "road": address.road,
                "building_floor": address.building_floor,
            } if address and method == "delivery" else None,
        },
        "items": plan_items(db, plan.user_id, prescription.id, today) if prescription else [],
    }


def list_user_plans(db: Session, user_id: int) -> List[dict]:
    plans = (
        db.query(PrescriptionPlan)
        .filter(PrescriptionPlan.user_id == user_id)
        .order_by(PrescriptionPlan.creation_date.desc(), PrescriptionPlan.id.desc())
        .all()
    )
    return [plan_to_dict(db, p) for p in plans]


# ------------------------------------------------------------------------------
# Email schedule
# ------------------------------------------------------------------------------

def build_email_schedule(plan_id: int, created_on: date, expires_on: Optional[date]) -> List[dict]:
    """
    READY_TODAY on day 1, 31, 61, ... after creation at 07:30 store time,
    with a REMINDER three days before every READY except the first. Stops
    after MAX_CYCLES or once a READY would fall after the expiry date.
    """
    created_local = datetime.combine(created_on, SEND_TIME_LOCAL)
    expiry_local = datetime.combine(expires_on, SEND_TIME_LOCAL) if expires_on else None

    jobs = []
    for m in range(MAX_CYCLES):
        offset = 1 + CYCLE_DAYS * m
        ready_local = created_local + timedelta(days=offset)
        if expiry_local and ready_local > expiry_local:
            break

        if m >= 1:
            jobs.append({
                "stage": STAGE_REMINDER,
                "offset_days": offset - REMINDER_DAYS_BEFORE,
                "send_on_utc": local_to_utc(ready_local - timedelta(days=REMINDER_DAYS_BEFORE)),
                "dedup_key": f"PP|{plan_id}|{STAGE_REMINDER}|M{m}",
            })
        jobs.append({
            "stage": STAGE_READY,
            "offset_days": offset,
            "send_on_utc": local_to_utc(ready_local),
            "dedup_key": f"PP|{plan_id}|{STAGE_READY}|D1" if m == 0 else f"PP|{plan_id}|{STAGE_READY}|M{m}",
        })
    return jobs


def schedule_plan_emails(db: Session, plan: PrescriptionPlan, created_on: date,
                         expires_on: Optional[date]) -> int:
    """Insert missing email jobs for a plan. Flushes, never commits."""
    existing = {
        key for (key,) in db.query(PlanEmailJob.dedup_key).filter(PlanEmailJob.plan_id == plan.id).all()
    }
    added = 0
    for job in build_email_schedule(plan.id, created_on, expires_on):
        if job["dedup_key"] in existing:
            continue
        db.add(PlanEmailJob(plan_id=plan.id, user_id=plan.user_id, **job))
        added += 1
    db.flush()
    logger.info(f"Scheduled {added} email(s) for prescription plan #{plan.id}")
    return added


def _location_label(shipping: Shipping) -> str:
    if shipping.is_delivery:
        return shipping.address.label() if shipping.address else "Delivery address on file"
    return shipping.branch.city_name if shipping.branch else "Pickup branch"


def _apply_monthly_stock(db: Session, plan: PrescriptionPlan, approvals: List[Approval], today: date) -> List[tuple]:
    """FEFO-decrement one cycle of every plan item, all or nothing."""
    branch_id = plan.shipping.branch_id
    taken = []
    try:
        for a in approvals:
            for inventory_id, qty in consume_fefo(db, branch_id, a.product_id, a.quantity, today):
                taken.append((inventory_id, a.product_name, qty))
        db.commit()
    except StockChangedError as e:
        db.rollback()
        logger.warning(f"Plan #{plan.id}: monthly stock not applied: {e}")
        return []
    return taken


def send_due_plan_emails(db: Session, now_utc: Optional[datetime] = None) -> int:
    """Send every due, unsent email job of an ongoing plan. Returns the number sent."""
    now_utc = now_utc or utc_now()
    today = (now_utc + timedelta(hours=settings.LOCAL_UTC_OFFSET_HOURS)).date()

    jobs = (
        db.query(PlanEmailJob)
        .join(PrescriptionPlan, PrescriptionPlan.id == PlanEmailJob.plan_id)
        .filter(
            PlanEmailJob.sent_at.is_(None),
            PlanEmailJob.send_on_utc <= now_utc,
            PrescriptionPlan.status_id == PlanStatusId.ONGOING,
        )
        .order_by(PlanEmailJob.send_on_utc, PlanEmailJob.id)
        .limit(DUE_BATCH_SIZE)
        .all()
    )

    sent = 0
    for job in jobs:
        plan = job.plan
        if plan.status_id != PlanStatusId.ONGOING:
            continue
        user = plan.user
        shipping = plan.shipping
        prescription = plan.approval.prescription if plan.approval else None
        if not user or not user.email or not shipping or not prescription:
            continue

        approvals = _valid_approvals(prescription, today)
        if not approvals:
            plan.status_id = PlanStatusId.EXPIRED
            prescription.status_id = PrescriptionStatusId.EXPIRED
            db.commit()
            logger.info(f"Plan #{plan.id} expired with its prescription #{prescription.id}")
            continue

        if job.stage == STAGE_READY and not shipping.is_delivery:
            stock = available_stock_map(db, shipping.branch_id, [a.product_id for a in approvals], today)
            if any(stock.get(a.product_id, 0) < a.quantity for a in approvals):
                logger.info(f"Plan #{plan.id}: {job.dedup_key} waits for stock at branch {shipping.branch_id}")
                continue

        method_label = "Delivery" if shipping.is_delivery else "Pickup"
        location = _location_label(shipping)
        delivered = notification_service.send_plan_email(
            user.email,
            user.first_name or "Customer",
            job.stage,
            prescription.name or approvals[0].product_name or "your prescription",
            method_label,
            location,
            plan.total_amount,
        )
        if not delivered:
            continue

        if job.stage == STAGE_READY and not job.stock_applied:
            taken = _apply_monthly_stock(db, plan, approvals, today)
            if taken:
                job.stock_applied = True
                db.commit()
                branch_name = shipping.branch.city_name if shipping.branch else None
                for inventory_id, product_name, _qty in taken:
                    log_service.create_inventory_change_log(
                        db, user.id, product_name, branch_name, inventory_id=inventory_id,
                    )

        job.sent_at = now_utc
        db.commit()
        sent += 1
        log_service.create_plan_email_log(
            db, user.id,
            f"Prescription plan email {job.dedup_key} sent ({method_label}, {location}, "
            f"total {Decimal(plan.total_amount or 0):.3f})",
        )

    if sent:
        logger.info(f"Sent {sent} prescription plan email(s)")
    return sent
