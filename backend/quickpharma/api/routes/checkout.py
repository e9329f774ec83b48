"""
Checkout API: shipping validation and slots, order creation and the online
payment session.

Order creation is multipart because a checkout may carry a newly uploaded
prescription and CPR document.
"""
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db, require_customer
from quickpharma.core.config import settings
from quickpharma.core.exceptions import BusinessError
from quickpharma.core.permissions import ensure_self
from quickpharma.models.user import User
from quickpharma.schemas.checkout import CheckoutSessionRequest, ShippingValidateRequest
from quickpharma.services import cart_service, checkout_service, slot_service
from quickpharma.services.checkout_service import CheckoutRequest
from quickpharma.services.payment_service import PaymentGateway, PaymentGatewayError, get_payment_gateway
from quickpharma.services.prescription_service import UploadedFile

router = APIRouter()


def _resolve_branch(db: Session, branch_id: Optional[int], city_id: Optional[int]) -> Optional[int]:
    if city_id:
        return slot_service.map_city_to_branch(db, city_id)
    return branch_id


async def _read_upload(upload: Optional[UploadFile]) -> Optional[UploadedFile]:
    if upload is None:
        return None
    content = await upload.read()
    if not content:
        return None
    return upload.filename or "document", content, upload.content_type


# ------------------------------------------------------------------------------
# Shipping
# ------------------------------------------------------------------------------

@router.post("/CheckoutShipping/validate")
def validate_shipping(body: ShippingValidateRequest, db: Session = Depends(get_db)):
    mode = (body.mode or "").strip().lower()
    if mode not in ("pickup", "delivery"):
        return {"valid": False, "branch_id": None, "message": "Invalid mode."}

    is_delivery = mode == "delivery"
    choice = slot_service.validate_shipping_choice(db, is_delivery, body.branch_id, body.city_id)
    if not choice.ok:
        return {"valid": False, "branch_id": None, "message": choice.message}

    if is_delivery and body.is_urgent:
        urgent = slot_service.urgent_availability(db, choice.branch_id)
        return {"valid": urgent.available, "branch_id": choice.branch_id, "message": urgent.reason,
                "urgent": urgent.as_dict()}

    if is_delivery and (body.shipping_date or body.slot_id):
        check = slot_service.validate_slot_booking(db, choice.branch_id, body.shipping_date, body.slot_id)
        return {"valid": check.ok, "branch_id": choice.branch_id, "message": check.message}

    return {"valid": True, "branch_id": choice.branch_id, "message": ""}


@router.get("/CheckoutShipping/slots")
def delivery_slots(
    city_id: Optional[int] = Query(None, alias="cityId"),
    branch_id: Optional[int] = Query(None, alias="branchId"),
    days_ahead: int = Query(settings.BOOKING_WINDOW_DAYS, alias="daysAhead"),
    db: Session = Depends(get_db),
):
    resolved = _resolve_branch(db, branch_id, city_id)
    if not resolved:
        raise BusinessError.bad_request("This city is not assigned to any branch.")
    return {"branch_id": resolved, "days": slot_service.available_delivery_slots(db, resolved, days_ahead)}


@router.get("/CheckoutShipping/urgent")
def urgent_slot(
    city_id: Optional[int] = Query(None, alias="cityId"),
    branch_id: Optional[int] = Query(None, alias="branchId"),
    db: Session = Depends(get_db),
):
    return slot_service.urgent_availability(db, _resolve_branch(db, branch_id, city_id)).as_dict()


# ------------------------------------------------------------------------------
# Order creation
# ------------------------------------------------------------------------------

@router.post("/CheckoutOrder/create")
async def create_order(
    user_id: int = Form(..., alias="userId"),
    mode: str = Form("pickup"),
    pickup_branch_id: Optional[int] = Form(None, alias="pickupBranchId"),
    use_saved_address: bool = Form(False, alias="useSavedAddress"),
    city_id: Optional[int] = Form(None, alias="cityId"),
    block: Optional[str] = Form(None),
    road: Optional[str] = Form(None),
    building_floor: Optional[str] = Form(None, alias="buildingFloor"),
    is_urgent: bool = Form(False, alias="isUrgent"),
    shipping_date: Optional[date] = Form(None, alias="shippingDate"),
    slot_id: Optional[int] = Form(None, alias="slotId"),
    approved_prescription_id: Optional[int] = Form(None, alias="approvedPrescriptionId"),
    is_health_profile: bool = Form(False, alias="isHealthProfile"),
    upload_new_prescription: bool = Form(False, alias="uploadNewPrescription"),
    prescription_file: Optional[UploadFile] = File(None, alias="prescriptionFile"),
    cpr_file: Optional[UploadFile] = File(None, alias="cprFile"),
    payment_method: Optional[str] = Form(None, alias="paymentMethod"),
    stripe_session_id: Optional[str] = Form(None, alias="stripeSessionId"),
    stripe_payment_intent_id: Optional[str] = Form(None, alias="stripePaymentIntentId"),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    current_user: User = Depends(require_customer),
):
    """Place an order from the caller's cart. 409 with the full result when it is not created."""
    ensure_self(current_user, user_id, "order")

    req = CheckoutRequest(
        user_id=user_id,
        mode=mode,
        pickup_branch_id=pickup_branch_id,
        use_saved_address=use_saved_address,
        city_id=city_id,
        block=block,
        road=road,
        building_floor=building_floor,
        is_urgent=is_urgent,
        shipping_date=shipping_date,
        slot_id=slot_id,
        approved_prescription_id=approved_prescription_id,
        is_health_profile=is_health_profile,
        upload_new_prescription=upload_new_prescription,
        prescription_document=await _read_upload(prescription_file),
        cpr_document=await _read_upload(cpr_file),
        payment_method=payment_method,
        stripe_session_id=stripe_session_id,
        stripe_payment_intent_id=stripe_payment_intent_id,
    )
    result = checkout_service.create_order(db, req, gateway)
    if not result.created:
        raise BusinessError.conflict(result.as_dict())

    checkout_service.record_checkout(db, current_user, result)
    return result.as_dict()


@router.post("/stripe/create-checkout-session")
def create_checkout_session(
    body: CheckoutSessionRequest,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    current_user: User = Depends(require_customer),
):
    """Hosted payment page for the caller's cart, priced from the catalog."""
    ensure_self(current_user, body.user_id, "payment")

    items = [
        {"name": i.product.name, "price": Decimal(i.product.price or 0), "quantity": i.quantity}
        for i in cart_service.cart_items(db, current_user.id)
    ]
    if not items:
        raise BusinessError.bad_request("Cart is empty.")

    fee = Decimal(settings.DELIVERY_FEE) if body.is_delivery else Decimal("0")
    try:
        url = gateway.create_checkout_session(items, fee)
    except PaymentGatewayError as e:
        raise BusinessError.server_error(e)
    return {"url": url}
