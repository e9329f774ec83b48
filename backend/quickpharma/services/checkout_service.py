"""
Checkout: turn a customer's cart into an order.

    ReceivedCart -> PrescriptionResolved -> ShippingResolved
                 -> InventoryValidated -> Committed | Rejected

Every rejection before the write phase returns without touching the
database. The write phase is one transaction: address, shipping, payment,
order, order lines, FEFO stock decrement and cart clear are committed
together or rolled back together.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from quickpharma.core.audit import AuditLog
from quickpharma.core.clock import local_now
from quickpharma.core.config import settings
from quickpharma.models.cart import CartItem
from quickpharma.models.location import Address, Branch
from quickpharma.models.lookup import OrderStatusId, PaymentMethodId
from quickpharma.models.order import Order, Payment, ProductOrder, Shipping
from quickpharma.models.user import User
from quickpharma.services import log_service, notification_service
from quickpharma.services.cart_service import cart_items, clear_cart
from quickpharma.services.inventory_service import StockChangedError, available_stock_map, consume_fefo
from quickpharma.services.payment_service import PaymentGateway
from quickpharma.services.prescription_service import (
    UploadedFile, add_checkout_prescription, validate_checkout_prescription,
)
from quickpharma.services.slot_service import (
    all_slots, derive_urgent_slot, normal_bookings, urgent_availability, urgent_bookings,
    validate_shipping_choice, validate_slot_booking,
)
from quickpharma.services.supplier_order_service import check_reorder_thresholds

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Failed to create order. Please try again."


class SlotTakenError(Exception):
    pass


@dataclass
class CheckoutRequest:
    user_id: int
    mode: str = "pickup"
    pickup_branch_id: Optional[int] = None

    use_saved_address: bool = False
    city_id: Optional[int] = None
    block: Optional[str] = None
    road: Optional[str] = None
    building_floor: Optional[str] = None

    is_urgent: bool = False
    shipping_date: Optional[date] = None
    slot_id: Optional[int] = None

    approved_prescription_id: Optional[int] = None
    is_health_profile: bool = False
    upload_new_prescription: bool = False
    prescription_document: Optional[UploadedFile] = None
    cpr_document: Optional[UploadedFile] = None

    payment_method: Optional[str] = None
    stripe_session_id: Optional[str] = None
    stripe_payment_intent_id: Optional[str] = None


@dataclass
class CheckoutResponse:
    created: bool
    message: str
    order_id: Optional[int] = None
    shipping_id: Optional[int] = None
    created_prescription_id: Optional[int] = None
    prescription_valid: Optional[bool] = None
    prescription_reason: Optional[str] = None
    unavailable_product_names: List[str] = field(default_factory=list)
    total: Optional[Decimal] = None

    # Post-commit bookkeeping, not part of the response body
    branch_id: Optional[int] = None
    is_delivery: bool = False
    consumed: List[Tuple[int, str, int]] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "created": self.created,
            "order_id": self.order_id,
            "shipping_id": self.shipping_id,
            "created_prescription_id": self.created_prescription_id,
            "message": self.message,
            "prescription_valid": self.prescription_valid,
            "prescription_reason": self.prescription_reason,
            "unavailable_product_names": self.unavailable_product_names,
            "total": float(self.total) if self.total is not None else None,
        }


def _rejected(message: str, **extra) -> CheckoutResponse:
    return CheckoutResponse(created=False, message=message, **extra)


def _address_complete(req: CheckoutRequest) -> bool:
    return bool(
        req.city_id and req.city_id > 0
        and (req.block or "").strip()
        and (req.road or "").strip()
        and (req.building_floor or "").strip()
    )


def _resolve_branch(db: Session, req: CheckoutRequest) -> Tuple[Optional[int], Optional[str]]:
    mode = (req.mode or "").strip().lower()
    if mode == "pickup":
        if not req.pickup_branch_id:
            return None, "Pickup branch required."
        choice = validate_shipping_choice(db, False, branch_id=req.pickup_branch_id)
        return (choice.branch_id, None) if choice.ok else (None, choice.message)

    if mode == "delivery":
        city_id = req.city_id
        if req.use_saved_address:
            user = db.query(User).filter(User.id == req.user_id).first()
            city_id = user.address.city_id if user and user.address else None
        if not city_id:
            return None, "City required for delivery."
        choice = validate_shipping_choice(db, True, city_id=city_id)
        if not choice.ok:
            return None, "City is not mapped to a branch."
        return choice.branch_id, None

    return None, "Invalid mode."


def _payment_method_id(value: Optional[str]) -> Optional[int]:
    method = (value or "cash").strip().lower()
    if method == "cash":
        return PaymentMethodId.CASH
    if method == "online":
        return PaymentMethodId.ONLINE
    return None


def create_order(
    db: Session,
    req: CheckoutRequest,
    gateway: PaymentGateway,
    now: Optional[datetime] = None,
) -> CheckoutResponse:
    now = now or local_now()
    today = now.date()

    # ReceivedCart
    if not req.user_id or req.user_id <= 0:
        return _rejected("Invalid userId.")
    items: List[CartItem] = cart_items(db, req.user_id)
    if not items:
        return _rejected("Cart is empty.")

    # PrescriptionResolved
    prescribed = [i for i in items if i.product.requires_prescription]
    prescription_valid = None
    prescription_reason = None
    if prescribed:
        if req.upload_new_prescription:
            doc_ok = req.prescription_document and req.prescription_document[1]
            cpr_ok = req.cpr_document and req.cpr_document[1]
            if not doc_ok or not cpr_ok:
                return _rejected("Prescription files required.")
            if not _address_complete(req):
                return _rejected("Delivery address required for prescription upload.")
        else:
            if not req.approved_prescription_id or req.approved_prescription_id <= 0:
                return _rejected("Approved prescription is required for prescribed items.")
            check = validate_checkout_prescription(
                db,
                req.user_id,
                req.approved_prescription_id,
                [(i.product_id, i.product.name, i.quantity) for i in prescribed],
                is_health_profile=req.is_health_profile,
            )
            prescription_valid = check.is_valid
            prescription_reason = check.reason
            if not check.is_valid:
                reason = check.reason
                if reason == "MISMATCH":
                    reason = next((i.reason for i in check.items if not i.matches), reason)
                return _rejected(
                    "Prescription does not match prescribed products.",
                    prescription_valid=False,
                    prescription_reason=reason,
                )

    # ShippingResolved
    branch_id, error = _resolve_branch(db, req)
    if error:
        return _rejected(error)

    is_delivery = (req.mode or "").strip().lower() == "delivery"
    is_urgent = is_delivery and bool(req.is_urgent)
    urgent_target = None
    if is_delivery and not is_urgent:
        if req.shipping_date is None or not req.slot_id:
            return _rejected("Delivery date/slot required.")
        slot_check = validate_slot_booking(db, branch_id, req.shipping_date, req.slot_id, now)
        if not slot_check.ok:
            return _rejected(slot_check.message)
    elif is_urgent:
        urgent = urgent_availability(db, branch_id, now)
        if not urgent.available:
            return _rejected(urgent.reason or "Urgent delivery is not available.")
        urgent_target = urgent.target_time

    # InventoryValidated
    stock = available_stock_map(db, branch_id, [i.product_id for i in items], today)
    unavailable = [i.product.name for i in items if stock.get(i.product_id, 0) < i.quantity]
    if unavailable:
        return _rejected("Some products are not available in this branch.", unavailable_product_names=unavailable)

    subtotal = sum((Decimal(i.product.price or 0) * i.quantity for i in items), Decimal("0"))
    total = subtotal + (Decimal(settings.DELIVERY_FEE) if is_delivery else Decimal("0"))

    method_id = _payment_method_id(req.payment_method)
    if method_id is None:
        return _rejected("Invalid payment method.")
    if method_id == PaymentMethodId.ONLINE:
        session_id = (req.stripe_session_id or "").strip()
        if not session_id or not gateway.is_session_paid(session_id):
            return _rejected("Online payment not completed.")
        if db.query(Payment.id).filter(Payment.external_session_id == session_id).first():
            return _rejected("Online payment not completed.")

    # Committed | Rejected
    try:
        created_prescription_id = None
        used_prescription_id = req.approved_prescription_id if prescribed else None
        if prescribed and req.upload_new_prescription:
            staged = add_checkout_prescription(
                db, req.user_id, req.prescription_document, req.cpr_document,
                req.city_id, req.block, req.road, req.building_floor,
            )
            if not staged.ok:
                db.rollback()
                return _rejected("Failed to create checkout prescription.")
            created_prescription_id = used_prescription_id = staged.prescription.id

        address_id = None
        if is_delivery and not req.use_saved_address:
            if not _address_complete(req):
                db.rollback()
                return _rejected("Delivery address required.")
            address = Address(
                city_id=req.city_id,
                block=req.block.strip(),
                road=req.road.strip(),
                building_floor=req.building_floor.strip(),
                is_profile_address=False,
            )
            db.add(address)
            db.flush()
            address_id = address.id
        elif is_delivery:
            user = db.query(User).filter(User.id == req.user_id).first()
            address_id = user.address_id if user else None

        if is_urgent:
            shipping_date = urgent_target
        elif is_delivery:
            shipping_date = datetime.combine(req.shipping_date, time.min)
        else:
            shipping_date = None

        shipping = Shipping(
            user_id=req.user_id,
            branch_id=branch_id,
            address_id=address_id,
            is_delivery=is_delivery,
            is_urgent=is_urgent,
            shipping_date=shipping_date,
            slot_id=req.slot_id if is_delivery and not is_urgent else None,
        )
        db.add(shipping)
        db.flush()

        # Re-count with our own row included; a concurrent booking that won shows up here
        if is_delivery and not is_urgent:
            if normal_bookings(db, branch_id, req.shipping_date, req.slot_id) > settings.NORMAL_SLOT_CAPACITY:
                raise SlotTakenError("Selected slot is full. Please choose another slot.")
        elif is_urgent:
            slot = _urgent_slot(db, urgent_target)
            if slot and urgent_bookings(db, branch_id, urgent_target.date(), slot) > settings.URGENT_SLOT_CAPACITY:
                raise SlotTakenError("Urgent delivery for this time slot is already booked.")

        is_online = method_id == PaymentMethodId.ONLINE
        payment = Payment(
            payment_method_id=method_id,
            amount=total,
            is_successful=is_online,
            timestamp=now if is_online else None,
            external_session_id=(req.stripe_session_id or None) if is_online else None,
            external_payment_intent_id=(req.stripe_payment_intent_id or None) if is_online else None,
        )
        db.add(payment)
        db.flush()

        order = Order(
            user_id=req.user_id,
            shipping_id=shipping.id,
            payment_id=payment.id,
            order_status_id=OrderStatusId.PENDING,
            total=total,
            created_at=now,
        )
        db.add(order)
        db.flush()

        consumed = []
        for item in items:
            product = item.product
            db.add(ProductOrder(
                order_id=order.id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=product.price,
                prescription_id=used_prescription_id if product.requires_prescription else None,
            ))
            for inventory_id, taken in consume_fefo(db, branch_id, item.product_id, item.quantity, today):
                consumed.append((inventory_id, product.name, taken))

        clear_cart(db, req.user_id, commit=False)
        db.commit()
    except (StockChangedError, SlotTakenError) as e:
        db.rollback()
        logger.warning(f"Checkout for user {req.user_id} rejected during commit: {e}")
        return _rejected(str(e))
    except Exception:
        db.rollback()
        logger.error(f"Checkout for user {req.user_id} failed", exc_info=True)
        return _rejected(GENERIC_FAILURE)

    logger.info(f"Order #{order.id} created for user {req.user_id} (branch {branch_id}, total {total})")
    return CheckoutResponse(
        created=True,
        message="Order created.",
        order_id=order.id,
        shipping_id=shipping.id,
        created_prescription_id=created_prescription_id,
        prescription_valid=prescription_valid,
        prescription_reason=prescription_reason,
        total=total,
        branch_id=branch_id,
        is_delivery=is_delivery,
        consumed=consumed,
    )


def _urgent_slot(db: Session, target: datetime):
    return derive_urgent_slot(all_slots(db), target.time().replace(microsecond=0))


def record_checkout(db: Session, user: User, result: CheckoutResponse) -> None:
    """Activity logs, confirmation email and reorder check for a committed order."""
    AuditLog.log_action("checkout", "order", result.order_id, user, {"total": str(result.total)})
    log_service.create_add_record_log(db, user.id, "Order", result.order_id)

    branch = None
    if result.branch_id:
        branch = db.query(Branch).filter(Branch.id == result.branch_id).first()
    for inventory_id, product_name, _taken in result.consumed:
        log_service.create_inventory_change_log(
            db, user.id, product_name, branch.city_name if branch else None,
            inventory_id=inventory_id, order_id=result.order_id,
        )

    notification_service.send_order_confirmation(
        user.email, user.full_name, result.order_id, result.total,
        "Delivery" if result.is_delivery else "Pickup",
    )

    if result.branch_id:
        check_reorder_thresholds(db, result.branch_id)
