"""
Delivery requests for drivers and admins.

Drivers only see deliveries of their own branch: normal deliveries booked
into their slot, plus every urgent delivery of the branch (urgent orders
carry no booked slot).
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from quickpharma.core.clock import utc_now
from quickpharma.core.permissions import is_admin
from quickpharma.models.lookup import OrderStatus, OrderStatusId, PaymentMethodId
from quickpharma.models.order import Order, Payment, Shipping
from quickpharma.models.user import User
from quickpharma.services import log_service, notification_service
from quickpharma.services.order_service import shipping_summary
from quickpharma.services.paging import apply_page, normalize_page, paged

logger = logging.getLogger(__name__)

VALID_STATUSES = (OrderStatusId.PENDING, OrderStatusId.OUT_FOR_DELIVERY, OrderStatusId.COMPLETED)


def _location(shipping: Shipping) -> str:
    address = shipping.address
    if not address:
        return "-"
    city = f"{address.city.name}, " if address.city else ""
    return f"{city}Block {address.block or ''}, Road {address.road or ''}, Building {address.building_floor or ''}"


def _driver_scope(q, driver: User):
    return q.filter(
        Shipping.branch_id == driver.branch_id,
        or_(Shipping.slot_id == driver.slot_id, Shipping.is_urgent.is_(True)),
    )


def list_delivery_requests(
    db: Session,
    user: User,
    page_number: int = 1,
    page_size: int = 10,
    order_id: Optional[int] = None,
    status_id: Optional[int] = None,
    payment_method_id: Optional[int] = None,
    is_urgent: Optional[bool] = None,
) -> dict:
    page_number, page_size = normalize_page(page_number, page_size)

    admin = is_admin(user)
    if not admin and (not user.branch_id or not user.slot_id):
        return paged([], 0, page_number, page_size)

    q = (
        db.query(Order)
        .join(Shipping, Shipping.id == Order.shipping_id)
        .join(Payment, Payment.id == Order.payment_id)
        .filter(Shipping.is_delivery.is_(True))
    )
    if not admin:
        q = _driver_scope(q, user)
    if order_id and order_id > 0:
        q = q.filter(Order.id == order_id)
    if status_id and status_id > 0:
        q = q.filter(Order.order_status_id == status_id)
    if payment_method_id and payment_method_id > 0:
        q = q.filter(Payment.payment_method_id == payment_method_id)
    if is_urgent is not None:
        q = q.filter(Shipping.is_urgent.is_(bool(is_urgent)))

    total = q.count()
    rows = apply_page(q.order_by(Shipping.is_urgent.desc(), Order.id.desc()), page_number, page_size).all()

    items = []
    for order in rows:
        shipping = order.shipping
        customer = order.user
        summary = shipping_summary(db, order)
        items.append({
            "shipping_id": shipping.id,
            "order_id": order.id,
            "location": _location(shipping),
            "payment_method": order.payment.method.name if order.payment.method else "-",
            "is_payment_successful": bool(order.payment.is_successful),
            "slot_name": summary.get("slot_name") or "-",
            "is_urgent": bool(shipping.is_urgent),
            "order_status_id": order.order_status_id,
            "order_status_name": order.status.name if order.status else "Unknown",
            "total": float(order.total or 0),
            "customer_user_id": order.user_id,
            "customer_name": customer.full_name if customer else "-",
            "customer_phone": (customer.contact_number if customer else None) or "-",
            "customer_email": (customer.email if customer else None) or "-",
        })
    return paged(items, total, page_number, page_size)


@dataclass
class DeliveryUpdate:
    updated: bool
    reason: str = "OK"


def update_delivery_status(
    db: Session,
    user: User,
    order_id: int,
    new_status_id: int,
    mark_cash_payment_successful: bool = False,
) -> DeliveryUpdate:
    if new_status_id not in VALID_STATUSES:
        return DeliveryUpdate(False, "INVALID_STATUS")

    order = db.query(Order).filter(Order.id == order_id).first()
    if not order or not order.shipping or not order.shipping.is_delivery:
        return DeliveryUpdate(False, "NOT_FOUND")

    shipping = order.shipping
    if not is_admin(user):
        if not user.branch_id or not user.slot_id:
            return DeliveryUpdate(False, "DRIVER_NOT_ASSIGNED")
        if shipping.branch_id != user.branch_id:
            return DeliveryUpdate(False, "OUT_OF_SCOPE")
        if not shipping.is_urgent and shipping.slot_id != user.slot_id:
            return DeliveryUpdate(False, "OUT_OF_SCOPE")

    old_status = db.query(OrderStatus).filter(OrderStatus.id == order.order_status_id).first()
    new_status = db.query(OrderStatus).filter(OrderStatus.id == new_status_id).first()
    old_label = old_status.name if old_status else order.order_status_id
    new_label = new_status.name if new_status else new_status_id

    order.order_status_id = new_status_id
    db.commit()
    log_service.create_edit_record_log(
        db, user.id, "Order", order.id, f"Order status changed: {old_label} -> {new_label}",
    )

    customer = order.user
    if new_status_id == OrderStatusId.OUT_FOR_DELIVERY and customer:
        notification_service.send_out_for_delivery(customer.email, customer.full_name, order.id)

    if new_status_id == OrderStatusId.COMPLETED:
        payment = order.payment
        if payment and mark_cash_payment_successful and payment.payment_method_id == PaymentMethodId.CASH:
            was_paid = bool(payment.is_successful)
            payment.is_successful = True
            payment.timestamp = utc_now()
            db.commit()
            log_service.create_edit_record_log(
                db, user.id, "Payment", payment.id, f"Payment marked successful (cash). Previous: {was_paid}",
            )
        if customer:
            notification_service.send_delivered(customer.email, customer.full_name, order.id)

    logger.info(f"Order #{order.id} status {old_label} -> {new_label} by user {user.id}")
    return DeliveryUpdate(True)
