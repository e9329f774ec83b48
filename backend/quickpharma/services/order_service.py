"""Customer order history."""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from quickpharma.models.order import Order
from quickpharma.services.paging import apply_page, normalize_page, paged
from quickpharma.services.slot_service import all_slots, derive_urgent_slot

logger = logging.getLogger(__name__)


def shipping_summary(db: Session, order: Order) -> dict:
    shipping = order.shipping
    if not shipping:
        return {}

    slot_name = shipping.slot.name if shipping.slot else None
    if shipping.is_urgent and shipping.shipping_date:
        urgent_slot = derive_urgent_slot(all_slots(db), shipping.shipping_date.time().replace(microsecond=0))
        slot_name = urgent_slot.name if urgent_slot else None

    return {
        "shipping_id": shipping.id,
        "method": "delivery" if shipping.is_delivery else "pickup",
        "is_urgent": bool(shipping.is_urgent),
        "branch_id": shipping.branch_id,
        "branch_name": shipping.branch.city_name if shipping.branch else None,
        "address": shipping.address.label() if shipping.address else None,
        "shipping_date": shipping.shipping_date.isoformat() if shipping.shipping_date else None,
        "slot_id": shipping.slot_id,
        "slot_name": slot_name,
    }


def order_to_dict(db: Session, order: Order, with_lines: bool = False) -> dict:
    payment = order.payment
    data = {
        "order_id": order.id,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "status_id": order.order_status_id,
        "status_name": order.status.name if order.status else None,
        "total": float(order.total or 0),
        "payment_method": payment.method.name if payment and payment.method else None,
        "is_payment_successful": bool(payment.is_successful) if payment else False,
        "item_count": sum(line.quantity for line in order.lines),
        "shipping": shipping_summary(db, order),
    }
    if with_lines:
        data["lines"] = [
            {
                "product_id": line.product_id,
                "product_name": line.product.name if line.product else None,
                "quantity": line.quantity,
                "unit_price": float(line.unit_price or 0),
                "line_total": float((line.unit_price or 0) * line.quantity),
                "prescription_id": line.prescription_id,
            }
            for line in order.lines
        ]
    return data


def list_user_orders(db: Session, user_id: int, page_number: int = 1, page_size: int = 10,
                     status_id: Optional[int] = None) -> dict:
    page_number, page_size = normalize_page(page_number, page_size)
    q = db.query(Order).filter(Order.user_id == user_id)
    if status_id and status_id > 0:
        q = q.filter(Order.order_status_id == status_id)

    total = q.count()
    rows = apply_page(q.order_by(Order.created_at.desc(), Order.id.desc()), page_number, page_size).all()
    return paged([order_to_dict(db, o) for o in rows], total, page_number, page_size)


def get_user_order(db: Session, user_id: int, order_id: int) -> Optional[dict]:
    order = db.query(Order).filter(Order.id == order_id, Order.user_id == user_id).first()
    if not order:
        return None
    return order_to_dict(db, order, with_lines=True)
