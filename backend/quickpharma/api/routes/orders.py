"""Customer order history and driver delivery requests."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db, require_customer, require_roles
from quickpharma.core.audit import AuditLog
from quickpharma.core.exceptions import BusinessError
from quickpharma.models.lookup import RoleName
from quickpharma.models.user import User
from quickpharma.schemas.checkout import DeliveryStatusUpdate
from quickpharma.services import delivery_service, order_service

router = APIRouter()

require_delivery_staff = require_roles(RoleName.ADMIN, RoleName.DRIVER)


@router.get("/MyOrders")
def my_orders(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    status_id: Optional[int] = Query(None, alias="statusId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    return order_service.list_user_orders(db, current_user.id, page_number, page_size, status_id)


@router.get("/MyOrders/{order_id}")
def my_order(order_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_customer)):
    data = order_service.get_user_order(db, current_user.id, order_id)
    if not data:
        raise BusinessError.not_found("Order")
    return data


@router.get("/DeliveryRequests")
def delivery_requests(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    order_id: Optional[int] = Query(None, alias="orderId"),
    status_id: Optional[int] = Query(None, alias="statusId"),
    payment_method_id: Optional[int] = Query(None, alias="paymentMethodId"),
    is_urgent: Optional[bool] = Query(None, alias="isUrgent"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_delivery_staff),
):
    """Drivers see their branch and slot plus the branch's urgent deliveries."""
    return delivery_service.list_delivery_requests(
        db, current_user, page_number, page_size, order_id, status_id, payment_method_id, is_urgent,
    )


@router.put("/DeliveryRequests/{order_id}/status")
def update_delivery_status(
    order_id: int,
    body: DeliveryStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_delivery_staff),
):
    result = delivery_service.update_delivery_status(
        db, current_user, order_id, body.new_status_id, body.mark_cash_payment_successful,
    )
    if not result.updated:
        if result.reason == "OUT_OF_SCOPE":
            AuditLog.log_access_denied("write", "order", order_id, current_user.id, "Delivery outside driver scope")
        raise BusinessError.bad_request({"updated": False})

    AuditLog.log_action("update", "order", order_id, current_user, changes={"status_id": body.new_status_id})
    return {"updated": True}
