from datetime import date
from typing import Optional

from quickpharma.schemas.common import CamelModel


class ShippingValidateRequest(CamelModel):
    mode: str
    branch_id: Optional[int] = None
    city_id: Optional[int] = None
    is_urgent: bool = False
    shipping_date: Optional[date] = None
    slot_id: Optional[int] = None


class CheckoutSessionRequest(CamelModel):
    user_id: int
    is_delivery: bool = False


class DeliveryStatusUpdate(CamelModel):
    new_status_id: int
    mark_cash_payment_successful: bool = False
