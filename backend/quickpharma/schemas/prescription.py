from typing import List, Optional

from quickpharma.schemas.common import CamelModel


class PrescriptionApprove(CamelModel):
    product_id: int
    quantity: int
    dosage: Optional[str] = None
    expiry_date: Optional[str] = None


class PrescriptionReject(CamelModel):
    reason: Optional[str] = None


class CheckoutValidateItem(CamelModel):
    product_id: int
    product_name: Optional[str] = None
    quantity: int


class CheckoutValidateRequest(CamelModel):
    user_id: int
    prescription_id: int
    is_health_profile: bool = False
    items: Optional[List[CheckoutValidateItem]] = None


class PlanRequest(CamelModel):
    prescription_id: Optional[int] = None
    method: str
    branch_id: Optional[int] = None
    city_id: Optional[int] = None
    block: Optional[str] = None
    road: Optional[str] = None
    building_floor: Optional[str] = None
