from typing import Optional

from quickpharma.schemas.common import CamelModel


class SupplierBody(CamelModel):
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    representative: Optional[str] = None
    contact: Optional[str] = None
    email: Optional[str] = None
    city_id: Optional[int] = None
    block: Optional[str] = None
    road: Optional[str] = None
    building_floor: Optional[str] = None


class ProductTypeCreate(CamelModel):
    product_type_name: Optional[str] = None
