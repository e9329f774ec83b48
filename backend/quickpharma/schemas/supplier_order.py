from typing import Optional

from quickpharma.schemas.common import CamelModel


class SupplierOrderCreate(CamelModel):
    product_id: int
    supplier_id: int
    quantity: int
    branch_id: Optional[int] = None


class SupplierOrderUpdate(CamelModel):
    product_id: Optional[int] = None
    supplier_id: Optional[int] = None
    quantity: Optional[int] = None
    status_id: Optional[int] = None


class ReorderCreate(CamelModel):
    product_id: int
    supplier_id: int
    threshold: int
    quantity: int
    branch_id: Optional[int] = None


class ReorderUpdate(CamelModel):
    supplier_id: Optional[int] = None
    threshold: Optional[int] = None
    quantity: Optional[int] = None
