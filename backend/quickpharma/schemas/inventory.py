from datetime import date
from typing import Optional

from pydantic import field_validator

from quickpharma.schemas.common import CamelModel


class InventoryCreate(CamelModel):
    product_id: int
    branch_id: int
    quantity: int
    expiry_date: Optional[date] = None

    @field_validator('quantity')
    @classmethod
    def quantity_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError('Quantity must be zero or more')
        return v


class InventoryUpdate(CamelModel):
    product_id: Optional[int] = None
    branch_id: Optional[int] = None
    quantity: Optional[int] = None
    expiry_date: Optional[date] = None
    clear_expiry: bool = False

    @field_validator('quantity')
    @classmethod
    def quantity_not_negative(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 0:
            raise ValueError('Quantity must be zero or more')
        return v
