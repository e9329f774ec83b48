from typing import Optional

from quickpharma.schemas.common import CamelModel


class AllergyEntryCreate(CamelModel):
    allergy_id: int
    severity_id: Optional[int] = None


class IllnessEntryCreate(CamelModel):
    illness_id: int
    severity_id: Optional[int] = None


class SeverityUpdate(CamelModel):
    severity_id: Optional[int] = None


class InteractionCheck(CamelModel):
    product_a_id: int
    product_b_id: int
