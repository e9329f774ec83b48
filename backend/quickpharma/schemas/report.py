from typing import Optional

from quickpharma.schemas.common import CamelModel


class ReportGenerateRequest(CamelModel):
    report_type: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    branch: Optional[str] = None
    product_category: Optional[str] = None
    supplier: Optional[str] = None
    product: Optional[str] = None
