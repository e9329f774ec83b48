from sqlalchemy import Column, DateTime, ForeignKey, Integer, LargeBinary, String, Text
from sqlalchemy.orm import relationship

from quickpharma.db.base import Base


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    report_type_id = Column(Integer, ForeignKey("report_types.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    document = Column(LargeBinary, nullable=False)
    file_name = Column(String(255), nullable=False)
    content_type = Column(String(64), nullable=False, default="application/pdf")
    document_size_bytes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, index=True)

    report_type = relationship("ReportType")
