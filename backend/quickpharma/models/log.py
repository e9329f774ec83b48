from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from quickpharma.db.base import Base


class Log(Base):
    """Append-only activity trail shown to admins. Never updated or deleted by the app."""
    __tablename__ = "logs"

    id = Column(Integer, primary_key=True, index=True)
    log_type_id = Column(Integer, ForeignKey("log_types.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    description = Column(Text, nullable=False)
    order_id = Column(Integer, nullable=True)
    inventory_id = Column(Integer, nullable=True)
    timestamp = Column(DateTime, nullable=False, index=True)

    log_type = relationship("LogType")
    user = relationship("User")
