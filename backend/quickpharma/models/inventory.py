from sqlalchemy import Column, Date, ForeignKey, Integer
from sqlalchemy.orm import relationship

from quickpharma.db.base import Base


class Inventory(Base):
    """
    One stock batch of a product at a branch.

    - quantity NULL counts as 0; a batch at 0 is inert but kept
    - expiry_date NULL means the batch never expires and is consumed last (FEFO)
    """
    __tablename__ = "inventory"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=True, default=0)
    expiry_date = Column(Date, nullable=True)

    product = relationship("Product")
    branch = relationship("Branch")
