from sqlalchemy import Column, DateTime, ForeignKey, Integer
from sqlalchemy.orm import relationship

from quickpharma.db.base import Base


class SupplierOrder(Base):
    __tablename__ = "supplier_orders"

    id = Column(Integer, primary_key=True, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    employee_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    status_id = Column(Integer, ForeignKey("supplier_order_statuses.id"), nullable=False)
    order_date = Column(DateTime, nullable=False)

    supplier = relationship("Supplier")
    product = relationship("Product")
    employee = relationship("User")
    branch = relationship("Branch")
    status = relationship("SupplierOrderStatus")


class Reorder(Base):
    """Automatic reorder rule: when branch stock falls to threshold, order quantity."""
    __tablename__ = "reorders"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    threshold = Column(Integer, nullable=False, default=0)
    quantity = Column(Integer, nullable=False)

    product = relationship("Product")
    supplier = relationship("Supplier")
    branch = relationship("Branch")
