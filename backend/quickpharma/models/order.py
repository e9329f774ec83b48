from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Time
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from quickpharma.db.base import Base


class Slot(Base):
    """A named delivery window, e.g. 09:00-12:00."""
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(64), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    description = Column(String(255), nullable=True)


class Shipping(Base):
    """
    One fulfillment leg: pickup at a branch or delivery to an address.

    slot_id is only set for normal (non-urgent) deliveries. Urgent deliveries
    keep the promised instant in shipping_date; their slot is derived from it.
    """
    __tablename__ = "shippings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True, index=True)
    address_id = Column(Integer, ForeignKey("addresses.id"), nullable=True)
    is_delivery = Column(Boolean, default=False, nullable=False)
    is_urgent = Column(Boolean, default=False, nullable=False)
    shipping_date = Column(DateTime, nullable=True)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=True)

    user = relationship("User")
    branch = relationship("Branch")
    address = relationship("Address")
    slot = relationship("Slot")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    payment_method_id = Column(Integer, ForeignKey("payment_methods.id"), nullable=False)
    amount = Column(Numeric(12, 3), nullable=False)
    is_successful = Column(Boolean, default=False, nullable=False)
    timestamp = Column(DateTime, nullable=True)
    external_session_id = Column(String(255), nullable=True)
    external_payment_intent_id = Column(String(255), nullable=True)

    method = relationship("PaymentMethod")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    shipping_id = Column(Integer, ForeignKey("shippings.id"), nullable=False)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, unique=True)
    order_status_id = Column(Integer, ForeignKey("order_statuses.id"), nullable=False)
    total = Column(Numeric(12, 3), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
    shipping = relationship("Shipping")
    payment = relationship("Payment")
    status = relationship("OrderStatus")
    lines = relationship("ProductOrder", back_populates="order", cascade="all, delete-orphan")


class ProductOrder(Base):
    __tablename__ = "product_orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 3), nullable=False)
    prescription_id = Column(Integer, ForeignKey("prescriptions.id"), nullable=True)

    order = relationship("Order", back_populates="lines")
    product = relationship("Product")
    prescription = relationship("Prescription")
