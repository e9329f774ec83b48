from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, LargeBinary, Numeric, String
from sqlalchemy.orm import relationship

from quickpharma.db.base import Base


class Prescription(Base):
    """
    Customer prescription.

    Health prescriptions (is_health=True) live on the customer's profile and can
    be promoted to recurring plans; checkout uploads are one-off.
    Status moves Pending -> Approved/Rejected; Approved -> Expired happens when
    the latest approval's expiry date has passed.
    """
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    status_id = Column(Integer, ForeignKey("prescription_statuses.id"), nullable=False)
    creation_date = Column(Date, nullable=False)
    is_health = Column(Boolean, default=False, nullable=False)
    address_id = Column(Integer, ForeignKey("addresses.id"), nullable=True)

    document = Column(LargeBinary, nullable=True)
    document_content_type = Column(String(64), nullable=True)
    document_file_name = Column(String(255), nullable=True)
    cpr_document = Column(LargeBinary, nullable=True)
    cpr_document_content_type = Column(String(64), nullable=True)
    cpr_document_file_name = Column(String(255), nullable=True)

    user = relationship("User")
    status = relationship("PrescriptionStatus")
    address = relationship("Address")
    approvals = relationship("Approval", back_populates="prescription", cascade="all, delete-orphan")


class Approval(Base):
    """Pharmacist decision on a prescription: which product, how much, until when."""
    __tablename__ = "approvals"

    id = Column(Integer, primary_key=True, index=True)
    prescription_id = Column(Integer, ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False)
    dosage = Column(String(255), nullable=False)
    prescription_expiry_date = Column(Date, nullable=False)
    approval_date = Column(Date, nullable=False)
    timestamp = Column(DateTime, nullable=False)

    prescription = relationship("Prescription", back_populates="approvals")
    product = relationship("Product")
    pharmacist = relationship("User")


class PrescriptionPlan(Base):
    __tablename__ = "prescription_plans"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    approval_id = Column(Integer, ForeignKey("approvals.id"), nullable=False)
    shipping_id = Column(Integer, ForeignKey("shippings.id"), nullable=True)
    status_id = Column(Integer, ForeignKey("plan_statuses.id"), nullable=False)
    creation_date = Column(Date, nullable=False)
    total_amount = Column(Numeric(12, 3), nullable=False, default=0)

    user = relationship("User")
    approval = relationship("Approval")
    shipping = relationship("Shipping")
    status = relationship("PlanStatus")
    email_jobs = relationship("PlanEmailJob", back_populates="plan", cascade="all, delete-orphan")


class PlanEmailJob(Base):
    """One scheduled plan email; dedup_key makes scheduling and sending idempotent."""
    __tablename__ = "plan_email_jobs"

    id = Column(Integer, primary_key=True, index=True)
    plan_id = Column(Integer, ForeignKey("prescription_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    stage = Column(String(32), nullable=False)  # READY_TODAY | REMINDER
    offset_days = Column(Integer, nullable=False)
    send_on_utc = Column(DateTime, nullable=False, index=True)
    dedup_key = Column(String(128), nullable=False, unique=True)
    sent_at = Column(DateTime, nullable=True)
    stock_applied = Column(Boolean, default=False, nullable=False)

    plan = relationship("PrescriptionPlan", back_populates="email_jobs")
