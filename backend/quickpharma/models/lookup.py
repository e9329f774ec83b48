"""Lookup tables and their well-known ids.

Rows are seeded by db/init_db.py; code refers to them through the id
constants below, never by name.
"""
from sqlalchemy import Column, Integer, String

from quickpharma.db.base import Base


class RoleName:
    ADMIN = "Admin"
    MANAGER = "Manager"
    PHARMACIST = "Pharmacist"
    DRIVER = "Driver"
    CUSTOMER = "Customer"

    STAFF = (ADMIN, MANAGER, PHARMACIST, DRIVER)
    ALL = (ADMIN, MANAGER, PHARMACIST, DRIVER, CUSTOMER)


class OrderStatusId:
    PENDING = 1
    OUT_FOR_DELIVERY = 2
    COMPLETED = 3


class PrescriptionStatusId:
    APPROVED = 1
    PENDING = 2
    EXPIRED = 3
    REJECTED = 4


class PlanStatusId:
    ONGOING = 1
    EXPIRED = 2
    CANCELLED = 3


class PaymentMethodId:
    CASH = 1
    ONLINE = 2


class LogTypeId:
    INVENTORY_CHANGE = 1
    LOGIN_FAILURE = 2
    ADD_RECORD = 3
    EDIT_RECORD = 4
    DELETE_RECORD = 5
    PRESCRIPTION_APPROVAL = 6
    CONTROLLED_DISPENSED = 7
    PRESCRIPTION_PLAN_EMAIL = 8
    AUTOMATED_REORDER = 9
    PRESCRIPTION_REJECTION = 10


class SupplierOrderStatusId:
    PENDING = 1
    DELIVERED = 2
    CANCELLED = 3


class ReportTypeId:
    TOTAL_REVENUE = 1
    CATEGORY_REVENUE = 2
    SUPPLIER_REVENUE = 3
    PRODUCT_REVENUE = 4
    COMPLIANCE = 5


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(32), nullable=False, unique=True)


class OrderStatus(Base):
    __tablename__ = "order_statuses"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False)


class PrescriptionStatus(Base):
    __tablename__ = "prescription_statuses"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False)


class PlanStatus(Base):
    __tablename__ = "plan_statuses"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False)


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False)


class LogType(Base):
    __tablename__ = "log_types"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False)


class SupplierOrderStatus(Base):
    __tablename__ = "supplier_order_statuses"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False)


class ReportType(Base):
    __tablename__ = "report_types"

    id = Column(Integer, primary_key=True)
    name = Column(String(64), nullable=False)


class Severity(Base):
    __tablename__ = "severities"

    id = Column(Integer, primary_key=True)
    name = Column(String(32), nullable=False)


SEED_ROWS = {
    Role: [(1, RoleName.ADMIN), (2, RoleName.MANAGER), (3, RoleName.PHARMACIST),
           (4, RoleName.DRIVER), (5, RoleName.CUSTOMER)],
    OrderStatus: [(OrderStatusId.PENDING, "Pending"),
                  (OrderStatusId.OUT_FOR_DELIVERY, "Out for Delivery"),
                  (OrderStatusId.COMPLETED, "Completed")],
    PrescriptionStatus: [(PrescriptionStatusId.APPROVED, "Approved"),
                         (PrescriptionStatusId.PENDING, "Pending Approval"),
                         (PrescriptionStatusId.EXPIRED, "Expired"),
                         (PrescriptionStatusId.REJECTED, "Rejected")],
    PlanStatus: [(PlanStatusId.ONGOING, "Ongoing"), (PlanStatusId.EXPIRED, "Expired"),
                 (PlanStatusId.CANCELLED, "Cancelled")],
    PaymentMethod: [(PaymentMethodId.CASH, "Cash"), (PaymentMethodId.ONLINE, "Online")],
    LogType: [(LogTypeId.INVENTORY_CHANGE, "Inventory Change"),
              (LogTypeId.LOGIN_FAILURE, "Login Failure"),
              (LogTypeId.ADD_RECORD, "Add Record"),
              (LogTypeId.EDIT_RECORD, "Edit Record"),
              (LogTypeId.DELETE_RECORD, "Delete Record"),
              (LogTypeId.PRESCRIPTION_APPROVAL, "Prescription Approval"),
              (LogTypeId.CONTROLLED_DISPENSED, "Controlled Medication Dispensed"),
              (LogTypeId.PRESCRIPTION_PLAN_EMAIL, "Prescription Plan Email"),
              (LogTypeId.AUTOMATED_REORDER, "Automated Reorder"),
              (LogTypeId.PRESCRIPTION_REJECTION, "Prescription Rejection")],
    SupplierOrderStatus: [(SupplierOrderStatusId.PENDING, "Pending"),
                          (SupplierOrderStatusId.DELIVERED, "Delivered"),
                          (SupplierOrderStatusId.CANCELLED, "Cancelled")],
    ReportType: [(ReportTypeId.TOTAL_REVENUE, "Total Revenue"),
                 (ReportTypeId.CATEGORY_REVENUE, "Category Revenue"),
                 (ReportTypeId.SUPPLIER_REVENUE, "Supplier Revenue"),
                 (ReportTypeId.PRODUCT_REVENUE, "Product Revenue"),
                 (ReportTypeId.COMPLIANCE, "Compliance")],
    Severity: [(1, "Mild"), (2, "Moderate"), (3, "Severe")],
}
