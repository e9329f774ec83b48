"""
Activity log (logs table): append-only trail of staff and system actions.

Writers run after the business transaction has committed and commit on their
own; a failed log write is rolled back and reported, never raised into the
operation that triggered it.
"""
import logging
import re
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quickpharma.models.log import Log
from quickpharma.models.lookup import LogType, LogTypeId
from quickpharma.models.user import User
from quickpharma.services.paging import apply_page, normalize_page, paged

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"^[0-9]*$")


def _user_name(db: Session, user_id: Optional[int]) -> str:
    if not user_id:
        return "Unknown User"
    user = db.query(User).filter(User.id == user_id).first()
    return user.full_name if user else "Unknown User"


def write_log(
    db: Session,
    log_type_id: int,
    description: str,
    user_id: Optional[int] = None,
    order_id: Optional[int] = None,
    inventory_id: Optional[int] = None,
) -> Optional[Log]:
    entry = Log(
        log_type_id=log_type_id,
        user_id=user_id,
        description=description,
        order_id=order_id,
        inventory_id=inventory_id,
        timestamp=datetime.utcnow(),
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to write activity log (type={log_type_id}): {e}")
        return None
    return entry


def _with_details(description: str, details: Optional[str]) -> str:
    if details and details.strip():
        return f"{description} - {details.strip()}"
    return description


def create_inventory_change_log(
    db: Session,
    user_id: Optional[int],
    product_name: Optional[str],
    branch_name: Optional[str],
    inventory_id: Optional[int] = None,
    order_id: Optional[int] = None,
) -> Optional[Log]:
    description = (
        f"Inventory update for product '{product_name or 'Unknown'}' "
        f"at branch '{branch_name or 'Unknown'}' by {_user_name(db, user_id)}"
    )
    return write_log(db, LogTypeId.INVENTORY_CHANGE, description, user_id,
                     order_id=order_id, inventory_id=inventory_id)


def create_login_failure_log(db: Session, email: str) -> Optional[Log]:
    return write_log(db, LogTypeId.LOGIN_FAILURE, f"User failed to login three times with email: {email}")


def create_add_record_log(db: Session, user_id: int, table_name: str, record_id: int,
                          details: Optional[str] = None) -> Optional[Log]:
    description = f"{_user_name(db, user_id)} added a record to {table_name} (Record ID: {record_id})"
    return write_log(db, LogTypeId.ADD_RECORD, _with_details(description, details), user_id)


def create_edit_record_log(db: Session, user_id: int, table_name: str, record_id: int,
                           details: Optional[str] = None) -> Optional[Log]:
    description = f"{_user_name(db, user_id)} edited a record in {table_name} (Record ID: {record_id})"
    return write_log(db, LogTypeId.EDIT_RECORD, _with_details(description, details), user_id)


def create_delete_record_log(db: Session, user_id: int, table_name: str, record_id: int,
                             details: Optional[str] = None) -> Optional[Log]:
    description = f"{_user_name(db, user_id)} deleted a record from {table_name} (Record ID: {record_id})"
    return write_log(db, LogTypeId.DELETE_RECORD, _with_details(description, details), user_id)


def create_prescription_approval_log(db: Session, user_id: int, prescription_id: int) -> Optional[Log]:
    description = f"{_user_name(db, user_id)} approved prescription ID: {prescription_id}"
    return write_log(db, LogTypeId.PRESCRIPTION_APPROVAL, description, user_id)


def create_prescription_rejection_log(db: Session, user_id: int, prescription_id: int,
                                      details: Optional[str] = None) -> Optional[Log]:
    description = f"{_user_name(db, user_id)} rejected prescription ID: {prescription_id}"
    return write_log(db, LogTypeId.PRESCRIPTION_REJECTION, _with_details(description, details), user_id)


def create_controlled_dispensed_log(db: Session, user_id: int, product_name: str,
                                    prescription_id: int) -> Optional[Log]:
    description = (
        f"Controlled medication '{product_name}' dispensed by {_user_name(db, user_id)} "
        f"for prescription ID: {prescription_id}"
    )
    return write_log(db, LogTypeId.CONTROLLED_DISPENSED, description, user_id)


def create_plan_email_log(db: Session, user_id: int, description: str) -> Optional[Log]:
    return write_log(db, LogTypeId.PRESCRIPTION_PLAN_EMAIL, description, user_id)


def create_automated_reorder_log(db: Session, product_name: str, branch_name: str, quantity: int,
                                 supplier_order_id: int) -> Optional[Log]:
    description = (
        f"Automated reorder of {quantity} x '{product_name}' for branch '{branch_name}' "
        f"(Supplier Order ID: {supplier_order_id})"
    )
    return write_log(db, LogTypeId.AUTOMATED_REORDER, description)


def list_logs(
    db: Session,
    page_number: int = 1,
    page_size: int = 10,
    search: Optional[str] = None,
    log_type_id: Optional[int] = None,
    employee_name: Optional[str] = None,
    action_date: Optional[date] = None,
) -> dict:
    page_number, page_size = normalize_page(page_number, page_size)

    term = (search or "").strip()
    if term and not _DIGITS.match(term):
        return paged([], 0, page_number, page_size)

    q = db.query(Log).outerjoin(User, Log.user_id == User.id)
    if term:
        q = q.filter(Log.id == int(term))
    if log_type_id and log_type_id > 0:
        q = q.filter(Log.log_type_id == log_type_id)
    if employee_name and employee_name.strip():
        name = f"%{employee_name.strip().lower()}%"
        full_name = func.lower(func.coalesce(User.first_name, "") + " " + func.coalesce(User.last_name, ""))
        q = q.filter(full_name.like(name))
    if action_date:
        start = datetime.combine(action_date, datetime.min.time())
        q = q.filter(Log.timestamp >= start, Log.timestamp < start + timedelta(days=1))

    total = q.count()
    rows = apply_page(q.order_by(Log.timestamp.desc(), Log.id.desc()), page_number, page_size).all()

    items = [
        {
            "log_id": row.id,
            "log_type_id": row.log_type_id,
            "log_type_name": row.log_type.name if row.log_type else None,
            "description": row.description,
            "timestamp": row.timestamp.isoformat() if row.timestamp else None,
            "user_id": row.user_id,
            "employee_name": row.user.full_name if row.user else None,
            "order_id": row.order_id,
            "inventory_id": row.inventory_id,
        }
        for row in rows
    ]
    return paged(items, total, page_number, page_size)


def list_log_types(db: Session) -> list:
    return [{"id": t.id, "name": t.name} for t in db.query(LogType).order_by(LogType.id).all()]
