"""
Revenue and compliance reports.

Generation validates the request, aggregates orders in the store-day range
[date_from, date_to], renders the result to PDF and stores it. The stored
name gets the new report id appended after the insert.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from quickpharma.core.clock import local_today, utc_now
from quickpharma.models.catalog import Category, Ingredient, Product, ProductIngredient, Supplier
from quickpharma.models.inventory import Inventory
from quickpharma.models.location import Branch
from quickpharma.models.lookup import ReportType, ReportTypeId
from quickpharma.models.order import Order, ProductOrder, Shipping
from quickpharma.models.prescription import Approval
from quickpharma.models.report import Report
from quickpharma.models.supplier_order import Reorder, SupplierOrder
from quickpharma.services import log_service
from quickpharma.services.paging import apply_page, normalize_page, paged
from quickpharma.services.pdf_service import render_report_pdf

logger = logging.getLogger(__name__)

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9 #\-]*$")
NEAR_EXPIRY_DAYS = 29


@dataclass
class ReportRequest:
    report_type: Optional[str]
    date_from: Optional[str]
    date_to: Optional[str]
    branch: Optional[str] = None
    product_category: Optional[str] = None
    supplier: Optional[str] = None
    product: Optional[str] = None


@dataclass
class ReportResult:
    ok: bool
    reason: str = "OK"
    report_id: Optional[int] = None
    file_name: Optional[str] = None
    report_name: Optional[str] = None


def _parse_date(value: Optional[str]) -> Optional[date]:
    try:
        return date.fromisoformat((value or "").strip()[:10])
    except ValueError:
        return None


def _positive_int(value: Optional[str]) -> Optional[int]:
    text = (value or "").strip()
    if not text.isdigit() or int(text) <= 0:
        return None
    return int(text)


def _resolve_type(db: Session, value: str) -> Optional[ReportType]:
    text = value.strip()
    if text.isdigit():
        return db.query(ReportType).filter(ReportType.id == int(text)).first()
    # Accept "Total Revenue" as well as "Total Revenue Report"
    name = re.sub(r"\s+report$", "", text, flags=re.IGNORECASE).lower()
    return db.query(ReportType).filter(func.lower(ReportType.name) == name).first()


def _store_range(date_from: date, date_to: date) -> Tuple[datetime, datetime]:
    # Orders, approvals and supplier orders are stamped with store time
    start = datetime.combine(date_from, time.min)
    end = datetime.combine(date_to + timedelta(days=1), time.min)
    return start, end


# ------------------------------------------------------------------------------
# Aggregation
# ------------------------------------------------------------------------------

def _orders_in_range(db: Session, start: datetime, end: datetime, branch_id: Optional[int]):
    q = (
        db.query(Order)
        .join(Shipping, Shipping.id == Order.shipping_id)
        .filter(Order.created_at >= start, Order.created_at < end)
    )
    if branch_id:
        q = q.filter(Shipping.branch_id == branch_id)
    return q


def _lines_in_range(db: Session, start: datetime, end: datetime, branch_id: Optional[int]):
    q = (
        db.query(ProductOrder)
        .join(Order, Order.id == ProductOrder.order_id)
        .join(Shipping, Shipping.id == Order.shipping_id)
        .join(Product, Product.id == ProductOrder.product_id)
        .filter(Order.created_at >= start, Order.created_at < end)
    )
    if branch_id:
        q = q.filter(Shipping.branch_id == branch_id)
    return q


def _line_total(line: ProductOrder) -> Decimal:
    return Decimal(str(line.unit_price or 0)) * line.quantity


def _kpis(orders: List[Order]) -> List[tuple]:
    paid = [o for o in orders if o.payment and o.payment.is_successful]
    paid_total = sum((Decimal(str(o.total or 0)) for o in paid), Decimal("0"))
    all_total = sum((Decimal(str(o.total or 0)) for o in orders), Decimal("0"))
    return [
        ("Orders", len(orders)),
        ("Order value (BHD)", float(all_total)),
        ("Successful payments", len(paid)),
        ("Collected (BHD)", float(paid_total)),
        ("Pending collection (BHD)", float(all_total - paid_total)),
        ("Average order (BHD)", float(all_total / len(orders)) if orders else 0.0),
    ]


def _group_lines(lines: List[ProductOrder], key) -> List[list]:
    groups: Dict[Any, List] = {}
    for line in lines:
        label = key(line) or "Unknown"
        bucket = groups.setdefault(label, [0, Decimal("0")])
        bucket[0] += line.quantity
        bucket[1] += _line_total(line)
    return [[label, qty, float(total)] for label, (qty, total) in sorted(groups.items(), key=lambda kv: -kv[1][1])]


def _order_rows(orders: List[Order]) -> List[list]:
    return [
        [
            o.id,
            o.created_at.strftime("%Y-%m-%d %H:%M") if o.created_at else None,
            o.shipping.branch.city_name if o.shipping and o.shipping.branch else None,
            "Delivery" if o.shipping and o.shipping.is_delivery else "Pickup",
            o.payment.method.name if o.payment and o.payment.method else None,
            bool(o.payment and o.payment.is_successful),
            float(o.total or 0),
        ]
        for o in sorted(orders, key=lambda o: o.id)
    ]


ORDER_COLUMNS = ["Order", "Created", "Branch", "Method", "Payment", "Paid", "Total (BHD)"]


def _supplier_order_rows(db: Session, start: datetime, end: datetime, branch_id: Optional[int],
                         supplier_id: Optional[int] = None) -> List[list]:
    q = db.query(SupplierOrder).filter(SupplierOrder.order_date >= start, SupplierOrder.order_date < end)
    if branch_id:
        q = q.filter(SupplierOrder.branch_id == branch_id)
    if supplier_id:
        q = q.filter(SupplierOrder.supplier_id == supplier_id)
    rows = []
    for so in q.order_by(SupplierOrder.id).all():
        price = float(so.product.price or 0) if so.product else 0.0
        rows.append([
            so.id,
            so.product.name if so.product else None,
            so.supplier.name if so.supplier else None,
            so.branch.city_name if so.branch else None,
            so.quantity,
            so.status.name if so.status else None,
            price * so.quantity,
        ])
    return rows


SUPPLIER_ORDER_COLUMNS = ["ID", "Product", "Supplier", "Branch", "Qty", "Status", "Est. cost (BHD)"]


def _total_revenue(db: Session, start, end, branch_id) -> Dict[str, Any]:
    orders = _orders_in_range(db, start, end, branch_id).all()
    lines = _lines_in_range(db, start, end, branch_id).all()
    per_branch: Dict[str, Decimal] = {}
    for o in orders:
        label = o.shipping.branch.city_name if o.shipping and o.shipping.branch else "Unknown"
        per_branch[label] = per_branch.get(label, Decimal("0")) + Decimal(str(o.total or 0))

    reorders = db.query(Reorder)
    if branch_id:
        reorders = reorders.filter(Reorder.branch_id == branch_id)

    return {
        "kpis": _kpis(orders),
        "sections": [
            {"heading": "Revenue per branch", "columns": ["Branch", "Revenue (BHD)"],
             "rows": [[k, float(v)] for k, v in sorted(per_branch.items())]},
            {"heading": "Sales by category", "columns": ["Category", "Units", "Revenue (BHD)"],
             "rows": _group_lines(lines, lambda ln: ln.product.category.name if ln.product.category else None)},
            {"heading": "Sales by supplier", "columns": ["Supplier", "Units", "Revenue (BHD)"],
             "rows": _group_lines(lines, lambda ln: ln.product.supplier.name if ln.product.supplier else None)},
            {"heading": "Sales by product", "columns": ["Product", "Units", "Revenue (BHD)"],
             "rows": _group_lines(lines, lambda ln: ln.product.name)},
            {"heading": "Orders", "columns": ORDER_COLUMNS, "rows": _order_rows(orders)},
            {"heading": "Supplier orders", "columns": SUPPLIER_ORDER_COLUMNS,
             "rows": _supplier_order_rows(db, start, end, branch_id)},
            {"heading": "Reorder rules", "columns": ["Product", "Supplier", "Branch", "Threshold", "Qty"],
             "rows": [
                 [r.product.name if r.product else None, r.supplier.name if r.supplier else None,
                  r.branch.city_name if r.branch else None, r.threshold, r.quantity]
                 for r in reorders.order_by(Reorder.id).all()
             ]},
        ],
    }


def _filtered_revenue(lines: List[ProductOrder]) -> Tuple[List[tuple], List[Order]]:
    orders = {line.order_id: line.order for line in lines}
    revenue = sum((_line_total(ln) for ln in lines), Decimal("0"))
    kpis = [
        ("Orders", len(orders)),
        ("Units sold", sum(ln.quantity for ln in lines)),
        ("Line revenue (BHD)", float(revenue)),
        ("Average per order (BHD)", float(revenue / len(orders)) if orders else 0.0),
    ]
    return kpis, list(orders.values())


def _category_revenue(db: Session, start, end, branch_id, category: Category) -> Dict[str, Any]:
    lines = _lines_in_range(db, start, end, branch_id).filter(Product.category_id == category.id).all()
    kpis, orders = _filtered_revenue(lines)
    return {
        "kpis": [("Category", category.name)] + kpis,
        "sections": [
            {"heading": "Sales by product type", "columns": ["Type", "Units", "Revenue (BHD)"],
             "rows": _group_lines(lines, lambda ln: ln.product.product_type.name if ln.product.product_type else None)},
            {"heading": "Sales by product", "columns": ["Product", "Units", "Revenue (BHD)"],
             "rows": _group_lines(lines, lambda ln: ln.product.name)},
            {"heading": "Orders", "columns": ORDER_COLUMNS, "rows": _order_rows(orders)},
        ],
    }


def _supplier_revenue(db: Session, start, end, branch_id, supplier: Supplier) -> Dict[str, Any]:
    lines = _lines_in_range(db, start, end, branch_id).filter(Product.supplier_id == supplier.id).all()
    kpis, orders = _filtered_revenue(lines)
    return {
        "kpis": [("Supplier", supplier.name), ("Representative", supplier.representative),
                 ("Contact", supplier.contact), ("Email", supplier.email)] + kpis,
        "sections": [
            {"heading": "Sales by product", "columns": ["Product", "Units", "Revenue (BHD)"],
             "rows": _group_lines(lines, lambda ln: ln.product.name)},
            {"heading": "Orders", "columns": ORDER_COLUMNS, "rows": _order_rows(orders)},
            {"heading": "Supplier orders", "columns": SUPPLIER_ORDER_COLUMNS,
             "rows": _supplier_order_rows(db, start, end, branch_id, supplier.id)},
        ],
    }


def _product_revenue(db: Session, start, end, branch_id, product: Product) -> Dict[str, Any]:
    lines = _lines_in_range(db, start, end, branch_id).filter(ProductOrder.product_id == product.id).all()
    kpis, orders = _filtered_revenue(lines)
    ingredients = (
        db.query(Ingredient.name)
        .join(ProductIngredient, ProductIngredient.ingredient_id == Ingredient.id)
        .filter(ProductIngredient.product_id == product.id)
        .order_by(Ingredient.name)
        .all()
    )
    return {
        "kpis": [("Product", product.name), ("Price (BHD)", float(product.price or 0)),
                 ("Controlled", bool(product.is_controlled))] + kpis,
        "sections": [
            {"heading": "Ingredients", "columns": ["Ingredient"], "rows": [[name] for (name,) in ingredients]},
            {"heading": "Sales by branch", "columns": ["Branch", "Units", "Revenue (BHD)"],
             "rows": _group_lines(
                 lines, lambda ln: ln.order.shipping.branch.city_name if ln.order.shipping.branch else None,
             )},
            {"heading": "Orders", "columns": ORDER_COLUMNS, "rows": _order_rows(orders)},
        ],
    }


def _compliance(db: Session, start, end, branch_id) -> Dict[str, Any]:
    today = local_today()
    inventory = db.query(Inventory).filter(Inventory.quantity > 0, Inventory.expiry_date.isnot(None))
    if branch_id:
        inventory = inventory.filter(Inventory.branch_id == branch_id)
    near, expired = [], []
    for item in inventory.order_by(Inventory.expiry_date, Inventory.id).all():
        row = [item.id, item.product.name if item.product else None,
               item.branch.city_name if item.branch else None, item.quantity, item.expiry_date.isoformat()]
        if item.expiry_date < today:
            expired.append(row)
        elif item.expiry_date <= today + timedelta(days=NEAR_EXPIRY_DAYS):
            near.append(row)

    controlled = _lines_in_range(db, start, end, branch_id).filter(Product.is_controlled.is_(True)).all()
    approvals = (
        db.query(Approval)
        .filter(Approval.timestamp >= start, Approval.timestamp < end)
        .order_by(Approval.timestamp)
        .all()
    )
    if branch_id:
        approvals = [
            a for a in approvals
            if a.pharmacist is None or a.pharmacist.branch_id in (None, branch_id)
        ]

    return {
        "kpis": [
            ("Near-expiry batches", len(near)),
            ("Expired batches with stock", len(expired)),
            ("Controlled lines dispensed", len(controlled)),
            ("Prescription approvals", len(approvals)),
        ],
        "sections": [
            {"heading": f"Expiring within {NEAR_EXPIRY_DAYS} days",
             "columns": ["Batch", "Product", "Branch", "Qty", "Expiry"], "rows": near},
            {"heading": "Expired stock awaiting disposal",
             "columns": ["Batch", "Product", "Branch", "Qty", "Expiry"], "rows": expired},
            {"heading": "Controlled medication dispensed",
             "columns": ["Order", "Product", "Qty", "Prescription", "Branch"],
             "rows": [
                 [ln.order_id, ln.product.name, ln.quantity, ln.prescription_id,
                  ln.order.shipping.branch.city_name if ln.order.shipping.branch else None]
                 for ln in controlled
             ]},
            {"heading": "Prescription approvals",
             "columns": ["Prescription", "Product", "Qty", "Expiry", "Pharmacist"],
             "rows": [
                 [a.prescription_id, a.product_name, a.quantity, a.prescription_expiry_date.isoformat(),
                  a.pharmacist.full_name if a.pharmacist else None]
                 for a in approvals
             ]},
        ],
    }


# ------------------------------------------------------------------------------
# Generate / list / read / delete
# ------------------------------------------------------------------------------

def generate_report(db: Session, user_id: Optional[int], req: ReportRequest) -> ReportResult:
    branch_text = (req.branch or "").strip()
    if branch_text.upper() in ("ALL", "0"):
        branch_text = ""
    branch_id = None
    if branch_text:
        branch_id = _positive_int(branch_text)
        if branch_id is None:
            return ReportResult(False, "INVALID_BRANCH")
        if not db.query(Branch.id).filter(Branch.id == branch_id).first():
            return ReportResult(False, "INVALID_BRANCH")

    if not (req.report_type or "").strip():
        return ReportResult(False, "REPORT_TYPE_REQUIRED")
    date_from = _parse_date(req.date_from)
    if date_from is None:
        return ReportResult(False, "INVALID_DATE_FROM")
    date_to = _parse_date(req.date_to)
    if date_to is None:
        return ReportResult(False, "INVALID_DATE_TO")
    if date_from > date_to:
        return ReportResult(False, "DATE_RANGE_INVALID")

    report_type = _resolve_type(db, req.report_type)
    if not report_type:
        return ReportResult(False, "INVALID_REPORT_TYPE")

    start, end = _store_range(date_from, date_to)
    if report_type.id == ReportTypeId.TOTAL_REVENUE:
        data = _total_revenue(db, start, end, branch_id)
    elif report_type.id == ReportTypeId.CATEGORY_REVENUE:
        if not (req.product_category or "").strip():
            return ReportResult(False, "CATEGORY_REQUIRED")
        category_id = _positive_int(req.product_category)
        category = db.query(Category).filter(Category.id == category_id).first() if category_id else None
        if not category:
            return ReportResult(False, "INVALID_CATEGORY")
        data = _category_revenue(db, start, end, branch_id, category)
    elif report_type.id == ReportTypeId.SUPPLIER_REVENUE:
        if not (req.supplier or "").strip():
            return ReportResult(False, "SUPPLIER_REQUIRED")
        supplier_id = _positive_int(req.supplier)
        supplier = db.query(Supplier).filter(Supplier.id == supplier_id).first() if supplier_id else None
        if not supplier:
            return ReportResult(False, "INVALID_SUPPLIER")
        data = _supplier_revenue(db, start, end, branch_id, supplier)
    elif report_type.id == ReportTypeId.PRODUCT_REVENUE:
        if not (req.product or "").strip():
            return ReportResult(False, "PRODUCT_REQUIRED")
        product_id = _positive_int(req.product)
        product = db.query(Product).filter(Product.id == product_id).first() if product_id else None
        if not product:
            return ReportResult(False, "INVALID_PRODUCT")
        data = _product_revenue(db, start, end, branch_id, product)
    else:
        data = _compliance(db, start, end, branch_id)

    branch_label = "All branches"
    if branch_id:
        branch = db.query(Branch).filter(Branch.id == branch_id).first()
        branch_label = branch.city_name
    base_title = f"{report_type.name} Report"

    pdf = render_report_pdf({
        "title": base_title,
        "scope": branch_label,
        "date_from": date_from.isoformat(),
        "date_to": date_to.isoformat(),
        **data,
    })
    now = utc_now()
    file_name = f"{report_type.name}-{now:%Y%m%d%H%M%S}.pdf"

    try:
        report = Report(
            report_type_id=report_type.id,
            user_id=user_id,
            name=base_title,
            description=f"Generated for {branch_label} ({date_from:%Y-%m-%d} to {date_to:%Y-%m-%d})",
            document=pdf,
            file_name=file_name,
            content_type="application/pdf",
            document_size_bytes=len(pdf),
            created_at=now,
        )
        db.add(report)
        db.flush()
        report.name = f"{base_title} #{report.id}"
        db.commit()
    except Exception:
        db.rollback()
        raise

    if user_id:
        log_service.create_add_record_log(
            db, user_id, "Report", report.id,
            f"Report Name: {report.name}, Branch: {branch_label}, "
            f"Date Range: {date_from:%Y-%m-%d} to {date_to:%Y-%m-%d}, File: {file_name}, Size: {len(pdf)} bytes",
        )
    logger.info(f"Report #{report.id} generated ({report_type.name}, {branch_label}, {len(pdf)} bytes)")
    return ReportResult(True, report_id=report.id, file_name=file_name, report_name=report.name)


def report_to_dict(r: Report, with_description: bool = False) -> dict:
    data = {
        "report_id": r.id,
        "report_name": r.name,
        "report_type_id": r.report_type_id,
        "report_type_name": r.report_type.name if r.report_type else None,
        "file_name": r.file_name,
        "content_type": r.content_type,
        "document_size_bytes": r.document_size_bytes,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }
    if with_description:
        data["report_description"] = r.description
        data["user_id"] = r.user_id
    return data


def list_reports(
    db: Session,
    page_number: int = 1,
    page_size: int = 12,
    report_id: Optional[int] = None,
    report_name: Optional[str] = None,
    report_type_id: Optional[int] = None,
    creation_date: Optional[date] = None,
) -> dict:
    page_number, page_size = normalize_page(page_number, page_size, default_size=12)
    name = (report_name or "").strip()
    if name and not _NAME_PATTERN.match(name):
        return paged([], 0, page_number, page_size)

    q = db.query(Report)
    if report_id and report_id > 0:
        q = q.filter(Report.id == report_id)
    if name:
        q = q.filter(func.lower(Report.name).like(f"{name.lower()}%"))
    if report_type_id and report_type_id > 0:
        q = q.filter(Report.report_type_id == report_type_id)
    if creation_date:
        start = datetime.combine(creation_date, time.min)
        q = q.filter(Report.created_at >= start, Report.created_at < start + timedelta(days=1))

    total = q.count()
    rows = apply_page(q.order_by(Report.created_at.desc(), Report.id.desc()), page_number, page_size).all()
    return paged([report_to_dict(r) for r in rows], total, page_number, page_size)


def list_report_types(db: Session) -> List[dict]:
    return [{"id": t.id, "name": t.name} for t in db.query(ReportType).order_by(ReportType.id).all()]


def get_report(db: Session, report_id: int) -> Optional[Report]:
    return db.query(Report).filter(Report.id == report_id).first()


def delete_report(db: Session, user_id: int, report: Report) -> None:
    details = (
        f"Deleted Report: {report.name}, "
        f"Type: {report.report_type.name if report.report_type else 'Unknown'}, File: {report.file_name}"
    )
    report_id = report.id
    db.delete(report)
    db.commit()
    log_service.create_delete_record_log(db, user_id, "Report", report_id, details)
