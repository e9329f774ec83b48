"""Admin reports (PDF), report types and the activity log."""
from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from quickpharma.api.deps import get_db, require_admin
from quickpharma.core.audit import AuditLog
from quickpharma.core.exceptions import BusinessError
from quickpharma.models.report import Report
from quickpharma.models.user import User
from quickpharma.schemas.report import ReportGenerateRequest
from quickpharma.services import log_service, report_service
from quickpharma.services.report_service import ReportRequest

router = APIRouter()


def _load_report(db: Session, report_id: int) -> Report:
    report = report_service.get_report(db, report_id)
    if not report:
        raise BusinessError.not_found("Report")
    return report


def _document(report: Report, disposition: str) -> Response:
    return Response(
        content=report.document,
        media_type=report.content_type or "application/pdf",
        headers={"Content-Disposition": f'{disposition}; filename="{report.file_name}"'},
    )


@router.get("/Reports")
def list_reports(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(12, alias="pageSize"),
    report_id: Optional[int] = Query(None, alias="reportId"),
    report_name: Optional[str] = Query(None, alias="reportName"),
    report_type_id: Optional[int] = Query(None, alias="reportTypeId"),
    creation_date: Optional[date] = Query(None, alias="creationDate"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return report_service.list_reports(
        db, page_number, page_size, report_id, report_name, report_type_id, creation_date,
    )


@router.post("/Reports/Generate", status_code=status.HTTP_201_CREATED)
def generate_report(
    body: ReportGenerateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    result = report_service.generate_report(db, current_user.id, ReportRequest(
        report_type=body.report_type,
        date_from=body.date_from,
        date_to=body.date_to,
        branch=body.branch,
        product_category=body.product_category,
        supplier=body.supplier,
        product=body.product,
    ))
    if not result.ok:
        raise BusinessError.bad_request({"reason": result.reason})
    AuditLog.log_action("create", "report", result.report_id, current_user)
    return asdict(result)


@router.get("/Reports/{report_id}/document")
def report_document(report_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    return _document(_load_report(db, report_id), "inline")


@router.get("/Reports/{report_id}/download")
def report_download(report_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    return _document(_load_report(db, report_id), "attachment")


@router.get("/Reports/{report_id}")
def report_details(report_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    return report_service.report_to_dict(_load_report(db, report_id), with_description=True)


@router.delete("/Reports/{report_id}")
def delete_report(report_id: int, db: Session = Depends(get_db), current_user: User = Depends(require_admin)):
    report_service.delete_report(db, current_user.id, _load_report(db, report_id))
    AuditLog.log_action("delete", "report", report_id, current_user)
    return {"deleted": True}


@router.get("/ReportTypes")
def report_types(db: Session = Depends(get_db)):
    return report_service.list_report_types(db)


# ------------------------------------------------------------------------------
# Activity log
# ------------------------------------------------------------------------------

@router.get("/QuickPharmaLog")
def list_logs(
    page_number: int = Query(1, alias="pageNumber"),
    page_size: int = Query(10, alias="pageSize"),
    search: Optional[str] = Query(None),
    log_type_id: Optional[int] = Query(None, alias="logTypeId"),
    employee_name: Optional[str] = Query(None, alias="employeeName"),
    action_date: Optional[date] = Query(None, alias="actionDate"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    return log_service.list_logs(db, page_number, page_size, search, log_type_id, employee_name, action_date)


@router.get("/QuickPharmaLog/types")
def log_types(db: Session = Depends(get_db)):
    return log_service.list_log_types(db)
