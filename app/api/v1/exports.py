from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.api import deps
from app.core.config import settings
from app.models.auth import User
from app.schemas import ExportEmailRequest, ExportRequest, ok
from app.services.export_service import REPORTS, ExportService

router = APIRouter()

MEDIA_TYPES = {
    "pdf": "application/pdf",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
}


@router.get("/reports")
def available_reports(current_user: User = Depends(deps.staff_or_admin)) -> Any:
    return ok({"reports": list(REPORTS), "formats": ["pdf", "excel", "csv"]})


@router.get("/download/{filename}")
def download_export(
    filename: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    path = ExportService(db, settings).resolve_download(filename)
    extension = filename.rsplit(".", 1)[-1].lower()
    return FileResponse(path, media_type=MEDIA_TYPES.get(extension, "application/octet-stream"), filename=filename)


@router.post("/email")
def email_export(
    payload: ExportEmailRequest,
    report: str,
    db: Session = Depends(deps.get_db),
    email=Depends(deps.get_email),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    options = payload.model_dump(exclude={"recipients", "message"})
    result = ExportService(db, settings).email_export(report, options, payload.recipients, payload.message, email)
    message = "Report emailed successfully" if result["emailed"] else "Report generated but email was not sent"
    return ok(result, message)


@router.post("/{report}", dependencies=[Depends(deps.RateLimit("reports"))])
def export_report(
    report: str,
    payload: ExportRequest,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    """
    Render a named report to pdf, excel or csv under the export directory.
    """
    result = ExportService(db, settings).export(report, payload.model_dump())
    return ok(result, "Report exported successfully")
