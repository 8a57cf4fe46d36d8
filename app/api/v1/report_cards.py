from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.api import deps
from app.core.config import settings
from app.models.auth import User
from app.schemas import RankRecalculation, ReportCardCreate, ReportCardResponse, ReportCardUpdate, dump, dump_list, ok
from app.services.base import PageParams
from app.services.export_service import ExportService
from app.services.report_card_service import ReportCardService

router = APIRouter()


@router.post("/", status_code=201)
def generate_report_card(
    card_in: ReportCardCreate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.teacher_or_admin),
) -> Any:
    card = ReportCardService(db).generate(card_in.model_dump(), current_user)
    return ok(dump(ReportCardResponse, card), "Report card generated successfully")


@router.get("/")
def list_report_cards(
    params: PageParams = Depends(deps.page_params),
    student_id: Optional[str] = Query(None, alias="studentId"),
    semester_id: Optional[str] = Query(None, alias="semesterId"),
    class_id: Optional[str] = Query(None, alias="classId"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    cards, meta = ReportCardService(db).list(
        params, current_user, student_id=student_id, semester_id=semester_id, class_id=class_id
    )
    return ok(dump_list(ReportCardResponse, cards), pagination=meta)


@router.post("/recalculate-ranks")
def recalculate_ranks(
    payload: RankRecalculation,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    result = ReportCardService(db).recalculate_ranks(payload.class_id, payload.semester_id)
    return ok(result, "Class ranks recalculated successfully")


@router.get("/{card_id}")
def read_report_card(
    card_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    detail = ReportCardService(db).get_detail(card_id, current_user)
    detail["reportCard"] = dump(ReportCardResponse, detail["reportCard"])
    return ok(detail)


@router.get("/{card_id}/pdf")
def download_report_card_pdf(
    card_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    exported = ExportService(db, settings).report_card_pdf(card_id, current_user)
    return FileResponse(exported["path"], media_type="application/pdf", filename=exported["filename"])


@router.post("/{card_id}/email")
def email_report_card(
    card_id: str,
    db: Session = Depends(deps.get_db),
    email=Depends(deps.get_email),
    current_user: User = Depends(deps.teacher_or_admin),
) -> Any:
    result = ExportService(db, settings).email_report_card(card_id, current_user, email)
    message = "Report card emailed successfully" if result["emailed"] else "Report card generated but email was not sent"
    return ok(result, message)


@router.put("/{card_id}")
def update_report_card(
    card_id: str,
    card_in: ReportCardUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.teacher_or_admin),
) -> Any:
    card = ReportCardService(db).update(card_id, card_in.model_dump(exclude_unset=True), current_user)
    return ok(dump(ReportCardResponse, card), "Report card updated successfully")


@router.post("/{card_id}/regenerate")
def regenerate_report_card(
    card_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.teacher_or_admin),
) -> Any:
    card = ReportCardService(db).regenerate(card_id, current_user)
    return ok(dump(ReportCardResponse, card), "Report card regenerated successfully")


@router.delete("/{card_id}")
def delete_report_card(
    card_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    ReportCardService(db).delete(card_id)
    return ok(None, "Report card deleted successfully")
