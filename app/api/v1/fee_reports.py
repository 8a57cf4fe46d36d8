from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.models.enums import PaymentMethod
from app.schemas import ok
from app.services.fee_report_service import FeeReportService

router = APIRouter(dependencies=[Depends(deps.RateLimit("reports"))])


@router.get("/collection")
def collection_report(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    payment_method: Optional[PaymentMethod] = Query(None, alias="paymentMethod"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    return ok(FeeReportService(db).collection(start_date, end_date, payment_method))


@router.get("/outstanding")
def outstanding_report(
    class_id: Optional[str] = Query(None, alias="classId"),
    fee_category_id: Optional[str] = Query(None, alias="feeCategoryId"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    return ok(FeeReportService(db).outstanding(class_id=class_id, fee_category_id=fee_category_id))


@router.get("/defaulters")
def defaulters_report(
    min_days_overdue: int = Query(0, alias="minDaysOverdue", ge=0),
    class_id: Optional[str] = Query(None, alias="classId"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    return ok(FeeReportService(db).defaulters(min_days_overdue=min_days_overdue, class_id=class_id))


@router.get("/payment-analysis")
def payment_analysis(
    months: int = Query(12, ge=1, le=36),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    return ok(FeeReportService(db).payment_analysis(months))
