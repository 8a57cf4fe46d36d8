from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api import deps
from app.core.audit import audit
from app.models.auth import User
from app.models.enums import PaymentMethod
from app.schemas import PaymentCreate, PaymentResponse, PaymentReverse, dump, dump_list, ok
from app.services.base import PageParams
from app.services.payment_service import PaymentService

router = APIRouter()


@router.post("/", status_code=201)
def create_payment(
    request: Request,
    payment_in: PaymentCreate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    payment = PaymentService(db).create(payment_in.model_dump(), current_user)
    audit.data(
        request, current_user, "CREATE", "payments", payment.id,
        {"receiptNumber": payment.receipt_number, "amount": float(payment.amount)},
    )
    return ok(dump(PaymentResponse, payment), "Payment recorded successfully")


@router.get("/")
def list_payments(
    params: PageParams = Depends(deps.page_params),
    student_id: Optional[str] = Query(None, alias="studentId"),
    student_fee_id: Optional[str] = Query(None, alias="studentFeeId"),
    payment_method: Optional[PaymentMethod] = Query(None, alias="paymentMethod"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    payments, meta = PaymentService(db).list(
        params,
        current_user,
        student_id=student_id,
        student_fee_id=student_fee_id,
        payment_method=payment_method,
        start_date=start_date,
        end_date=end_date,
    )
    return ok(dump_list(PaymentResponse, payments), pagination=meta)


@router.get("/statistics")
def payment_statistics(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    return ok(PaymentService(db).statistics(start_date, end_date))


@router.get("/history/{student_fee_id}")
def payment_history(
    student_fee_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    history = PaymentService(db).history(student_fee_id, current_user)
    history["payments"] = dump_list(PaymentResponse, history["payments"])
    return ok(history)


@router.get("/{payment_id}")
def read_payment(
    request: Request,
    payment_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    payment = PaymentService(db).get(payment_id, current_user)
    audit.access(request, current_user, "payments", payment.id)
    return ok(dump(PaymentResponse, payment))


@router.get("/{payment_id}/receipt")
def payment_receipt(
    payment_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(PaymentService(db).receipt(payment_id, current_user))


@router.post("/{payment_id}/reverse")
def reverse_payment(
    request: Request,
    payment_id: str,
    payload: PaymentReverse,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    result = PaymentService(db).reverse(payment_id, payload.reason, current_user)
    audit.data(request, current_user, "DELETE", "payments", result["paymentId"], {"reason": payload.reason})
    return ok(result, "Payment reversed successfully")
