from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.models.enums import FeeStatus
from app.schemas import (
    ClassFeeAssignment,
    FeeAssignment,
    FeeCategoryCreate,
    FeeCategoryResponse,
    FeeCategoryUpdate,
    FeeReminderRequest,
    StudentFeeUpdate,
    dump,
    dump_list,
    ok,
)
from app.services.base import PageParams
from app.services.fee_service import FeeService

router = APIRouter()


# Fee categories

@router.post("/categories", status_code=201)
def create_fee_category(
    category_in: FeeCategoryCreate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    category = FeeService(db, cache).create_category(category_in.model_dump())
    return ok(dump(FeeCategoryResponse, category), "Fee category created successfully")


@router.get("/categories")
def list_fee_categories(
    params: PageParams = Depends(deps.page_params),
    academic_year_id: Optional[str] = Query(None, alias="academicYearId"),
    is_active: Optional[bool] = Query(True, alias="isActive"),
    search: Optional[str] = None,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    result = FeeService(db, cache).list_categories_cached(
        params, academic_year_id, is_active, search, serialize=lambda items: dump_list(FeeCategoryResponse, items)
    )
    return ok(result["items"], pagination=result["pagination"])


@router.get("/categories/{category_id}")
def read_fee_category(
    category_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    service = FeeService(db)
    category = service.get_or_404(category_id)
    data = dump(FeeCategoryResponse, category)
    data["statistics"] = service.category_statistics(category)
    return ok(data)


@router.put("/categories/{category_id}")
def update_fee_category(
    category_id: str,
    category_in: FeeCategoryUpdate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    category = FeeService(db, cache).update_category(category_id, category_in.model_dump(exclude_unset=True))
    return ok(dump(FeeCategoryResponse, category), "Fee category updated successfully")


@router.delete("/categories/{category_id}")
def delete_fee_category(
    category_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    FeeService(db, cache).delete_category(category_id)
    return ok(None, "Fee category deactivated successfully")


# Assignment

@router.post("/assign", status_code=201)
def assign_fee_to_students(
    assignment: FeeAssignment,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    result = FeeService(db).assign_to_students(assignment.model_dump())
    return ok(result, f"Fee assigned to {result['assigned']} student(s)")


@router.post("/assign/class", status_code=201)
def assign_fee_to_class(
    assignment: ClassFeeAssignment,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    result = FeeService(db).assign_to_class(assignment.model_dump())
    return ok(result, f"Fee assigned to {result['assigned']} student(s)")


# Student fees

@router.get("/student-fees")
def list_student_fees(
    params: PageParams = Depends(deps.page_params),
    student_id: Optional[str] = Query(None, alias="studentId"),
    fee_category_id: Optional[str] = Query(None, alias="feeCategoryId"),
    status: Optional[FeeStatus] = None,
    overdue: Optional[bool] = None,
    class_id: Optional[str] = Query(None, alias="classId"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    fees, meta = FeeService(db).list_student_fees(
        params,
        current_user,
        student_id=student_id,
        fee_category_id=fee_category_id,
        status=status,
        overdue=overdue,
        class_id=class_id,
    )
    return ok(fees, pagination=meta)


@router.get("/student-fees/{fee_id}")
def read_student_fee(
    fee_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(FeeService(db).get_student_fee(fee_id, current_user))


@router.put("/student-fees/{fee_id}")
def update_student_fee(
    fee_id: str,
    fee_in: StudentFeeUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    fee = FeeService(db).update_student_fee(fee_id, fee_in.model_dump(exclude_unset=True))
    return ok(fee, "Student fee updated successfully")


@router.post("/reminders")
def send_fee_reminders(
    payload: Optional[FeeReminderRequest] = Body(None),
    db: Session = Depends(deps.get_db),
    email=Depends(deps.get_email),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    """
    Mark past-due fees overdue and email a reminder for each overdue fee (or only the listed ones).
    """
    ids = payload.student_fee_ids if payload else None
    result = FeeService(db, email=email).send_reminders(ids)
    return ok(result, f"Sent {result['sent']} of {result['total']} reminder(s)")
