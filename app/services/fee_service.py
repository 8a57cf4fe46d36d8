import logging
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func

from app.core.errors import AppError
from app.models.academics import AcademicYear, Class
from app.models.auth import User
from app.models.enums import FeeStatus
from app.models.finance import FeeCategory, Payment, StudentFee
from app.models.users import Student
from app.services import ledger
from app.services.access import assert_student_access, scope_student_ids
from app.services.base import BaseService, PageParams, to_float, to_snake
from app.services.cache_service import CacheKeys, CacheTTL
from app.utils.dates import iso, today, utcnow

logger = logging.getLogger(__name__)


def paid_by_fee(db, fee_ids: Iterable) -> Dict:
    fee_ids = list(fee_ids)
    if not fee_ids:
        return {}
    rows = (
        db.query(Payment.student_fee_id, func.sum(Payment.amount))
        .filter(Payment.student_fee_id.in_(fee_ids))
        .group_by(Payment.student_fee_id)
        .all()
    )
    return {fee_id: ledger.to_decimal(total) for fee_id, total in rows}


def student_fee_dict(fee: StudentFee, paid) -> Dict:
    on = today()
    student = fee.student
    return {
        "id": str(fee.id),
        "studentId": str(fee.student_id),
        "studentCode": student.student_id if student else None,
        "studentName": student.user.full_name if student else None,
        "feeCategoryId": str(fee.fee_category_id),
        "feeCategoryName": fee.fee_category.name if fee.fee_category else None,
        "amount": to_float(fee.amount),
        "discount": to_float(fee.discount),
        "paidAmount": to_float(paid),
        "remainingAmount": to_float(ledger.remaining_amount(fee.amount, paid)),
        "dueDate": iso(fee.due_date),
        "status": fee.status.value,
        "isOverdue": ledger.is_overdue(fee.status, fee.due_date, on),
        "remarks": fee.remarks,
        "createdAt": iso(fee.created_at),
        "updatedAt": iso(fee.updated_at),
    }


class FeeService(BaseService):
    model = FeeCategory
    entity_name = "Fee category"
    sort_fields = {
        "name": FeeCategory.name,
        "amount": FeeCategory.amount,
        "created_at": FeeCategory.created_at,
    }
    student_fee_sort_fields = {
        "due_date": StudentFee.due_date,
        "amount": StudentFee.amount,
        "status": StudentFee.status,
        "created_at": StudentFee.created_at,
    }

    def __init__(self, db, cache=None, email=None):
        super().__init__(db, cache)
        self.email = email

    # categories

    def create_category(self, data: Dict) -> FeeCategory:
        year = self.get_or_404(data["academic_year_id"], model=AcademicYear, name="Academic year")
        if self.exists(
            FeeCategory,
            FeeCategory.name == data["name"],
            FeeCategory.academic_year_id == year.id,
            FeeCategory.is_active.is_(True),
        ):
            raise AppError("Fee category with this name already exists for this academic year", 409)
        category = FeeCategory(alt_id=self.next_alt_id(), is_active=True, **data)
        self.db.add(category)
        self.db.commit()
        self.db.refresh(category)
        self.invalidate(f"{CacheKeys.FEE_CATEGORIES}*")
        return category

    def list_categories(
        self,
        params: PageParams,
        academic_year_id: Optional[str] = None,
        is_active: Optional[bool] = True,
        search: Optional[str] = None,
    ) -> Tuple[List[FeeCategory], Dict]:
        query = self.db.query(FeeCategory)
        if is_active is not None:
            query = query.filter(FeeCategory.is_active.is_(is_active))
        if academic_year_id:
            year = self.get_or_404(academic_year_id, model=AcademicYear, name="Academic year")
            query = query.filter(FeeCategory.academic_year_id == year.id)
        if search:
            query = query.filter(FeeCategory.name.ilike(f"%{search}%"))
        return self.paginate(query, params, default_sort=FeeCategory.name)

    def list_categories_cached(self, params: PageParams, academic_year_id, is_active, search, serialize) -> Dict:
        def load():
            items, meta = self.list_categories(params, academic_year_id, is_active, search)
            return {"items": serialize(items), "pagination": meta}

        parts = (params.page, params.limit, params.sort_by, params.sort_order, academic_year_id, is_active, search)
        return self.cached(CacheKeys.FEE_CATEGORIES, parts, load, CacheTTL.MEDIUM)

    def category_statistics(self, category: FeeCategory) -> Dict:
        fees = self.db.query(StudentFee).filter(StudentFee.fee_category_id == category.id).all()
        paid = paid_by_fee(self.db, [f.id for f in fees])
        expected = sum(ledger.to_decimal(f.amount) for f in fees if f.status != FeeStatus.waived)
        collected = ledger.total_paid(paid.values())
        counts = {status.value: 0 for status in FeeStatus}
        for fee in fees:
            counts[fee.status.value] += 1
        return {
            "assignedStudents": len(fees),
            "totalExpected": to_float(expected),
            "totalCollected": to_float(collected),
            "totalOutstanding": to_float(max(expected - collected, 0)),
            "collectionRate": round(float(collected / expected * 100), 2) if expected else 0.0,
            "statusCounts": counts,
        }

    def update_category(self, category_id: str, data: Dict) -> FeeCategory:
        category = self.get_or_404(category_id)
        if data.get("name") and data["name"] != category.name and self.exists(
            FeeCategory,
            FeeCategory.name == data["name"],
            FeeCategory.academic_year_id == category.academic_year_id,
            FeeCategory.id != category.id,
        ):
            raise AppError("Fee category with this name already exists for this academic year", 409)
        self.apply_updates(category, data)
        self.db.commit()
        self.db.refresh(category)
        self.invalidate(f"{CacheKeys.FEE_CATEGORIES}*")
        return category

    def delete_category(self, category_id: str) -> None:
        category = self.get_or_404(category_id, active_only=True)
        if self.exists(StudentFee, StudentFee.fee_category_id == category.id):
            raise AppError("Cannot delete fee category that is assigned to students", 409)
        category.is_active = False
        category.updated_at = utcnow()
        self.db.commit()
        self.invalidate(f"{CacheKeys.FEE_CATEGORIES}*")

    # assignment

    def _assign(self, category: FeeCategory, students: List[Student], due_date, discount) -> Dict:
        discount = ledger.to_decimal(discount)
        if discount > ledger.to_decimal(category.amount):
            raise AppError("Discount cannot exceed fee amount", 400)
        owed = ledger.to_decimal(category.amount) - discount
        existing = self.db.query(StudentFee.student_id).filter(
            StudentFee.fee_category_id == category.id,
            StudentFee.student_id.in_([s.id for s in students]),
        )
        already = {row[0] for row in existing}

        assigned, skipped = [], []
        with self.transaction():
            for student in students:
                if student.id in already:
                    skipped.append(str(student.id))
                    continue
                self.db.add(
                    StudentFee(
                        student_id=student.id,
                        fee_category_id=category.id,
                        amount=owed,
                        discount=discount,
                        due_date=due_date,
                        status=FeeStatus.waived if owed == 0 else FeeStatus.pending,
                    )
                )
                assigned.append(str(student.id))
        logger.info("Assigned fee %s to %d students (%d skipped)", category.name, len(assigned), len(skipped))
        return {"assigned": len(assigned), "skipped": len(skipped), "studentIds": assigned, "skippedStudentIds": skipped}

    def assign_to_students(self, data: Dict) -> Dict:
        category = self.get_or_404(data["fee_category_id"], active_only=True)
        ids = list(dict.fromkeys(data["student_ids"]))
        students = self.db.query(Student).filter(Student.id.in_(ids), Student.is_active.is_(True)).all()
        found = {s.id for s in students}
        missing = [str(i) for i in ids if i not in found]
        if missing:
            raise AppError(f"Students not found or inactive: {', '.join(missing)}", 404)
        return self._assign(category, students, data["due_date"], data.get("discount") or 0)

    def assign_to_class(self, data: Dict) -> Dict:
        category = self.get_or_404(data["fee_category_id"], active_only=True)
        class_ = self.get_or_404(data["class_id"], model=Class, name="Class", active_only=True)
        students = (
            self.db.query(Student)
            .filter(Student.class_id == class_.id, Student.is_active.is_(True))
            .all()
        )
        if not students:
            raise AppError("No active students found in this class", 400)
        return self._assign(category, students, data["due_date"], data.get("discount") or 0)

    # student fees

    def list_student_fees(
        self,
        params: PageParams,
        viewer: User,
        student_id: Optional[str] = None,
        fee_category_id: Optional[str] = None,
        status: Optional[FeeStatus] = None,
        overdue: Optional[bool] = None,
        class_id: Optional[str] = None,
    ) -> Tuple[List[Dict], Dict]:
        query = self.db.query(StudentFee).join(Student, Student.id == StudentFee.student_id)
        scope = scope_student_ids(self.db, viewer)
        if scope is not None:
            query = query.filter(StudentFee.student_id.in_(scope))
        if student_id:
            query = query.filter(StudentFee.student_id == self.get_or_404(student_id, model=Student, name="Student").id)
        if fee_category_id:
            query = query.filter(StudentFee.fee_category_id == self.get_or_404(fee_category_id).id)
        if class_id:
            query = query.filter(Student.class_id == self.get_or_404(class_id, model=Class, name="Class").id)
        if status is not None:
            query = query.filter(StudentFee.status == status)
        if overdue:
            query = query.filter(
                StudentFee.status.notin_([FeeStatus.paid, FeeStatus.waived]), StudentFee.due_date < today()
            )

        column = self.student_fee_sort_fields.get(to_snake(params.sort_by or "")) or StudentFee.due_date
        total = query.order_by(None).count()
        query = query.order_by(column.asc() if params.sort_order == "asc" else column.desc())
        fees = query.offset(params.offset).limit(params.limit).all()
        paid = paid_by_fee(self.db, [f.id for f in fees])
        return [student_fee_dict(f, paid.get(f.id, 0)) for f in fees], params.meta(total)

    def get_student_fee(self, fee_id: str, viewer: User) -> Dict:
        fee = self.get_or_404(fee_id, model=StudentFee, name="Student fee")
        assert_student_access(self.db, viewer, fee.student)
        payments = (
            self.db.query(Payment)
            .filter(Payment.student_fee_id == fee.id)
            .order_by(Payment.payment_date.desc())
            .all()
        )
        paid = ledger.total_paid(p.amount for p in payments)
        return {
            **student_fee_dict(fee, paid),
            "payments": [
                {
                    "id": str(p.id),
                    "amount": to_float(p.amount),
                    "paymentDate": iso(p.payment_date),
                    "paymentMethod": p.payment_method.value,
                    "receiptNumber": p.receipt_number,
                    "transactionId": p.transaction_id,
                }
                for p in payments
            ],
        }

    def update_student_fee(self, fee_id: str, data: Dict) -> Dict:
        fee = self.get_or_404(fee_id, model=StudentFee, name="Student fee")
        if all(data.get(k) is None for k in ("discount", "due_date", "status", "remarks")):
            raise AppError("No fields to update", 400)
        paid = paid_by_fee(self.db, [fee.id]).get(fee.id, ledger.to_decimal(0))

        if data.get("discount") is not None:
            base = ledger.to_decimal(fee.fee_category.amount)
            discount = ledger.to_decimal(data["discount"])
            if discount > base:
                raise AppError("Discount cannot exceed fee amount", 400)
            if base - discount < paid:
                raise AppError("Discount would reduce the fee below the amount already paid", 400)
            fee.discount = discount
            fee.amount = base - discount
        if data.get("due_date") is not None:
            fee.due_date = data["due_date"]
        if data.get("remarks") is not None:
            fee.remarks = data["remarks"]

        if data.get("status") == FeeStatus.waived:
            fee.status = FeeStatus.waived
        elif data.get("status") is not None:
            raise AppError("Only waiving a fee can be set directly; other statuses follow payments", 400)
        elif fee.status != FeeStatus.waived:
            fee.status = ledger.status_from_payments(fee.amount, paid, fee.due_date, today())
        fee.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(fee)
        return student_fee_dict(fee, paid)

    def mark_overdue(self) -> int:
        """Flip unpaid fees past their due date. Fees with any payment stay partial."""
        updated = (
            self.db.query(StudentFee)
            .filter(StudentFee.status == FeeStatus.pending, StudentFee.due_date < today())
            .update({"status": FeeStatus.overdue, "updated_at": utcnow()}, synchronize_session=False)
        )
        self.db.commit()
        if updated:
            logger.info("Marked %d student fees overdue", updated)
        return updated

    def send_reminders(self, student_fee_ids: Optional[List] = None) -> Dict:
        """Email overdue fees to the guardian, or the student when no guardian email is set."""
        self.mark_overdue()
        query = self.db.query(StudentFee).filter(StudentFee.status == FeeStatus.overdue)
        if student_fee_ids:
            query = query.filter(StudentFee.id.in_(student_fee_ids))
        fees = query.all()
        paid = paid_by_fee(self.db, [f.id for f in fees])

        sent, failed = 0, []
        for fee in fees:
            recipient = fee.student.guardian_email or fee.student.user.email
            ok = bool(self.email) and self.email.send_fee_reminder(
                recipient,
                fee.student.user.full_name,
                {
                    "name": fee.fee_category.name,
                    "remaining_amount": to_float(ledger.remaining_amount(fee.amount, paid.get(fee.id, 0))),
                    "due_date": iso(fee.due_date),
                },
            )
            if ok:
                sent += 1
            else:
                failed.append(str(fee.id))
        return {"total": len(fees), "sent": sent, "failed": len(failed), "failedFeeIds": failed}
