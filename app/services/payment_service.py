"""Payment ledger: receipts, status transitions and reversals."""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func

from app.core.config import settings
from app.core.errors import AppError
from app.models.auth import User
from app.models.enums import FeeStatus, PaymentMethod
from app.models.finance import Payment, PaymentReversal, StudentFee
from app.models.users import Student
from app.services import ledger
from app.services.access import assert_student_access, scope_student_ids
from app.services.base import BaseService, PageParams, to_float
from app.utils.dates import as_utc, iso, today, utcnow

logger = logging.getLogger(__name__)


def day_bounds(start: Optional[date], end: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc) if start else None
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc) if end else None
    return lower, upper


class PaymentService(BaseService):
    model = Payment
    entity_name = "Payment"
    sort_fields = {
        "amount": Payment.amount,
        "payment_date": Payment.payment_date,
        "receipt_number": Payment.receipt_number,
        "created_at": Payment.created_at,
    }

    def _paid(self, student_fee_id):
        total = self.db.query(func.sum(Payment.amount)).filter(Payment.student_fee_id == student_fee_id).scalar()
        return ledger.to_decimal(total)

    def _next_receipt_number(self) -> str:
        on = today()
        prefix = f"RCP{on.strftime('%Y%m%d')}"
        count = self.db.query(func.count(Payment.id)).filter(Payment.receipt_number.like(f"{prefix}%")).scalar() or 0
        number = ledger.receipt_number(on, count)
        while self.exists(Payment, Payment.receipt_number == number):
            count += 1
            number = ledger.receipt_number(on, count)
        return number

    def create(self, data: Dict, actor: User) -> Payment:
        fee = self.get_or_404(data["student_fee_id"], model=StudentFee, name="Student fee")
        if fee.status == FeeStatus.paid:
            raise AppError("This fee has already been fully paid", 400)
        if fee.status == FeeStatus.waived:
            raise AppError("This fee has been waived", 400)
        paid = self._paid(fee.id)
        error = ledger.validate_payment_amount(data["amount"], fee.amount, paid)
        if error:
            raise AppError(error, 400)

        amount = ledger.to_money(data["amount"])
        with self.transaction():
            payment = Payment(
                student_fee_id=fee.id,
                amount=amount,
                payment_date=data.get("payment_date") or utcnow(),
                payment_method=data["payment_method"],
                transaction_id=data.get("transaction_id"),
                receipt_number=self._next_receipt_number(),
                remarks=data.get("remarks"),
                processed_by=actor.id,
                created_at=utcnow(),
            )
            self.db.add(payment)
            fee.status = ledger.status_after_payment(fee.amount, paid + amount, fee.status)
            fee.updated_at = utcnow()
        self.db.refresh(payment)
        logger.info("Recorded payment %s of %s for fee %s (%s)", payment.receipt_number, amount, fee.id, fee.status.value)
        return payment

    def list(
        self,
        params: PageParams,
        viewer: User,
        student_id: Optional[str] = None,
        student_fee_id: Optional[str] = None,
        payment_method: Optional[PaymentMethod] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Tuple[List[Payment], Dict]:
        query = self.db.query(Payment).join(StudentFee, StudentFee.id == Payment.student_fee_id)
        scope = scope_student_ids(self.db, viewer)
        if scope is not None:
            query = query.filter(StudentFee.student_id.in_(scope))
        if student_id:
            student = self.get_or_404(student_id, model=Student, name="Student")
            query = query.filter(StudentFee.student_id == student.id)
        if student_fee_id:
            fee = self.get_or_404(student_fee_id, model=StudentFee, name="Student fee")
            query = query.filter(Payment.student_fee_id == fee.id)
        if payment_method is not None:
            query = query.filter(Payment.payment_method == payment_method)
        lower, upper = day_bounds(start_date, end_date)
        if lower:
            query = query.filter(Payment.payment_date >= lower)
        if upper:
            query = query.filter(Payment.payment_date < upper)
        return self.paginate(query, params, default_sort=Payment.payment_date)

    def get(self, payment_id: str, viewer: User) -> Payment:
        payment = self.get_or_404(payment_id)
        assert_student_access(self.db, viewer, payment.student_fee.student)
        return payment

    def receipt(self, payment_id: str, viewer: User) -> Dict:
        payment = self.get(payment_id, viewer)
        fee = payment.student_fee
        student = fee.student
        paid = self._paid(fee.id)
        return {
            "schoolName": settings.SCHOOL_NAME,
            "receiptNumber": payment.receipt_number,
            "paymentDate": iso(payment.payment_date),
            "paymentMethod": payment.payment_method.value,
            "transactionId": payment.transaction_id,
            "amount": to_float(payment.amount),
            "student": {
                "id": str(student.id),
                "studentId": student.student_id,
                "name": student.user.full_name,
                "className": student.class_.name if student.class_ else None,
            },
            "fee": {
                "id": str(fee.id),
                "category": fee.fee_category.name,
                "totalAmount": to_float(fee.amount),
                "paidAmount": to_float(paid),
                "remainingAmount": to_float(ledger.remaining_amount(fee.amount, paid)),
                "status": fee.status.value,
            },
            "remarks": payment.remarks,
        }

    def history(self, student_fee_id: str, viewer: User) -> Dict:
        fee = self.get_or_404(student_fee_id, model=StudentFee, name="Student fee")
        assert_student_access(self.db, viewer, fee.student)
        payments = (
            self.db.query(Payment)
            .filter(Payment.student_fee_id == fee.id)
            .order_by(Payment.payment_date.asc())
            .all()
        )
        reversals = (
            self.db.query(PaymentReversal)
            .filter(PaymentReversal.student_fee_id == fee.id)
            .order_by(PaymentReversal.reversed_at.asc())
            .all()
        )
        paid = ledger.total_paid(p.amount for p in payments)
        return {
            "studentFeeId": str(fee.id),
            "totalAmount": to_float(fee.amount),
            "paidAmount": to_float(paid),
            "remainingAmount": to_float(ledger.remaining_amount(fee.amount, paid)),
            "status": fee.status.value,
            "payments": payments,
            "reversals": [
                {
                    "id": str(r.id),
                    "paymentId": str(r.payment_id),
                    "receiptNumber": r.receipt_number,
                    "amount": to_float(r.amount),
                    "reason": r.reason,
                    "reversedAt": iso(r.reversed_at),
                }
                for r in reversals
            ],
        }

    def statistics(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> Dict:
        query = self.db.query(Payment.payment_method, func.count(Payment.id), func.sum(Payment.amount))
        lower, upper = day_bounds(start_date, end_date)
        if lower:
            query = query.filter(Payment.payment_date >= lower)
        if upper:
            query = query.filter(Payment.payment_date < upper)
        rows = query.group_by(Payment.payment_method).all()

        today_lower, today_upper = day_bounds(today(), today())
        today_total = (
            self.db.query(func.sum(Payment.amount))
            .filter(Payment.payment_date >= today_lower, Payment.payment_date < today_upper)
            .scalar()
        )
        by_method = [
            {"paymentMethod": method.value, "count": count, "totalAmount": to_float(total)}
            for method, count, total in rows
        ]
        return {
            "totalPayments": sum(m["count"] for m in by_method),
            "totalAmount": round(sum(m["totalAmount"] for m in by_method), 2),
            "todayCollection": to_float(today_total),
            "byMethod": by_method,
        }

    def reverse(self, payment_id: str, reason: str, actor: User) -> Dict:
        payment = self.get_or_404(payment_id)
        # measured from when the payment was recorded, not the client supplied payment date
        age = utcnow() - as_utc(payment.created_at or payment.payment_date)
        if age > timedelta(days=ledger.REVERSAL_WINDOW_DAYS):
            raise AppError(f"Payments older than {ledger.REVERSAL_WINDOW_DAYS} days cannot be reversed", 400)

        fee = payment.student_fee
        with self.transaction():
            reversal = PaymentReversal(
                payment_id=payment.id,
                student_fee_id=fee.id,
                receipt_number=payment.receipt_number,
                amount=payment.amount,
                reason=reason,
                reversed_by=actor.id,
                reversed_at=utcnow(),
            )
            self.db.add(reversal)
            self.db.delete(payment)
            self.db.flush()
            remaining_paid = self._paid(fee.id)
            if fee.status != FeeStatus.waived:
                fee.status = ledger.status_from_payments(fee.amount, remaining_paid, fee.due_date, today())
            fee.updated_at = utcnow()
        logger.warning(
            "Reversed payment %s (%s) for fee %s by %s", reversal.receipt_number, reversal.amount, fee.id, actor.email
        )
        return {
            "reversalId": str(reversal.id),
            "paymentId": str(reversal.payment_id),
            "receiptNumber": reversal.receipt_number,
            "amount": to_float(reversal.amount),
            "studentFeeId": str(fee.id),
            "feeStatus": fee.status.value,
            "remainingAmount": to_float(ledger.remaining_amount(fee.amount, remaining_paid)),
        }
