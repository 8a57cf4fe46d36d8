"""Read-only fee reports. Each returns plain rows so the export layer can render them."""
import logging
from collections import OrderedDict, defaultdict
from datetime import date, timedelta
from typing import Dict, Optional

from app.models.academics import Class
from app.models.enums import FeeStatus, PaymentMethod
from app.models.finance import FeeCategory, Payment, StudentFee
from app.models.users import Student
from app.services import ledger
from app.services.base import BaseService, to_float
from app.services.fee_service import paid_by_fee
from app.services.payment_service import day_bounds
from app.utils.dates import as_utc, iso, today

logger = logging.getLogger(__name__)


class FeeReportService(BaseService):
    def collection(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        payment_method: Optional[PaymentMethod] = None,
    ) -> Dict:
        query = (
            self.db.query(Payment, FeeCategory.name)
            .join(StudentFee, StudentFee.id == Payment.student_fee_id)
            .join(FeeCategory, FeeCategory.id == StudentFee.fee_category_id)
        )
        lower, upper = day_bounds(start_date, end_date)
        if lower:
            query = query.filter(Payment.payment_date >= lower)
        if upper:
            query = query.filter(Payment.payment_date < upper)
        if payment_method is not None:
            query = query.filter(Payment.payment_method == payment_method)

        by_day: Dict[str, Dict] = OrderedDict()
        by_method = defaultdict(lambda: {"count": 0, "amount": 0.0})
        by_category = defaultdict(lambda: {"count": 0, "amount": 0.0})
        total = 0.0
        rows = query.order_by(Payment.payment_date.asc()).all()
        for payment, category in rows:
            amount = to_float(payment.amount)
            day = as_utc(payment.payment_date).date().isoformat()
            bucket = by_day.setdefault(day, {"date": day, "count": 0, "amount": 0.0})
            bucket["count"] += 1
            bucket["amount"] += amount
            by_method[payment.payment_method.value]["count"] += 1
            by_method[payment.payment_method.value]["amount"] += amount
            by_category[category]["count"] += 1
            by_category[category]["amount"] += amount
            total += amount

        return {
            "startDate": iso(start_date),
            "endDate": iso(end_date),
            "totalCollected": round(total, 2),
            "paymentCount": len(rows),
            "daily": [{**d, "amount": round(d["amount"], 2)} for d in by_day.values()],
            "byMethod": [
                {"paymentMethod": k, "count": v["count"], "amount": round(v["amount"], 2)} for k, v in by_method.items()
            ],
            "byCategory": [
                {"category": k, "count": v["count"], "amount": round(v["amount"], 2)} for k, v in by_category.items()
            ],
        }

    def _open_fees(self, class_id: Optional[str] = None, fee_category_id: Optional[str] = None):
        query = (
            self.db.query(StudentFee)
            .join(Student, Student.id == StudentFee.student_id)
            .filter(StudentFee.status.notin_([FeeStatus.paid, FeeStatus.waived]))
        )
        if class_id:
            class_ = self.get_or_404(class_id, model=Class, name="Class")
            query = query.filter(Student.class_id == class_.id)
        if fee_category_id:
            category = self.get_or_404(fee_category_id, model=FeeCategory, name="Fee category")
            query = query.filter(StudentFee.fee_category_id == category.id)
        fees = query.all()
        return fees, paid_by_fee(self.db, [f.id for f in fees])

    def outstanding(self, class_id: Optional[str] = None, fee_category_id: Optional[str] = None) -> Dict:
        fees, paid = self._open_fees(class_id, fee_category_id)
        by_class = defaultdict(lambda: {"students": set(), "fees": 0, "outstanding": 0.0})
        by_category = defaultdict(lambda: {"fees": 0, "outstanding": 0.0})
        rows = []
        for fee in fees:
            remaining = to_float(ledger.remaining_amount(fee.amount, paid.get(fee.id, 0)))
            class_name = fee.student.class_.name if fee.student.class_ else "Unassigned"
            by_class[class_name]["students"].add(fee.student_id)
            by_class[class_name]["fees"] += 1
            by_class[class_name]["outstanding"] += remaining
            by_category[fee.fee_category.name]["fees"] += 1
            by_category[fee.fee_category.name]["outstanding"] += remaining
            rows.append(
                {
                    "studentId": fee.student.student_id,
                    "studentName": fee.student.user.full_name,
                    "className": class_name,
                    "category": fee.fee_category.name,
                    "amount": to_float(fee.amount),
                    "paidAmount": to_float(paid.get(fee.id, 0)),
                    "remainingAmount": remaining,
                    "dueDate": iso(fee.due_date),
                    "status": fee.status.value,
                }
            )
        return {
            "totalOutstanding": round(sum(r["remainingAmount"] for r in rows), 2),
            "feeCount": len(rows),
            "byClass": [
                {"className": k, "studentCount": len(v["students"]), "feeCount": v["fees"], "outstanding": round(v["outstanding"], 2)}
                for k, v in sorted(by_class.items())
            ],
            "byCategory": [
                {"category": k, "feeCount": v["fees"], "outstanding": round(v["outstanding"], 2)}
                for k, v in sorted(by_category.items())
            ],
            "fees": rows,
        }

    def defaulters(self, min_days_overdue: int = 0, class_id: Optional[str] = None) -> Dict:
        on = today()
        fees, paid = self._open_fees(class_id)
        students: Dict = OrderedDict()
        for fee in fees:
            days_overdue = (on - fee.due_date).days
            if days_overdue <= 0 or days_overdue < min_days_overdue:
                continue
            remaining = to_float(ledger.remaining_amount(fee.amount, paid.get(fee.id, 0)))
            entry = students.setdefault(
                fee.student_id,
                {
                    "studentId": fee.student.student_id,
                    "studentName": fee.student.user.full_name,
                    "className": fee.student.class_.name if fee.student.class_ else None,
                    "guardianName": fee.student.guardian_name,
                    "guardianPhone": fee.student.guardian_phone,
                    "overdueFees": 0,
                    "totalOutstanding": 0.0,
                    "maxDaysOverdue": 0,
                },
            )
            entry["overdueFees"] += 1
            entry["totalOutstanding"] = round(entry["totalOutstanding"] + remaining, 2)
            entry["maxDaysOverdue"] = max(entry["maxDaysOverdue"], days_overdue)
        rows = sorted(students.values(), key=lambda r: r["totalOutstanding"], reverse=True)
        return {
            "minDaysOverdue": min_days_overdue,
            "defaulterCount": len(rows),
            "totalOutstanding": round(sum(r["totalOutstanding"] for r in rows), 2),
            "defaulters": rows,
        }

    def payment_analysis(self, months: int = 12) -> Dict:
        """Monthly collection trend over the last ``months`` calendar months."""
        months = min(max(months, 1), 36)
        on = today()
        first = date(on.year, on.month, 1)
        for _ in range(months - 1):
            first = (first - timedelta(days=1)).replace(day=1)
        lower, _ = day_bounds(first, None)
        payments = self.db.query(Payment).filter(Payment.payment_date >= lower).all()

        trend: Dict[str, Dict] = OrderedDict()
        cursor = first
        while cursor <= on:
            key = cursor.strftime("%Y-%m")
            trend[key] = {"month": key, "count": 0, "amount": 0.0}
            cursor = (cursor.replace(day=28) + timedelta(days=4)).replace(day=1)
        methods = defaultdict(float)
        for payment in payments:
            key = as_utc(payment.payment_date).strftime("%Y-%m")
            if key in trend:
                trend[key]["count"] += 1
                trend[key]["amount"] += to_float(payment.amount)
            methods[payment.payment_method.value] += to_float(payment.amount)

        series = [{**m, "amount": round(m["amount"], 2)} for m in trend.values()]
        total = sum(m["amount"] for m in series)
        return {
            "months": months,
            "totalCollected": round(total, 2),
            "averageMonthly": round(total / len(series), 2) if series else 0.0,
            "trend": series,
            "byMethod": [{"paymentMethod": k, "amount": round(v, 2)} for k, v in methods.items()],
        }
