"""Attendance reports, trends and dashboard statistics.

Rows are loaded once per call with the caller's visibility applied and then
folded in Python, so every grouping counts statuses the same way as the
per-student summary: present and late count as attended.
"""
import logging
import os
from collections import OrderedDict, defaultdict
from datetime import date, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, aliased

from app.core.config import Settings
from app.core.errors import AppError
from app.models.academics import Attendance, Class, Subject
from app.models.auth import User
from app.models.enums import AttendanceStatus
from app.models.users import Student
from app.services.access import scope_class_ids, scope_student_ids
from app.services.base import BaseService
from app.services.export_service import write_csv, write_excel
from app.services.grading import round2
from app.utils.dates import as_utc, iso, today, utcnow

logger = logging.getLogger(__name__)

GROUPINGS = ("student", "class", "date", "subject")
PERIODS = ("daily", "weekly", "monthly")
STAT_PERIODS = ("today", "week", "month", "semester")
EXPORT_FORMATS = ("csv", "json", "excel")
LOW_ATTENDANCE_THRESHOLD = 75.0
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

EXPORT_COLUMNS = [
    ("date", "Date"), ("studentNumber", "Student ID"), ("studentName", "Student"),
    ("className", "Class"), ("grade", "Grade"), ("section", "Section"),
    ("subjectName", "Subject"), ("status", "Status"), ("remarks", "Remarks"), ("markedAt", "Marked at"),
]


def tally(records: List[Attendance]) -> Dict:
    counts = {status.value: 0 for status in AttendanceStatus}
    for record in records:
        counts[record.status.value] += 1
    total = len(records)
    attended = counts["present"] + counts["late"]
    return {
        "totalRecords": total,
        "presentCount": counts["present"],
        "absentCount": counts["absent"],
        "lateCount": counts["late"],
        "excusedCount": counts["excused"],
        "attendancePercentage": round2(attended / total * 100) if total else 0.0,
    }


def period_start(day: date, period: str) -> date:
    if period == "weekly":
        return day - timedelta(days=day.weekday())
    if period == "monthly":
        return day.replace(day=1)
    return day


def stat_range(period: str, on: Optional[date] = None):
    """Weeks start on Sunday, semesters on January 1st or July 1st."""
    on = on or today()
    if period == "week":
        return on - timedelta(days=(on.weekday() + 1) % 7), on
    if period == "month":
        return on.replace(day=1), on
    if period == "semester":
        return on.replace(month=1 if on.month < 7 else 7, day=1), on
    return on, on


class AttendanceReportService(BaseService):
    def __init__(self, db: Session, config: Optional[Settings] = None):
        super().__init__(db)
        self.config = config

    def _records(
        self,
        viewer: User,
        start: Optional[date] = None,
        end: Optional[date] = None,
        class_id: Optional[str] = None,
        student_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        status: Optional[AttendanceStatus] = None,
        include_inactive: bool = True,
    ) -> List[Attendance]:
        student = aliased(Student)
        class_ = aliased(Class)
        query = (
            self.db.query(Attendance)
            .join(student, student.id == Attendance.student_id)
            .join(class_, class_.id == Attendance.class_id)
        )
        if start:
            query = query.filter(Attendance.date >= start)
        if end:
            query = query.filter(Attendance.date <= end)

        student_scope = scope_student_ids(self.db, viewer)
        if student_scope is not None:
            query = query.filter(Attendance.student_id.in_(student_scope))
        class_scope = scope_class_ids(self.db, viewer)
        if class_scope is not None:
            query = query.filter(Attendance.class_id.in_(class_scope))

        if class_id:
            query = query.filter(Attendance.class_id == self.get_or_404(class_id, model=Class, name="Class").id)
        if student_id:
            query = query.filter(Attendance.student_id == self.get_or_404(student_id, model=Student, name="Student").id)
        if subject_id:
            query = query.filter(Attendance.subject_id == self.get_or_404(subject_id, model=Subject, name="Subject").id)
        if status is not None:
            query = query.filter(Attendance.status == status)
        if not include_inactive:
            query = query.filter(student.is_active.is_(True), class_.is_active.is_(True))
        return query.order_by(Attendance.date, Attendance.created_at).all()

    @staticmethod
    def _check_range(start: date, end: date) -> None:
        if start > end:
            raise AppError("Start date cannot be after end date", 400)

    # groupings

    def _by_student(self, records: List[Attendance]) -> List[Dict]:
        groups = defaultdict(list)
        for record in records:
            groups[record.student_id].append(record)
        rows = []
        for items in groups.values():
            student = items[0].student
            class_ = items[0].class_
            counts = tally(items)
            rows.append({
                "studentId": str(student.id),
                "studentNumber": student.student_id,
                "studentName": student.user.full_name,
                "className": class_.name,
                "grade": class_.grade,
                "section": class_.section,
                "totalDays": counts["totalRecords"],
                "presentDays": counts["presentCount"],
                "absentDays": counts["absentCount"],
                "lateDays": counts["lateCount"],
                "excusedDays": counts["excusedCount"],
                "attendancePercentage": counts["attendancePercentage"],
            })
        return sorted(rows, key=lambda r: r["studentName"])

    def _by_class(self, records: List[Attendance]) -> List[Dict]:
        groups = defaultdict(list)
        for record in records:
            groups[record.class_id].append(record)
        rows = []
        for items in groups.values():
            class_ = items[0].class_
            rows.append({
                "classId": str(class_.id),
                "className": class_.name,
                "grade": class_.grade,
                "section": class_.section,
                "totalStudents": len({r.student_id for r in items}),
                **tally(items),
            })
        return sorted(rows, key=lambda r: (r["grade"], r["section"]))

    def _by_date(self, records: List[Attendance]) -> List[Dict]:
        groups = OrderedDict()
        for record in records:
            groups.setdefault(record.date, []).append(record)
        return [
            {"date": day.isoformat(), "totalStudents": len({r.student_id for r in items}), **tally(items)}
            for day, items in sorted(groups.items())
        ]

    def _by_subject(self, records: List[Attendance]) -> List[Dict]:
        groups = defaultdict(list)
        for record in records:
            groups[record.subject_id].append(record)
        rows = []
        for subject_id, items in groups.items():
            subject = items[0].subject
            rows.append({
                "subjectId": str(subject_id) if subject_id else "general",
                "subjectName": subject.name if subject else "General Class",
                "subjectCode": subject.code if subject else "GEN",
                "totalStudents": len({r.student_id for r in items}),
                **tally(items),
            })
        # whole-day attendance first
        return sorted(rows, key=lambda r: (r["subjectId"] != "general", r["subjectName"]))

    def _aggregations(self, records: List[Attendance]) -> Dict:
        counts = tally(records)
        return {
            "totalStudents": len({r.student_id for r in records}),
            "totalClasses": len({r.class_id for r in records}),
            "totalDays": len({r.date for r in records}),
            "totalRecords": counts["totalRecords"],
            "totalPresent": counts["presentCount"],
            "totalAbsent": counts["absentCount"],
            "totalLate": counts["lateCount"],
            "totalExcused": counts["excusedCount"],
            "overallAttendancePercentage": counts["attendancePercentage"],
        }

    def report(self, options: Dict, viewer: User) -> Dict:
        start, end = options["start_date"], options["end_date"]
        self._check_range(start, end)
        group_by = options.get("group_by") or "student"
        if group_by not in GROUPINGS:
            raise AppError(f"Invalid groupBy '{group_by}'. Use {', '.join(GROUPINGS)}", 400)

        records = self._records(
            viewer,
            start,
            end,
            class_id=options.get("class_id"),
            student_id=options.get("student_id"),
            subject_id=options.get("subject_id"),
            status=options.get("status"),
            include_inactive=options.get("include_inactive", False),
        )
        builders = {
            "student": self._by_student,
            "class": self._by_class,
            "date": self._by_date,
            "subject": self._by_subject,
        }
        data = builders[group_by](records)
        minimum = options.get("min_attendance_percentage")
        if minimum is not None and group_by == "student":
            data = [row for row in data if row["attendancePercentage"] >= minimum]

        generated = utcnow()
        return {
            "metadata": {
                "reportId": f"ATT_{generated.strftime('%Y%m%d%H%M%S%f')}",
                "reportType": "attendance",
                "title": f"Attendance Report - {group_by} wise",
                "description": f"Attendance report from {start.isoformat()} to {end.isoformat()}",
                "generatedBy": str(viewer.id),
                "generatedAt": generated.isoformat(),
            },
            "summary": {
                "totalRecords": len(data),
                "dateRange": {"startDate": start.isoformat(), "endDate": end.isoformat()},
                "filters": {
                    "classId": options.get("class_id"),
                    "studentId": options.get("student_id"),
                    "subjectId": options.get("subject_id"),
                    "status": options["status"].value if options.get("status") else None,
                    "groupBy": group_by,
                },
                "aggregations": self._aggregations(records),
            },
            "data": data,
        }

    def trends(
        self,
        viewer: User,
        start: date,
        end: date,
        period: str = "daily",
        class_id: Optional[str] = None,
        student_id: Optional[str] = None,
    ) -> Dict:
        self._check_range(start, end)
        if period not in PERIODS:
            raise AppError(f"Invalid period '{period}'. Use {', '.join(PERIODS)}", 400)
        records = self._records(viewer, start, end, class_id=class_id, student_id=student_id)

        by_period = OrderedDict()
        by_weekday = defaultdict(list)
        for record in records:
            by_period.setdefault(period_start(record.date, period), []).append(record)
            by_weekday[record.date.weekday()].append(record)

        low = [row for row in self._by_student(records) if row["attendancePercentage"] < LOW_ATTENDANCE_THRESHOLD]
        weekdays = [(weekday, tally(items)) for weekday, items in sorted(by_weekday.items())]
        return {
            "period": period,
            "trends": [{"period": key.isoformat(), **tally(items)} for key, items in sorted(by_period.items())],
            "lowAttendanceAlerts": [
                {
                    "studentId": row["studentId"],
                    "studentNumber": row["studentNumber"],
                    "studentName": row["studentName"],
                    "className": row["className"],
                    "attendancePercentage": row["attendancePercentage"],
                }
                for row in sorted(low, key=lambda r: r["attendancePercentage"])
            ],
            "dayPatterns": [
                {
                    "dayOfWeek": weekday,
                    "dayName": DAY_NAMES[weekday],
                    "totalRecords": counts["totalRecords"],
                    "presentCount": counts["presentCount"],
                    "attendancePercentage": counts["attendancePercentage"],
                }
                for weekday, counts in weekdays
            ],
        }

    def statistics(self, viewer: User, period: str = "today") -> Dict:
        if period not in STAT_PERIODS:
            raise AppError(f"Invalid period '{period}'. Use {', '.join(STAT_PERIODS)}", 400)
        start, end = stat_range(period)
        records = self._records(viewer, start, end)
        aggregations = self._aggregations(records)

        classes = sorted(self._by_class(records), key=lambda r: r["attendancePercentage"], reverse=True)
        recent = sorted(records, key=lambda r: as_utc(r.created_at) or utcnow(), reverse=True)[:10]
        return {
            "period": period,
            "dateRange": {"startDate": start.isoformat(), "endDate": end.isoformat()},
            "overview": {
                "totalStudents": aggregations["totalStudents"],
                "totalClasses": aggregations["totalClasses"],
                "totalRecords": aggregations["totalRecords"],
                "presentCount": aggregations["totalPresent"],
                "absentCount": aggregations["totalAbsent"],
                "lateCount": aggregations["totalLate"],
                "excusedCount": aggregations["totalExcused"],
                "overallAttendancePercentage": aggregations["overallAttendancePercentage"],
            },
            "topPerformingClasses": [
                {k: row[k] for k in ("classId", "className", "grade", "section", "attendancePercentage")}
                for row in classes[:5]
            ],
            "recentActivities": [
                {
                    "date": record.date.isoformat(),
                    "status": record.status.value,
                    "studentNumber": record.student.student_id,
                    "studentName": record.student.user.full_name,
                    "className": record.class_.name,
                    "markedAt": iso(as_utc(record.created_at)),
                }
                for record in recent
            ],
        }

    def export(self, fmt: str, options: Dict, viewer: User) -> Dict:
        """JSON comes back inline. CSV and Excel are written under EXPORT_DIR and returned as a path."""
        fmt = (fmt or "csv").lower()
        if fmt not in EXPORT_FORMATS:
            raise AppError("Invalid export format. Supported formats: csv, json, excel", 400)
        start, end = options.get("start_date"), options.get("end_date")
        if start and end:
            self._check_range(start, end)

        records = self._records(
            viewer, start, end,
            class_id=options.get("class_id"),
            student_id=options.get("student_id"),
            status=options.get("status"),
        )
        records.sort(key=lambda r: (-r.date.toordinal(), r.student.user.full_name))
        rows = [
            {
                "date": record.date.isoformat(),
                "studentNumber": record.student.student_id,
                "studentName": record.student.user.full_name,
                "className": record.class_.name,
                "grade": record.class_.grade,
                "section": record.class_.section,
                "subjectName": record.subject.name if record.subject else "General",
                "status": record.status.value,
                "remarks": record.remarks,
                "markedAt": iso(as_utc(record.created_at)),
            }
            for record in records
        ]
        generated = utcnow()
        if fmt == "json":
            return {
                "data": rows,
                "exportInfo": {"format": "json", "recordCount": len(rows), "generatedAt": generated.isoformat()},
            }

        ext = "xlsx" if fmt == "excel" else "csv"
        os.makedirs(self.config.EXPORT_DIR, exist_ok=True)
        filename = f"attendance_report_{generated.strftime('%Y%m%d_%H%M%S_%f')}.{ext}"
        path = os.path.join(self.config.EXPORT_DIR, filename)
        if ext == "xlsx":
            summary = {"Records": len(rows), "From": iso(start) or "-", "To": iso(end) or "-"}
            write_excel(path, "Attendance Export", EXPORT_COLUMNS, rows, summary)
        else:
            write_csv(path, EXPORT_COLUMNS, rows)
        logger.info("Exported %d attendance records to %s", len(rows), path)
        return {"path": path, "filename": filename, "format": ext, "records": len(rows)}
