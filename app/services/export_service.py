"""Render reports to PDF (reportlab), Excel (xlsxwriter) or CSV (pandas) under EXPORT_DIR."""
import logging
import os
from datetime import date
from typing import Dict, List, Optional, Tuple

import pandas as pd
import xlsxwriter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.core.config import Settings
from app.core.errors import AppError
from app.models.academics import Class, Semester
from app.models.auth import User
from app.models.exams import ReportCard
from app.models.users import Student
from app.services.base import BaseService
from app.services.fee_report_service import FeeReportService
from app.services.report_card_service import ReportCardService
from app.services.student_service import attendance_summary
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

FORMATS = {"pdf": "pdf", "excel": "xlsx", "xlsx": "xlsx", "csv": "csv"}
REPORTS = ("fee-collection", "outstanding-fees", "defaulters", "attendance", "class-performance")

Column = Tuple[str, str]


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise AppError(f"Invalid date '{value}', expected YYYY-MM-DD", 400)


def write_pdf(path: str, title: str, columns: List[Column], rows: List[Dict], summary: Dict) -> None:
    styles = getSampleStyleSheet()
    doc = SimpleDocTemplate(
        path, pagesize=landscape(A4), leftMargin=1.5 * cm, rightMargin=1.5 * cm, topMargin=1.5 * cm, bottomMargin=1.5 * cm
    )
    flow = [Paragraph(title, styles["Title"]), Spacer(1, 0.3 * cm)]
    for label, value in summary.items():
        flow.append(Paragraph(f"<b>{label}:</b> {value}", styles["Normal"]))
    flow.append(Spacer(1, 0.5 * cm))

    table_data = [[label for _, label in columns]]
    for row in rows:
        table_data.append(["" if row.get(key) is None else str(row.get(key)) for key, _ in columns])
    if len(table_data) == 1:
        flow.append(Paragraph("No records found.", styles["Italic"]))
    else:
        table = Table(table_data, repeatRows=1)
        style = TableStyle([
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#e9eefb")),
            ("LINEBELOW", (0, 0), (-1, 0), 1, colors.HexColor("#c5c9d3")),
            ("GRID", (0, 1), (-1, -1), 0.5, colors.lightgrey),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ])
        for i in range(1, len(table_data)):
            if i % 2 == 0:
                style.add("BACKGROUND", (0, i), (-1, i), colors.whitesmoke)
        table.setStyle(style)
        flow.append(table)
    doc.build(flow)


def write_excel(path: str, title: str, columns: List[Column], rows: List[Dict], summary: Dict) -> None:
    workbook = xlsxwriter.Workbook(path)
    title_format = workbook.add_format({"bold": True, "font_size": 14})
    header_format = workbook.add_format({
        "bold": True,
        "font_color": "#FFFFFF",
        "bg_color": "#4F81BD",
        "align": "center",
        "valign": "vcenter",
        "border": 1,
    })
    data_format = workbook.add_format({"border": 1, "valign": "vcenter"})

    sheet = workbook.add_worksheet("Report")
    sheet.write(0, 0, title, title_format)
    row = 1
    for label, value in summary.items():
        sheet.write(row, 0, label)
        sheet.write(row, 1, value)
        row += 1
    row += 1
    for col, (_, label) in enumerate(columns):
        sheet.write(row, col, label, header_format)
        sheet.set_column(col, col, max(12, len(label) + 4))
    for record in rows:
        row += 1
        for col, (key, _) in enumerate(columns):
            sheet.write(row, col, record.get(key), data_format)
    workbook.close()


def write_csv(path: str, columns: List[Column], rows: List[Dict]) -> None:
    frame = pd.DataFrame([[r.get(key) for key, _ in columns] for r in rows], columns=[label for _, label in columns])
    frame.to_csv(path, index=False)


class ExportService(BaseService):
    def __init__(self, db, config: Settings):
        super().__init__(db)
        self.config = config
        self.reports = FeeReportService(db)

    # report builders return (title, columns, rows, summary)

    def _fee_collection(self, start: Optional[date], end: Optional[date], **_):
        data = self.reports.collection(start, end)
        summary = {"Total collected": data["totalCollected"], "Payments": data["paymentCount"]}
        columns = [("date", "Date"), ("count", "Payments"), ("amount", "Amount")]
        return "Fee Collection Report", columns, data["daily"], summary

    def _outstanding(self, class_id=None, **_):
        data = self.reports.outstanding(class_id=class_id)
        columns = [
            ("studentId", "Student ID"), ("studentName", "Student"), ("className", "Class"),
            ("category", "Fee"), ("amount", "Amount"), ("paidAmount", "Paid"),
            ("remainingAmount", "Remaining"), ("dueDate", "Due date"), ("status", "Status"),
        ]
        summary = {"Total outstanding": data["totalOutstanding"], "Open fees": data["feeCount"]}
        return "Outstanding Fees Report", columns, data["fees"], summary

    def _defaulters(self, class_id=None, **_):
        data = self.reports.defaulters(class_id=class_id)
        columns = [
            ("studentId", "Student ID"), ("studentName", "Student"), ("className", "Class"),
            ("guardianName", "Guardian"), ("guardianPhone", "Phone"), ("overdueFees", "Overdue fees"),
            ("totalOutstanding", "Outstanding"), ("maxDaysOverdue", "Max days overdue"),
        ]
        summary = {"Defaulters": data["defaulterCount"], "Total outstanding": data["totalOutstanding"]}
        return "Fee Defaulters Report", columns, data["defaulters"], summary

    def _attendance(self, start: Optional[date], end: Optional[date], class_id=None, **_):
        query = self.db.query(Student).filter(Student.is_active.is_(True))
        if class_id:
            class_ = self.get_or_404(class_id, model=Class, name="Class")
            query = query.filter(Student.class_id == class_.id)
        rows = []
        for student in query.order_by(Student.student_id).all():
            counts = attendance_summary(self.db, student.id, start, end)
            rows.append({
                "studentId": student.student_id,
                "studentName": student.user.full_name,
                "className": student.class_.name if student.class_ else None,
                **counts,
            })
        columns = [
            ("studentId", "Student ID"), ("studentName", "Student"), ("className", "Class"),
            ("totalDays", "Days"), ("present", "Present"), ("absent", "Absent"), ("late", "Late"),
            ("excused", "Excused"), ("attendancePercentage", "Attendance %"),
        ]
        summary = {"Students": len(rows), "From": str(start or "-"), "To": str(end or "-")}
        return "Attendance Report", columns, rows, summary

    def _class_performance(self, class_id=None, semester_id=None, **_):
        if not semester_id:
            raise AppError("semesterId is required for the class-performance report", 400)
        semester = self.get_or_404(semester_id, model=Semester, name="Semester")
        query = self.db.query(ReportCard).filter(ReportCard.semester_id == semester.id)
        if class_id:
            class_ = self.get_or_404(class_id, model=Class, name="Class")
            query = query.filter(ReportCard.class_id == class_.id)
        cards = query.order_by(ReportCard.class_id, ReportCard.class_rank).all()
        rows = [
            {
                "studentId": card.student.student_id,
                "studentName": card.student.user.full_name,
                "className": card.class_.name,
                "overallPercentage": float(card.overall_percentage),
                "overallGrade": card.overall_grade,
                "classRank": card.class_rank,
                "totalStudents": card.total_students,
            }
            for card in cards
        ]
        columns = [
            ("studentId", "Student ID"), ("studentName", "Student"), ("className", "Class"),
            ("overallPercentage", "Overall %"), ("overallGrade", "Grade"), ("classRank", "Rank"),
            ("totalStudents", "Of"),
        ]
        average = round(sum(r["overallPercentage"] for r in rows) / len(rows), 2) if rows else 0.0
        summary = {"Semester": semester.name, "Report cards": len(rows), "Average %": average}
        return "Class Performance Report", columns, rows, summary

    def _render(self, slug: str, fmt: str, title: str, columns, rows, summary) -> Dict:
        ext = FORMATS.get((fmt or "").lower())
        if ext is None:
            raise AppError(f"Unsupported format '{fmt}'. Use pdf, excel or csv", 400)
        os.makedirs(self.config.EXPORT_DIR, exist_ok=True)
        filename = f"{slug}_{utcnow().strftime('%Y%m%d_%H%M%S_%f')}.{ext}"
        path = os.path.join(self.config.EXPORT_DIR, filename)
        summary = {"School": self.config.SCHOOL_NAME, "Generated": utcnow().strftime("%Y-%m-%d %H:%M UTC"), **summary}
        if ext == "pdf":
            write_pdf(path, title, columns, rows, summary)
        elif ext == "xlsx":
            write_excel(path, title, columns, rows, summary)
        else:
            write_csv(path, columns, rows)
        logger.info("Exported %s (%d rows) to %s", slug, len(rows), path)
        return {
            "filename": filename,
            "format": ext,
            "records": len(rows),
            "size": os.path.getsize(path),
            "downloadUrl": f"{self.config.API_V1_STR}/exports/download/{filename}",
        }

    def export(self, report: str, options: Dict) -> Dict:
        builders = {
            "fee-collection": self._fee_collection,
            "outstanding-fees": self._outstanding,
            "defaulters": self._defaulters,
            "attendance": self._attendance,
            "class-performance": self._class_performance,
        }
        if report not in builders:
            raise AppError(f"Unknown report '{report}'. Available: {', '.join(REPORTS)}", 404)
        title, columns, rows, summary = builders[report](
            start=parse_date(options.get("start_date")),
            end=parse_date(options.get("end_date")),
            class_id=options.get("class_id"),
            semester_id=options.get("semester_id"),
        )
        return self._render(report, options.get("format") or "pdf", title, columns, rows, summary)

    def report_card_pdf(self, card_id: str, viewer: User) -> Dict:
        detail = ReportCardService(self.db).get_detail(card_id, viewer)
        card = detail["reportCard"]
        summary = {
            "Student": f"{detail['student']['name']} ({detail['student']['studentId']})",
            "Class": detail["class"]["name"],
            "Semester": f"{detail['semester']['name']}, {detail['academicYear']['name']}",
            "Overall": f"{float(card.overall_percentage):.2f}% ({card.overall_grade})",
            "Rank": f"{card.class_rank} of {card.total_students}",
        }
        if card.remarks:
            summary["Remarks"] = card.remarks
        columns = [("subjectName", "Subject"), ("assessmentCount", "Assessments"), ("percentage", "Percentage"), ("grade", "Grade")]
        exported = self._render(f"report-card-{card.id}", "pdf", "Report Card", columns, detail["subjects"], summary)
        exported["path"] = self.resolve_download(exported["filename"])
        exported["card"] = card
        return exported

    def resolve_download(self, filename: str) -> str:
        if not filename or filename != os.path.basename(filename) or filename.startswith(".") or ".." in filename:
            logger.warning("Rejected export download path %r", filename)
            raise AppError("Invalid filename", 400)
        root = os.path.realpath(self.config.EXPORT_DIR)
        path = os.path.realpath(os.path.join(root, filename))
        if os.path.dirname(path) != root:
            raise AppError("Invalid filename", 400)
        if not os.path.isfile(path):
            raise AppError("Export file not found", 404)
        return path

    def email_export(self, report: str, options: Dict, recipients: List[str], message: Optional[str], email) -> Dict:
        exported = self.export(report, options)
        path = self.resolve_download(exported["filename"])
        subject = f"{self.config.SCHOOL_NAME} - {report.replace('-', ' ').title()} report"
        sent = bool(email) and email.send_custom_email(
            recipients, subject, message or "Please find the requested report attached.", attachments=[path]
        )
        return {**exported, "emailed": sent, "recipients": recipients}

    def email_report_card(self, card_id: str, viewer: User, email) -> Dict:
        exported = self.report_card_pdf(card_id, viewer)
        card = exported.pop("card")
        path = exported.pop("path")
        student = card.student
        recipient = student.guardian_email or student.user.email
        sent = bool(email) and email.send_report_card(
            recipient, student.user.full_name, card.semester.name, attachment_path=path
        )
        return {**exported, "emailed": sent, "recipient": recipient}
