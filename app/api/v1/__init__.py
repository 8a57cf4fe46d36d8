from fastapi import APIRouter
from app.api.v1.auth import router as auth_router
from app.api.v1.users import router as users_router
from app.api.v1.students import router as students_router
from app.api.v1.teachers import router as teachers_router
from app.api.v1.staff import router as staff_router
from app.api.v1.parents import router as parents_router
from app.api.v1.classes import router as classes_router
from app.api.v1.subjects import router as subjects_router
from app.api.v1.academic_years import router as academic_years_router
from app.api.v1.semesters import router as semesters_router
from app.api.v1.assessment_types import router as assessment_types_router
from app.api.v1.grades import router as grades_router
from app.api.v1.report_cards import router as report_cards_router
from app.api.v1.attendance import router as attendance_router
from app.api.v1.attendance_reports import router as attendance_reports_router
from app.api.v1.fees import router as fees_router
from app.api.v1.fee_reports import router as fee_reports_router
from app.api.v1.payments import router as payments_router
from app.api.v1.files import router as files_router
from app.api.v1.exports import router as exports_router
from app.api.v1.cache import router as cache_router
from app.api.v1.monitoring import router as monitoring_router
from app.api.v1.audit import router as audit_router
from app.api.v1.health import router as health_router

api_router = APIRouter()
api_router.include_router(auth_router, prefix="/auth", tags=["Auth"])
api_router.include_router(users_router, prefix="/users", tags=["Users"])
api_router.include_router(students_router, prefix="/students", tags=["Students"])
api_router.include_router(teachers_router, prefix="/teachers", tags=["Teachers"])
api_router.include_router(staff_router, prefix="/staff", tags=["Staff"])
api_router.include_router(parents_router, prefix="/parents", tags=["Parents"])
api_router.include_router(classes_router, prefix="/classes", tags=["Classes"])
api_router.include_router(subjects_router, prefix="/subjects", tags=["Subjects"])
api_router.include_router(academic_years_router, prefix="/academic-years", tags=["Academic Years"])
api_router.include_router(semesters_router, prefix="/semesters", tags=["Semesters"])
api_router.include_router(assessment_types_router, prefix="/assessment-types", tags=["Assessment Types"])
api_router.include_router(grades_router, prefix="/grades", tags=["Grades"])
api_router.include_router(report_cards_router, prefix="/report-cards", tags=["Report Cards"])
api_router.include_router(attendance_router, prefix="/attendance", tags=["Attendance"])
api_router.include_router(attendance_reports_router, prefix="/attendance-reports", tags=["Attendance Reports"])
api_router.include_router(fees_router, prefix="/fees", tags=["Fees"])
api_router.include_router(fee_reports_router, prefix="/fee-reports", tags=["Fee Reports"])
api_router.include_router(payments_router, prefix="/payments", tags=["Payments"])
api_router.include_router(files_router, prefix="/files", tags=["Files"])
api_router.include_router(exports_router, prefix="/exports", tags=["Exports"])
api_router.include_router(cache_router, prefix="/cache", tags=["Cache"])
api_router.include_router(monitoring_router, prefix="/monitoring", tags=["Monitoring"])
api_router.include_router(audit_router, prefix="/audit", tags=["Audit"])

__all__ = ["api_router", "health_router"]
