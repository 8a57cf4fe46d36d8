from app.core.database import Base
from app.models.auth import User, UserSession, PasswordResetOTP, LoginAttempt, RateLimitEntry
from app.models.users import (
    Student,
    StudentClassHistory,
    StudentParent,
    Teacher,
    TeacherSubject,
    Staff,
)
from app.models.academics import (
    AcademicYear,
    Semester,
    Class,
    Subject,
    ClassSubject,
    Attendance,
)
from app.models.exams import AssessmentType, Grade, ReportCard
from app.models.finance import FeeCategory, StudentFee, Payment, PaymentReversal
from app.models.files import FileRecord
from app.models.enums import (
    UserRole,
    RelationshipType,
    AttendanceStatus,
    FeeFrequency,
    FeeStatus,
    PaymentMethod,
)
