from app.schemas.common import CamelModel, dump, dump_list, ok
from app.schemas.auth import (
    TokenPayload,
    Login,
    RefreshTokenRequest,
    PasswordResetRequest,
    PasswordResetConfirm,
    ChangePassword,
    UserCreate,
    UserUpdate,
    UserBrief,
    UserResponse,
    RateLimitBlock,
    RateLimitUnblock,
)
from app.schemas.users import (
    StudentCreate,
    StudentUpdate,
    StudentBulkUpdate,
    StudentResponse,
    ClassHistoryResponse,
    TeacherCreate,
    TeacherUpdate,
    TeacherResponse,
    SubjectAssignment,
    HomeroomAssignment,
    ClassSubjectAssignment,
    StaffCreate,
    StaffUpdate,
    StaffResponse,
    ParentCreate,
    ParentUpdate,
    StudentParentLink,
    StudentParentUpdate,
    StudentParentResponse,
)
from app.schemas.academics import (
    AcademicYearCreate,
    AcademicYearUpdate,
    AcademicYearResponse,
    SemesterCreate,
    SemesterUpdate,
    SemesterResponse,
    ClassCreate,
    ClassUpdate,
    ClassResponse,
    SubjectCreate,
    SubjectUpdate,
    SubjectResponse,
    AttendanceCreate,
    AttendanceBulkCreate,
    AttendanceUpdate,
    AttendanceResponse,
)
from app.schemas.exams import (
    AssessmentTypeCreate,
    AssessmentTypeUpdate,
    AssessmentTypeResponse,
    GradeCreate,
    GradeUpdate,
    GradeResponse,
    ReportCardCreate,
    ReportCardUpdate,
    ReportCardResponse,
    RankRecalculation,
)
from app.schemas.finance import (
    FeeCategoryCreate,
    FeeCategoryUpdate,
    FeeCategoryResponse,
    FeeAssignment,
    ClassFeeAssignment,
    StudentFeeUpdate,
    FeeReminderRequest,
    PaymentCreate,
    PaymentReverse,
    PaymentResponse,
)
from app.schemas.files import FileUpdate, FileResponse, ExportRequest, ExportEmailRequest
