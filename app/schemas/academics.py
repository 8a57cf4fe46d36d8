from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import Field

from app.models.enums import AttendanceStatus
from app.schemas.common import CamelModel


class AcademicYearCreate(CamelModel):
    name: str = Field(..., min_length=1)
    start_date: date
    end_date: date
    is_active: bool = True


class AcademicYearUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None


class AcademicYearResponse(CamelModel):
    id: UUID
    alt_id: Optional[int] = None
    name: str
    start_date: date
    end_date: date
    is_active: bool
    created_at: Optional[datetime] = None


class SemesterCreate(CamelModel):
    academic_year_id: UUID
    name: str = Field(..., min_length=1)
    start_date: date
    end_date: date
    is_active: bool = True


class SemesterUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None


class SemesterResponse(CamelModel):
    id: UUID
    alt_id: Optional[int] = None
    academic_year_id: UUID
    name: str
    start_date: date
    end_date: date
    is_active: bool
    created_at: Optional[datetime] = None


class ClassCreate(CamelModel):
    name: str = Field(..., min_length=1)
    grade: str = Field(..., min_length=1)
    section: str = Field(..., min_length=1)
    academic_year_id: UUID
    teacher_id: Optional[UUID] = None
    capacity: int = Field(30, ge=1, le=200)
    room: Optional[str] = None
    description: Optional[str] = None


class ClassUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    grade: Optional[str] = Field(None, min_length=1)
    section: Optional[str] = Field(None, min_length=1)
    capacity: Optional[int] = Field(None, ge=1, le=200)
    room: Optional[str] = None
    description: Optional[str] = None


class ClassResponse(CamelModel):
    id: UUID
    alt_id: Optional[int] = None
    name: str
    grade: str
    section: str
    academic_year_id: UUID
    teacher_id: Optional[UUID] = None
    capacity: int
    current_enrollment: int
    room: Optional[str] = None
    description: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None


class SubjectCreate(CamelModel):
    name: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1, max_length=20)
    description: Optional[str] = None
    credit_hours: int = Field(1, ge=1, le=10)


class SubjectUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    description: Optional[str] = None
    credit_hours: Optional[int] = Field(None, ge=1, le=10)


class SubjectResponse(CamelModel):
    id: UUID
    alt_id: Optional[int] = None
    name: str
    code: str
    description: Optional[str] = None
    credit_hours: int
    is_active: bool
    created_at: Optional[datetime] = None


class AttendanceCreate(CamelModel):
    student_id: UUID
    class_id: UUID
    subject_id: Optional[UUID] = None
    date: date
    status: AttendanceStatus
    remarks: Optional[str] = None


class AttendanceRecordIn(CamelModel):
    student_id: UUID
    status: AttendanceStatus
    remarks: Optional[str] = None


class AttendanceBulkCreate(CamelModel):
    class_id: UUID
    subject_id: Optional[UUID] = None
    date: date
    records: List[AttendanceRecordIn] = Field(..., min_length=1)


class AttendanceUpdate(CamelModel):
    status: Optional[AttendanceStatus] = None
    remarks: Optional[str] = None


class AttendanceResponse(CamelModel):
    id: UUID
    student_id: UUID
    class_id: UUID
    subject_id: Optional[UUID] = None
    date: date
    status: AttendanceStatus
    marked_by: Optional[UUID] = None
    remarks: Optional[str] = None
    created_at: Optional[datetime] = None
