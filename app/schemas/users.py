from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import EmailStr, Field

from app.models.enums import RelationshipType
from app.schemas.auth import UserBase, UserBrief
from app.schemas.common import CamelModel


class ClassBrief(CamelModel):
    id: UUID
    name: str
    grade: str
    section: str


# Students

class StudentCreate(UserBase):
    password: Optional[str] = Field(None, min_length=8)
    student_id: str = Field(..., min_length=1)
    class_id: UUID
    enrollment_date: date
    guardian_name: Optional[str] = None
    guardian_phone: Optional[str] = None
    guardian_email: Optional[EmailStr] = None
    emergency_contact: Optional[str] = None
    medical_info: Optional[str] = None


class StudentUpdate(CamelModel):
    first_name: Optional[str] = Field(None, min_length=2)
    last_name: Optional[str] = Field(None, min_length=2)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    class_id: Optional[UUID] = None
    guardian_name: Optional[str] = None
    guardian_phone: Optional[str] = None
    guardian_email: Optional[EmailStr] = None
    emergency_contact: Optional[str] = None
    medical_info: Optional[str] = None


class StudentBulkUpdate(CamelModel):
    student_ids: List[UUID] = Field(..., min_length=1)
    is_active: Optional[bool] = None
    class_id: Optional[UUID] = None


class StudentResponse(CamelModel):
    id: UUID
    alt_id: Optional[int] = None
    user_id: UUID
    student_id: str
    class_id: Optional[UUID] = None
    enrollment_date: date
    guardian_name: Optional[str] = None
    guardian_phone: Optional[str] = None
    guardian_email: Optional[str] = None
    emergency_contact: Optional[str] = None
    medical_info: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[UserBrief] = None
    class_: Optional[ClassBrief] = Field(None, alias="class")


class ClassHistoryResponse(CamelModel):
    id: UUID
    class_id: UUID
    start_date: date
    end_date: Optional[date] = None
    reason: Optional[str] = None
    class_: Optional[ClassBrief] = Field(None, alias="class")


# Teachers

class TeacherCreate(UserBase):
    password: str = Field(..., min_length=8)
    employee_id: str = Field(..., min_length=1)
    qualification: Optional[str] = None
    experience_years: int = Field(0, ge=0)
    specialization: Optional[str] = None
    joining_date: date
    salary: Optional[float] = Field(None, ge=0)


class TeacherUpdate(CamelModel):
    first_name: Optional[str] = Field(None, min_length=2)
    last_name: Optional[str] = Field(None, min_length=2)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    qualification: Optional[str] = None
    experience_years: Optional[int] = Field(None, ge=0)
    specialization: Optional[str] = None
    salary: Optional[float] = Field(None, ge=0)


class TeacherResponse(CamelModel):
    id: UUID
    alt_id: Optional[int] = None
    user_id: UUID
    employee_id: str
    qualification: Optional[str] = None
    experience_years: int = 0
    specialization: Optional[str] = None
    joining_date: date
    salary: Optional[float] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[UserBrief] = None


class SubjectAssignment(CamelModel):
    teacher_id: UUID
    subject_id: UUID


class HomeroomAssignment(CamelModel):
    teacher_id: UUID
    class_id: UUID


class ClassSubjectAssignment(CamelModel):
    teacher_id: UUID
    class_id: UUID
    subject_id: UUID


# Staff

class StaffCreate(UserBase):
    password: str = Field(..., min_length=8)
    employee_id: str = Field(..., min_length=1)
    department: str = Field(..., min_length=1)
    position: str = Field(..., min_length=1)
    joining_date: date
    salary: Optional[float] = Field(None, ge=0)
    responsibilities: Optional[str] = None


class StaffUpdate(CamelModel):
    first_name: Optional[str] = Field(None, min_length=2)
    last_name: Optional[str] = Field(None, min_length=2)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    department: Optional[str] = Field(None, min_length=1)
    position: Optional[str] = Field(None, min_length=1)
    salary: Optional[float] = Field(None, ge=0)
    responsibilities: Optional[str] = None


class StaffResponse(CamelModel):
    id: UUID
    alt_id: Optional[int] = None
    user_id: UUID
    employee_id: str
    department: str
    position: str
    joining_date: date
    salary: Optional[float] = None
    responsibilities: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    user: Optional[UserBrief] = None


# Parents

class ParentCreate(CamelModel):
    first_name: str = Field(..., min_length=2)
    last_name: str = Field(..., min_length=2)
    email: EmailStr
    password: str = Field(..., min_length=8)
    phone: Optional[str] = None
    address: Optional[str] = None


class ParentUpdate(CamelModel):
    first_name: Optional[str] = Field(None, min_length=2)
    last_name: Optional[str] = Field(None, min_length=2)
    phone: Optional[str] = None
    address: Optional[str] = None


class StudentParentLink(CamelModel):
    student_id: UUID
    parent_user_id: UUID
    relationship_type: RelationshipType
    is_primary: bool = False


class StudentParentUpdate(CamelModel):
    relationship_type: Optional[RelationshipType] = None
    is_primary: Optional[bool] = None


class StudentParentResponse(CamelModel):
    id: UUID
    student_id: UUID
    parent_user_id: UUID
    relationship_type: RelationshipType
    is_primary: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
