from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import Field, model_validator

from app.schemas.common import CamelModel


class AssessmentTypeCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    weightage: float = Field(..., ge=0.01, le=100)


class AssessmentTypeUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    weightage: Optional[float] = Field(None, ge=0.01, le=100)
    is_active: Optional[bool] = None


class AssessmentTypeResponse(CamelModel):
    id: UUID
    name: str
    description: Optional[str] = None
    weightage: float
    is_active: bool
    created_at: Optional[datetime] = None


class GradeCreate(CamelModel):
    student_id: UUID
    subject_id: UUID
    assessment_type_id: UUID
    semester_id: UUID
    marks_obtained: float = Field(..., ge=0)
    total_marks: float = Field(..., gt=0)
    remarks: Optional[str] = None

    @model_validator(mode="after")
    def check_marks(self):
        if self.marks_obtained > self.total_marks:
            raise ValueError("Marks obtained cannot exceed total marks")
        return self


class GradeUpdate(CamelModel):
    marks_obtained: Optional[float] = Field(None, ge=0)
    total_marks: Optional[float] = Field(None, gt=0)
    remarks: Optional[str] = None


class GradeResponse(CamelModel):
    id: UUID
    student_id: UUID
    subject_id: UUID
    assessment_type_id: UUID
    semester_id: UUID
    marks_obtained: float
    total_marks: float
    percentage: float
    grade_letter: str
    recorded_by: Optional[UUID] = None
    remarks: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReportCardCreate(CamelModel):
    student_id: UUID
    semester_id: UUID
    remarks: Optional[str] = None


class ReportCardUpdate(CamelModel):
    remarks: Optional[str] = None


class RankRecalculation(CamelModel):
    class_id: UUID
    semester_id: UUID


class ReportCardResponse(CamelModel):
    id: UUID
    student_id: UUID
    semester_id: UUID
    class_id: UUID
    overall_percentage: float
    overall_grade: str
    class_rank: Optional[int] = None
    total_students: Optional[int] = None
    remarks: Optional[str] = None
    generated_by: Optional[UUID] = None
    generated_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
