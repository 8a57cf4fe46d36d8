from sqlalchemy import (
    Column,
    String,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import uuid
from app.core.database import Base
from app.utils.dates import utcnow


class AssessmentType(Base):
    __tablename__ = "assessment_types"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, unique=True, nullable=False)  # midterm, quiz, final...
    description = Column(Text)
    weightage = Column(Numeric(5, 2), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class Grade(Base):
    __tablename__ = "grades"
    __table_args__ = (
        UniqueConstraint(
            "student_id", "subject_id", "assessment_type_id", "semester_id",
            name="uq_grade_student_subject_assessment_semester",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    subject_id = Column(UUID(as_uuid=True), ForeignKey("subjects.id"), nullable=False)
    assessment_type_id = Column(UUID(as_uuid=True), ForeignKey("assessment_types.id"), nullable=False)
    semester_id = Column(UUID(as_uuid=True), ForeignKey("semesters.id"), nullable=False, index=True)

    marks_obtained = Column(Numeric(6, 2), nullable=False)
    total_marks = Column(Numeric(6, 2), nullable=False)
    percentage = Column(Numeric(5, 2), nullable=False)
    grade_letter = Column(String(2), nullable=False)
    recorded_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    remarks = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    student = relationship("app.models.users.Student")
    subject = relationship("app.models.academics.Subject")
    assessment_type = relationship("AssessmentType")
    semester = relationship("app.models.academics.Semester")


class ReportCard(Base):
    __tablename__ = "report_cards"
    __table_args__ = (UniqueConstraint("student_id", "semester_id", name="uq_report_card_student_semester"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    semester_id = Column(UUID(as_uuid=True), ForeignKey("semesters.id"), nullable=False)
    class_id = Column(UUID(as_uuid=True), ForeignKey("classes.id"), nullable=False)
    overall_percentage = Column(Numeric(5, 2), nullable=False)
    overall_grade = Column(String(2), nullable=False)
    class_rank = Column(Integer)
    total_students = Column(Integer)
    remarks = Column(Text)
    generated_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    generated_at = Column(DateTime(timezone=True), default=utcnow)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    student = relationship("app.models.users.Student")
    semester = relationship("app.models.academics.Semester")
    class_ = relationship("app.models.academics.Class")
