from sqlalchemy import (
    Column,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Enum,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import uuid
from app.core.database import Base
from app.models.enums import FeeFrequency, FeeStatus, PaymentMethod, enum_values
from app.utils.dates import utcnow


class FeeCategory(Base):
    __tablename__ = "fee_categories"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    alt_id = Column(Integer, unique=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    amount = Column(Numeric(12, 2), nullable=False)
    frequency = Column(Enum(FeeFrequency, values_callable=enum_values), nullable=False)
    is_mandatory = Column(Boolean, default=True)
    academic_year_id = Column(UUID(as_uuid=True), ForeignKey("academic_years.id"), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    academic_year = relationship("app.models.academics.AcademicYear")


class StudentFee(Base):
    __tablename__ = "student_fees"
    __table_args__ = (UniqueConstraint("student_id", "fee_category_id", name="uq_student_fee_category"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id"), nullable=False, index=True)
    fee_category_id = Column(UUID(as_uuid=True), ForeignKey("fee_categories.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)  # owed, after discount
    discount = Column(Numeric(12, 2), default=0)
    due_date = Column(Date, nullable=False)
    status = Column(Enum(FeeStatus), default=FeeStatus.pending, nullable=False)
    remarks = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    student = relationship("app.models.users.Student")
    fee_category = relationship("FeeCategory")
    payments = relationship("Payment", back_populates="student_fee")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_fee_id = Column(UUID(as_uuid=True), ForeignKey("student_fees.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    transaction_id = Column(String)
    receipt_number = Column(String, unique=True, nullable=False)
    remarks = Column(Text)
    processed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    student_fee = relationship("StudentFee", back_populates="payments")


class PaymentReversal(Base):
    __tablename__ = "payment_reversals"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    payment_id = Column(UUID(as_uuid=True), nullable=False)  # payment row is gone after reversal
    student_fee_id = Column(UUID(as_uuid=True), ForeignKey("student_fees.id"), nullable=False)
    receipt_number = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(Text, nullable=False)
    reversed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    reversed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
