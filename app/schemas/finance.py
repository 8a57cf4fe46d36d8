from datetime import date, datetime, timedelta
from typing import List, Optional
from uuid import UUID

from pydantic import Field, field_validator

from app.models.enums import FeeFrequency, FeeStatus, PaymentMethod
from app.schemas.common import CamelModel
from app.utils.dates import as_utc, utcnow


class FeeCategoryCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    amount: float = Field(..., gt=0)
    frequency: FeeFrequency
    is_mandatory: bool = True
    academic_year_id: UUID


class FeeCategoryUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    amount: Optional[float] = Field(None, gt=0)
    frequency: Optional[FeeFrequency] = None
    is_mandatory: Optional[bool] = None


class FeeCategoryResponse(CamelModel):
    id: UUID
    alt_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    amount: float
    frequency: FeeFrequency
    is_mandatory: bool
    academic_year_id: UUID
    is_active: bool
    created_at: Optional[datetime] = None


class FeeAssignment(CamelModel):
    fee_category_id: UUID
    student_ids: List[UUID] = Field(..., min_length=1)
    due_date: date
    discount: float = Field(0, ge=0)


class ClassFeeAssignment(CamelModel):
    fee_category_id: UUID
    class_id: UUID
    due_date: date
    discount: float = Field(0, ge=0)


class StudentFeeUpdate(CamelModel):
    discount: Optional[float] = Field(None, ge=0)
    due_date: Optional[date] = None
    status: Optional[FeeStatus] = None
    remarks: Optional[str] = None


class PaymentCreate(CamelModel):
    student_fee_id: UUID
    amount: float
    payment_method: PaymentMethod
    payment_date: Optional[datetime] = None
    transaction_id: Optional[str] = None
    remarks: Optional[str] = None

    @field_validator("payment_date")
    @classmethod
    def not_in_future(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and as_utc(value) > utcnow() + timedelta(minutes=5):
            raise ValueError("Payment date cannot be in the future")
        return value


class PaymentReverse(CamelModel):
    reason: str = Field(..., min_length=10, max_length=500)


class PaymentResponse(CamelModel):
    id: UUID
    student_fee_id: UUID
    amount: float
    payment_date: datetime
    payment_method: PaymentMethod
    transaction_id: Optional[str] = None
    receipt_number: str
    remarks: Optional[str] = None
    processed_by: Optional[UUID] = None
    created_at: Optional[datetime] = None


class FeeReminderRequest(CamelModel):
    student_fee_ids: Optional[List[UUID]] = None
