"""initial school schema

Revision ID: a1f4c2e9b7d3
Revises:
Create Date: 2026-10-19 09:12:44.318502

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "a1f4c2e9b7d3"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = sa.Enum("admin", "teacher", "student", "parent", "staff", name="userrole")
relationship_type = sa.Enum("father", "mother", "guardian", "other", name="relationshiptype")
attendance_status = sa.Enum("present", "absent", "late", "excused", name="attendancestatus")
fee_frequency = sa.Enum("monthly", "quarterly", "semester", "annual", "one-time", name="feefrequency")
fee_status = sa.Enum("pending", "partial", "paid", "overdue", "waived", name="feestatus")
payment_method = sa.Enum("cash", "card", "bank_transfer", "cheque", "online", "upi", name="paymentmethod")


def _uuid(name, *args, **kwargs):
    return sa.Column(name, postgresql.UUID(as_uuid=True), *args, **kwargs)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        _uuid("id", primary_key=True),
        sa.Column("alt_id", sa.Integer(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=False),
        sa.Column("last_name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("role", user_role, nullable=False),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_users_alt_id"), "users", ["alt_id"], unique=True)
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "user_sessions",
        _uuid("id", primary_key=True),
        _uuid("user_id", sa.ForeignKey("users.id"), nullable=False),
        sa.Column("refresh_token", sa.String(), nullable=False),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("ip_address", sa.String(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index(op.f("ix_user_sessions_refresh_token"), "user_sessions", ["refresh_token"], unique=True)

    op.create_table(
        "password_reset_otps",
        _uuid("id", primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("otp_code", sa.String(length=6), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index(op.f("ix_password_reset_otps_email"), "password_reset_otps", ["email"])

    op.create_table(
        "login_attempts",
        _uuid("id", primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("ip_address", sa.String(), nullable=False),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("attempted_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(op.f("ix_login_attempts_email"), "login_attempts", ["email"])
    op.create_index(op.f("ix_login_attempts_ip_address"), "login_attempts", ["ip_address"])
    op.create_index(op.f("ix_login_attempts_attempted_at"), "login_attempts", ["attempted_at"])

    op.create_table(
        "rate_limit_entries",
        _uuid("id", primary_key=True),
        sa.Column("identifier", sa.String(), nullable=False),
        sa.Column("endpoint", sa.String(), nullable=False),
        sa.Column("request_count", sa.Integer(), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_blocked", sa.Boolean(), nullable=True),
        sa.Column("blocked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("block_reason", sa.String(), nullable=True),
        sa.Column("last_request", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.UniqueConstraint("identifier", "endpoint", name="uq_rate_limit_identifier_endpoint"),
    )

    op.create_table(
        "academic_years",
        _uuid("id", primary_key=True),
        sa.Column("alt_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_academic_years_alt_id"), "academic_years", ["alt_id"], unique=True)

    op.create_table(
        "semesters",
        _uuid("id", primary_key=True),
        sa.Column("alt_id", sa.Integer(), nullable=True),
        _uuid("academic_year_id", sa.ForeignKey("academic_years.id"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("academic_year_id", "name", name="uq_semester_year_name"),
    )
    op.create_index(op.f("ix_semesters_alt_id"), "semesters", ["alt_id"], unique=True)

    op.create_table(
        "subjects",
        _uuid("id", primary_key=True),
        sa.Column("alt_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("code", sa.String(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("credit_hours", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_subjects_alt_id"), "subjects", ["alt_id"], unique=True)

    op.create_table(
        "teachers",
        _uuid("id", primary_key=True),
        sa.Column("alt_id", sa.Integer(), nullable=True),
        _uuid("user_id", sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("employee_id", sa.String(), nullable=False, unique=True),
        sa.Column("qualification", sa.Text(), nullable=True),
        sa.Column("experience_years", sa.Integer(), nullable=True),
        sa.Column("specialization", sa.String(), nullable=True),
        sa.Column("joining_date", sa.Date(), nullable=False),
        sa.Column("salary", sa.Numeric(12, 2), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_teachers_alt_id"), "teachers", ["alt_id"], unique=True)

    op.create_table(
        "staff",
        _uuid("id", primary_key=True),
        sa.Column("alt_id", sa.Integer(), nullable=True),
        _uuid("user_id", sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("employee_id", sa.String(), nullable=False, unique=True),
        sa.Column("department", sa.String(), nullable=False),
        sa.Column("position", sa.String(), nullable=False),
        sa.Column("joining_date", sa.Date(), nullable=False),
        sa.Column("salary", sa.Numeric(12, 2), nullable=True),
        sa.Column("responsibilities", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_staff_alt_id"), "staff", ["alt_id"], unique=True)

    op.create_table(
        "teacher_subjects",
        _uuid("id", primary_key=True),
        _uuid("teacher_id", sa.ForeignKey("teachers.id"), nullable=False),
        _uuid("subject_id", sa.ForeignKey("subjects.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.UniqueConstraint("teacher_id", "subject_id", name="uq_teacher_subject"),
    )

    op.create_table(
        "classes",
        _uuid("id", primary_key=True),
        sa.Column("alt_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("grade", sa.String(), nullable=False),
        sa.Column("section", sa.String(), nullable=False),
        _uuid("teacher_id", sa.ForeignKey("teachers.id"), nullable=True),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("current_enrollment", sa.Integer(), nullable=False),
        _uuid("academic_year_id", sa.ForeignKey("academic_years.id"), nullable=False),
        sa.Column("room", sa.String(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_classes_alt_id"), "classes", ["alt_id"], unique=True)

    op.create_table(
        "class_subjects",
        _uuid("id", primary_key=True),
        _uuid("class_id", sa.ForeignKey("classes.id"), nullable=False),
        _uuid("subject_id", sa.ForeignKey("subjects.id"), nullable=False),
        _uuid("teacher_id", sa.ForeignKey("teachers.id"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("class_id", "subject_id", name="uq_class_subject"),
    )

    op.create_table(
        "students",
        _uuid("id", primary_key=True),
        sa.Column("alt_id", sa.Integer(), nullable=True),
        _uuid("user_id", sa.ForeignKey("users.id"), nullable=False, unique=True),
        sa.Column("student_id", sa.String(), nullable=False, unique=True),
        _uuid("class_id", sa.ForeignKey("classes.id"), nullable=True),
        sa.Column("enrollment_date", sa.Date(), nullable=False),
        sa.Column("guardian_name", sa.String(), nullable=True),
        sa.Column("guardian_phone", sa.String(), nullable=True),
        sa.Column("guardian_email", sa.String(), nullable=True),
        sa.Column("emergency_contact", sa.String(), nullable=True),
        sa.Column("medical_info", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_students_alt_id"), "students", ["alt_id"], unique=True)

    op.create_table(
        "student_class_history",
        _uuid("id", primary_key=True),
        _uuid("student_id", sa.ForeignKey("students.id"), nullable=False),
        _uuid("class_id", sa.ForeignKey("classes.id"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index(op.f("ix_student_class_history_student_id"), "student_class_history", ["student_id"])

    op.create_table(
        "student_parents",
        _uuid("id", primary_key=True),
        _uuid("student_id", sa.ForeignKey("students.id"), nullable=False),
        _uuid("parent_user_id", sa.ForeignKey("users.id"), nullable=False),
        sa.Column("relationship_type", relationship_type, nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "parent_user_id", name="uq_student_parent"),
    )

    op.create_table(
        "attendance",
        _uuid("id", primary_key=True),
        _uuid("student_id", sa.ForeignKey("students.id"), nullable=False),
        _uuid("class_id", sa.ForeignKey("classes.id"), nullable=False),
        _uuid("subject_id", sa.ForeignKey("subjects.id"), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("status", attendance_status, nullable=False),
        _uuid("marked_by", sa.ForeignKey("users.id"), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_attendance_student_id"), "attendance", ["student_id"])
    op.create_index(op.f("ix_attendance_date"), "attendance", ["date"])
    op.create_index(
        "uq_attendance_daily",
        "attendance",
        ["student_id", "class_id", "date"],
        unique=True,
        postgresql_where=sa.text("subject_id IS NULL"),
    )
    op.create_index(
        "uq_attendance_subject",
        "attendance",
        ["student_id", "class_id", "subject_id", "date"],
        unique=True,
        postgresql_where=sa.text("subject_id IS NOT NULL"),
    )

    op.create_table(
        "assessment_types",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("weightage", sa.Numeric(5, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "grades",
        _uuid("id", primary_key=True),
        _uuid("student_id", sa.ForeignKey("students.id"), nullable=False),
        _uuid("subject_id", sa.ForeignKey("subjects.id"), nullable=False),
        _uuid("assessment_type_id", sa.ForeignKey("assessment_types.id"), nullable=False),
        _uuid("semester_id", sa.ForeignKey("semesters.id"), nullable=False),
        sa.Column("marks_obtained", sa.Numeric(6, 2), nullable=False),
        sa.Column("total_marks", sa.Numeric(6, 2), nullable=False),
        sa.Column("percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("grade_letter", sa.String(length=2), nullable=False),
        _uuid("recorded_by", sa.ForeignKey("users.id"), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "student_id", "subject_id", "assessment_type_id", "semester_id",
            name="uq_grade_student_subject_assessment_semester",
        ),
    )
    op.create_index(op.f("ix_grades_student_id"), "grades", ["student_id"])
    op.create_index(op.f("ix_grades_semester_id"), "grades", ["semester_id"])

    op.create_table(
        "report_cards",
        _uuid("id", primary_key=True),
        _uuid("student_id", sa.ForeignKey("students.id"), nullable=False),
        _uuid("semester_id", sa.ForeignKey("semesters.id"), nullable=False),
        _uuid("class_id", sa.ForeignKey("classes.id"), nullable=False),
        sa.Column("overall_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("overall_grade", sa.String(length=2), nullable=False),
        sa.Column("class_rank", sa.Integer(), nullable=True),
        sa.Column("total_students", sa.Integer(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _uuid("generated_by", sa.ForeignKey("users.id"), nullable=True),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "semester_id", name="uq_report_card_student_semester"),
    )
    op.create_index(op.f("ix_report_cards_student_id"), "report_cards", ["student_id"])

    op.create_table(
        "fee_categories",
        _uuid("id", primary_key=True),
        sa.Column("alt_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("frequency", fee_frequency, nullable=False),
        sa.Column("is_mandatory", sa.Boolean(), nullable=True),
        _uuid("academic_year_id", sa.ForeignKey("academic_years.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_fee_categories_alt_id"), "fee_categories", ["alt_id"], unique=True)

    op.create_table(
        "student_fees",
        _uuid("id", primary_key=True),
        _uuid("student_id", sa.ForeignKey("students.id"), nullable=False),
        _uuid("fee_category_id", sa.ForeignKey("fee_categories.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount", sa.Numeric(12, 2), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", fee_status, nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "fee_category_id", name="uq_student_fee_category"),
    )
    op.create_index(op.f("ix_student_fees_student_id"), "student_fees", ["student_id"])

    op.create_table(
        "payments",
        _uuid("id", primary_key=True),
        _uuid("student_fee_id", sa.ForeignKey("student_fees.id"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("transaction_id", sa.String(), nullable=True),
        sa.Column("receipt_number", sa.String(), nullable=False, unique=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        _uuid("processed_by", sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index(op.f("ix_payments_student_fee_id"), "payments", ["student_fee_id"])

    op.create_table(
        "payment_reversals",
        _uuid("id", primary_key=True),
        _uuid("payment_id", nullable=False),
        _uuid("student_fee_id", sa.ForeignKey("student_fees.id"), nullable=False),
        sa.Column("receipt_number", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        _uuid("reversed_by", sa.ForeignKey("users.id"), nullable=True),
        sa.Column("reversed_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "files",
        _uuid("id", primary_key=True),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("file_type", sa.String(), nullable=False),
        sa.Column("original_name", sa.String(), nullable=False),
        sa.Column("stored_name", sa.String(), nullable=False, unique=True),
        sa.Column("file_path", sa.String(), nullable=False),
        sa.Column("mime_type", sa.String(), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _uuid("uploaded_by", sa.ForeignKey("users.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index(op.f("ix_files_entity_type"), "files", ["entity_type"])
    op.create_index(op.f("ix_files_entity_id"), "files", ["entity_id"])


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        "files",
        "payment_reversals",
        "payments",
        "student_fees",
        "fee_categories",
        "report_cards",
        "grades",
        "assessment_types",
        "attendance",
        "student_parents",
        "student_class_history",
        "students",
        "class_subjects",
        "classes",
        "teacher_subjects",
        "staff",
        "teachers",
        "subjects",
        "semesters",
        "academic_years",
        "rate_limit_entries",
        "login_attempts",
        "password_reset_otps",
        "user_sessions",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (payment_method, fee_status, fee_frequency, attendance_status, relationship_type, user_role):
        enum.drop(bind, checkfirst=True)
