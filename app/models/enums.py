import enum


class UserRole(str, enum.Enum):
    admin = "admin"
    teacher = "teacher"
    student = "student"
    parent = "parent"
    staff = "staff"


class RelationshipType(str, enum.Enum):
    father = "father"
    mother = "mother"
    guardian = "guardian"
    other = "other"


class AttendanceStatus(str, enum.Enum):
    present = "present"
    absent = "absent"
    late = "late"
    excused = "excused"


class FeeFrequency(str, enum.Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    semester = "semester"
    annual = "annual"
    one_time = "one-time"


class FeeStatus(str, enum.Enum):
    pending = "pending"
    partial = "partial"
    paid = "paid"
    overdue = "overdue"
    waived = "waived"


class PaymentMethod(str, enum.Enum):
    cash = "cash"
    card = "card"
    bank_transfer = "bank_transfer"
    cheque = "cheque"
    online = "online"
    upi = "upi"


def enum_values(enum_cls):
    # persist values rather than member names ("one-time")
    return [member.value for member in enum_cls]
