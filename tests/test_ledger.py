from datetime import date
from decimal import Decimal

from app.models.enums import FeeStatus
from app.services import ledger


def test_validate_payment_amount():
    assert ledger.validate_payment_amount(0, 1000, 0) == "Payment amount must be greater than zero"
    assert ledger.validate_payment_amount(-5, 1000, 0) == "Payment amount must be greater than zero"
    assert ledger.validate_payment_amount(400, 1000, 700) == "Payment amount cannot exceed pending amount of 300.00"
    assert ledger.validate_payment_amount(300, 1000, 700) is None


def test_remaining_amount_never_negative():
    assert ledger.remaining_amount(1000, 250) == Decimal("750")
    assert ledger.remaining_amount(1000, 1200) == Decimal("0")


def test_status_after_payment():
    assert ledger.status_after_payment(1000, 1000, FeeStatus.pending) == FeeStatus.paid
    assert ledger.status_after_payment(1000, 400, FeeStatus.overdue) == FeeStatus.partial
    assert ledger.status_after_payment(1000, 0, FeeStatus.overdue) == FeeStatus.overdue


def test_status_from_payments_after_reversal():
    on = date(2025, 10, 1)
    assert ledger.status_from_payments(1000, 1000, date(2025, 9, 1), on) == FeeStatus.paid
    assert ledger.status_from_payments(1000, 10, date(2025, 9, 1), on) == FeeStatus.partial
    assert ledger.status_from_payments(1000, 0, date(2025, 9, 1), on) == FeeStatus.overdue
    assert ledger.status_from_payments(1000, 0, date(2025, 11, 1), on) == FeeStatus.pending


def test_is_overdue_ignores_settled_fees():
    on = date(2025, 10, 1)
    past = date(2025, 9, 1)
    assert ledger.is_overdue(FeeStatus.pending, past, on) is True
    assert ledger.is_overdue(FeeStatus.partial, past, on) is True
    assert ledger.is_overdue(FeeStatus.paid, past, on) is False
    assert ledger.is_overdue(FeeStatus.waived, past, on) is False
    assert ledger.is_overdue(FeeStatus.pending, on, on) is False


def test_receipt_number_format():
    assert ledger.receipt_number(date(2025, 3, 7), 0) == "RCP202503070001"
    assert ledger.receipt_number(date(2025, 3, 7), 41) == "RCP202503070042"
