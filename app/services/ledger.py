"""Fee status rules for the payment ledger."""
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from app.models.enums import FeeStatus

REVERSAL_WINDOW_DAYS = 30
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return value if isinstance(value, Decimal) else Decimal(str(value))


def to_money(value) -> Decimal:
    """Round to whole cents, halves away from zero, as stored in Numeric(12, 2)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def total_paid(amounts: Iterable) -> Decimal:
    return sum((to_decimal(a) for a in amounts), Decimal("0"))


def remaining_amount(owed, paid) -> Decimal:
    return max(to_decimal(owed) - to_decimal(paid), Decimal("0"))


def validate_payment_amount(amount, owed, paid) -> Optional[str]:
    """Return an error message when ``amount`` cannot be applied, else None.

    The amount is checked after rounding to cents, so 0.004 counts as zero.
    """
    amount = to_money(amount)
    if amount <= 0:
        return "Payment amount must be greater than zero"
    remaining = remaining_amount(owed, paid)
    if amount > remaining:
        return f"Payment amount cannot exceed pending amount of {remaining:.2f}"
    return None


def status_after_payment(owed, paid, current: FeeStatus) -> FeeStatus:
    paid = to_decimal(paid)
    if paid >= to_decimal(owed):
        return FeeStatus.paid
    if paid > 0:
        return FeeStatus.partial
    return current


def status_from_payments(owed, paid, due_date: date, on: date) -> FeeStatus:
    """Recompute a fee's status from what is left after a reversal."""
    paid = to_decimal(paid)
    if paid >= to_decimal(owed):
        return FeeStatus.paid
    if paid > 0:
        return FeeStatus.partial
    if due_date < on:
        return FeeStatus.overdue
    return FeeStatus.pending


def is_overdue(status: FeeStatus, due_date: date, on: date) -> bool:
    return status not in (FeeStatus.paid, FeeStatus.waived) and due_date < on


def receipt_number(on: date, count_today: int) -> str:
    return f"RCP{on.strftime('%Y%m%d')}{count_today + 1:04d}"
