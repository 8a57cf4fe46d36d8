from datetime import date, timedelta

import pytest

from app.core.config import settings
from app.core.errors import AppError
from app.models import Payment, PaymentReversal
from app.models.enums import FeeStatus, PaymentMethod
from app.services.fee_service import FeeService
from app.services.payment_service import PaymentService
from app.utils.dates import today, utcnow

from conftest import auth_headers, make_student, make_student_fee

API = settings.API_V1_STR


def _pay(db, actor, fee, amount, **extra):
    data = {"student_fee_id": str(fee.id), "amount": amount, "payment_method": PaymentMethod.cash, **extra}
    return PaymentService(db).create(data, actor)


def test_partial_then_full_payment(db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student, amount=1000)

    first = _pay(db, school.admin, fee, 400)
    db.refresh(fee)
    assert fee.status == FeeStatus.partial
    assert first.receipt_number == f"RCP{today().strftime('%Y%m%d')}0001"

    second = _pay(db, school.admin, fee, 600)
    db.refresh(fee)
    assert fee.status == FeeStatus.paid
    assert second.receipt_number.endswith("0002")


def test_overpayment_is_rejected(db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student, amount=1000)
    _pay(db, school.admin, fee, 700)

    with pytest.raises(AppError) as exc:
        _pay(db, school.admin, fee, 400)
    assert exc.value.status_code == 400
    assert exc.value.message == "Payment amount cannot exceed pending amount of 300.00"
    assert db.query(Payment).count() == 1


def test_non_positive_amount_is_rejected(db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student)

    with pytest.raises(AppError) as exc:
        _pay(db, school.admin, fee, 0)
    assert exc.value.message == "Payment amount must be greater than zero"


@pytest.mark.parametrize(
    "status,message",
    [
        (FeeStatus.paid, "This fee has already been fully paid"),
        (FeeStatus.waived, "This fee has been waived"),
    ],
)
def test_settled_fees_take_no_payments(db, school, status, message):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student, status=status)

    with pytest.raises(AppError) as exc:
        _pay(db, school.admin, fee, 10)
    assert exc.value.message == message


def test_reversal_restores_fee_status(db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student, amount=500)
    payment = _pay(db, school.admin, fee, 500)

    result = PaymentService(db).reverse(str(payment.id), "Cheque bounced at the bank", school.admin)

    assert result["feeStatus"] == "pending"
    assert result["remainingAmount"] == 500.0
    assert db.query(Payment).count() == 0
    reversal = db.query(PaymentReversal).one()
    assert reversal.receipt_number == payment.receipt_number
    assert reversal.reason == "Cheque bounced at the bank"


def test_reversal_of_past_due_fee_marks_it_overdue(db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student, amount=500, due_date=date(2024, 1, 31))
    keep = _pay(db, school.admin, fee, 200)
    drop = _pay(db, school.admin, fee, 100)

    result = PaymentService(db).reverse(str(drop.id), "Entered against the wrong fee", school.admin)
    assert result["feeStatus"] == "partial"

    result = PaymentService(db).reverse(str(keep.id), "Entered against the wrong fee", school.admin)
    assert result["feeStatus"] == "overdue"


def test_old_payments_cannot_be_reversed(db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student)
    payment = _pay(db, school.admin, fee, 100)
    payment.created_at = utcnow() - timedelta(days=31)
    db.commit()

    with pytest.raises(AppError) as exc:
        PaymentService(db).reverse(str(payment.id), "Too late for this one", school.admin)
    assert exc.value.message == "Payments older than 30 days cannot be reversed"


def test_backdated_payment_can_still_be_reversed(db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student)
    payment = _pay(db, school.admin, fee, 100, payment_date=utcnow() - timedelta(days=45))

    result = PaymentService(db).reverse(str(payment.id), "Entered against the wrong fee", school.admin)
    assert result["receiptNumber"] == payment.receipt_number


def test_future_payment_date_is_rejected(client, db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student)

    response = client.post(
        f"{API}/payments/",
        json={
            "studentFeeId": str(fee.id),
            "amount": 100,
            "paymentMethod": "cash",
            "paymentDate": (utcnow() + timedelta(days=400)).isoformat(),
        },
        headers=auth_headers(school.staff_user),
    )
    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "paymentDate"
    assert db.query(Payment).count() == 0


@pytest.mark.parametrize("amount", [0.001, 0.004, -0.001])
def test_amounts_below_one_cent_are_rejected(db, school, amount):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student, amount=1000)

    with pytest.raises(AppError) as exc:
        _pay(db, school.admin, fee, amount)
    assert exc.value.message == "Payment amount must be greater than zero"
    assert db.query(Payment).count() == 0


def test_amount_is_rounded_to_cents_before_settling(db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student, amount=1000)

    payment = _pay(db, school.admin, fee, 999.999)
    db.refresh(fee)
    assert float(payment.amount) == 1000.00
    assert fee.status == FeeStatus.paid


def test_partial_fee_past_due_stays_partial(db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student, amount=1000, due_date=today() - timedelta(days=3))
    _pay(db, school.admin, fee, 400)

    FeeService(db).send_reminders()
    db.refresh(fee)
    assert fee.status == FeeStatus.partial


def test_payment_endpoints(client, db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student, amount=800)
    headers = auth_headers(school.staff_user)

    created = client.post(
        f"{API}/payments/",
        json={"studentFeeId": str(fee.id), "amount": 300, "paymentMethod": "upi", "transactionId": "UPI-7781"},
        headers=headers,
    )
    assert created.status_code == 201
    payment = created.json()["data"]
    assert payment["paymentMethod"] == "upi"

    receipt = client.get(f"{API}/payments/{payment['id']}/receipt", headers=headers).json()["data"]
    assert receipt["receiptNumber"] == payment["receiptNumber"]
    assert receipt["fee"]["paidAmount"] == 300.0
    assert receipt["fee"]["remainingAmount"] == 500.0
    assert receipt["fee"]["status"] == "partial"

    history = client.get(f"{API}/payments/history/{fee.id}", headers=headers).json()["data"]
    assert len(history["payments"]) == 1
    assert history["remainingAmount"] == 500.0

    # only admins reverse payments
    forbidden = client.post(
        f"{API}/payments/{payment['id']}/reverse", json={"reason": "Duplicate entry by clerk"}, headers=headers
    )
    assert forbidden.status_code == 403

    short = client.post(
        f"{API}/payments/{payment['id']}/reverse", json={"reason": "oops"}, headers=auth_headers(school.admin)
    )
    assert short.status_code == 400

    reversed_ = client.post(
        f"{API}/payments/{payment['id']}/reverse",
        json={"reason": "Duplicate entry by clerk"},
        headers=auth_headers(school.admin),
    )
    assert reversed_.status_code == 200
    assert reversed_.json()["data"]["feeStatus"] == "pending"


def test_student_cannot_see_another_students_receipt(client, db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student)
    payment = _pay(db, school.admin, fee, 50)
    other_child = make_student(db, school.class_, "Oli", "Vance")

    response = client.get(f"{API}/payments/{payment.id}/receipt", headers=auth_headers(other_child.user))
    assert response.status_code == 403
