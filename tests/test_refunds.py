from decimal import Decimal

import pytest

from campus_fees.core.enums import PaymentStatus, PaymentType
from campus_fees.core.exceptions import FeeValidationError
from campus_fees.fees.refunds import resolve_refund

from tests.builders import item, paid


def semester_payment():
    return paid(
        item("tuitionFee", "20000"),
        item("admissionFee", "5000"),
        payment_type=PaymentType.semester_payment,
    )


def test_no_lines_refunds_everything() -> None:
    refunded, status = resolve_refund(semester_payment())
    assert status == PaymentStatus.refunded
    assert sum(i.amount for i in refunded) == Decimal("25000")


def test_some_lines_is_a_partial_refund() -> None:
    refunded, status = resolve_refund(semester_payment(), [item("tuitionFee", "5000")])
    assert status == PaymentStatus.partial_refund
    assert [(i.fee_type, i.amount, i.semester) for i in refunded] == [("tuitionFee", Decimal("5000"), 1)]


def test_every_line_in_full_is_a_full_refund() -> None:
    _, status = resolve_refund(
        semester_payment(),
        [item("tuitionFee", "20000"), item("admissionFee", "5000")],
    )
    assert status == PaymentStatus.refunded


def test_refund_cannot_exceed_amount_paid() -> None:
    with pytest.raises(FeeValidationError):
        resolve_refund(semester_payment(), [item("tuitionFee", "15000"), item("tuitionFee", "6000")])


def test_refund_line_must_belong_to_payment() -> None:
    with pytest.raises(FeeValidationError):
        resolve_refund(semester_payment(), [item("specialFee", "100")])
    with pytest.raises(FeeValidationError):
        resolve_refund(semester_payment(), [item("tuitionFee", "100", semester_no=2)])
    with pytest.raises(FeeValidationError):
        resolve_refund(semester_payment(), [item("libraryFee", "100")])


def test_refund_amount_must_be_positive() -> None:
    with pytest.raises(FeeValidationError):
        resolve_refund(semester_payment(), [item("tuitionFee", "0")])
