from datetime import timedelta
from decimal import Decimal
from typing import List

import pytest

from campus_fees.core.enums import FeeStatus, FeeType, PaymentStatus, PaymentType
from campus_fees.core.exceptions import DataIntegrityError, FeeValidationError
from campus_fees.fees.domain import FeeBreakdown, PaymentRecord, SemesterFees
from campus_fees.fees.reconciliation import compute_status, effective_fees, payment_summary

from tests.builders import T0, customization, item, make_assignment, paid, semester


def test_no_payments_is_unpaid() -> None:
    status = compute_status(make_assignment(), [])
    sem = status.semester(1)
    assert sem.semester_status == FeeStatus.unpaid
    assert sem.outstanding == Decimal("25000")
    assert sem.total_paid == Decimal("0")
    assert status.overall_status == FeeStatus.unpaid


def test_one_fee_type_paid_leaves_semester_partially_paid() -> None:
    payments = [paid(item("tuitionFee", "20000"))]
    sem = compute_status(make_assignment(), payments).semester(1)
    assert sem.fee_type_status[FeeType.TUITION_FEE] == FeeStatus.fully_paid
    assert sem.fee_type_status[FeeType.ADMISSION_FEE] == FeeStatus.unpaid
    # Zero-due fee types are settled by default.
    assert sem.fee_type_status[FeeType.OTHERS] == FeeStatus.fully_paid
    assert sem.semester_status == FeeStatus.partially_paid
    assert sem.outstanding == Decimal("5000")


def test_customization_after_payment_lowers_outstanding() -> None:
    assignment = make_assignment(customizations=[customization(1, T0, admission_fee="3000")])
    payments = [paid(item("tuitionFee", "20000"))]
    assert effective_fees(assignment, 1).admission_fee == Decimal("3000")
    sem = compute_status(assignment, payments).semester(1)
    assert sem.outstanding == Decimal("3000")
    assert sem.remaining_balance[FeeType.ADMISSION_FEE] == Decimal("3000")


def test_empty_customization_list_returns_snapshot_fees() -> None:
    assignment = make_assignment()
    assert effective_fees(assignment, 1) == assignment.snapshot.semester(1).fees


def test_latest_customization_wins_per_fee_type() -> None:
    # Stored out of chronological order on purpose.
    assignment = make_assignment(
        customizations=[
            customization(1, T0 + timedelta(days=2), tuition_fee="15000"),
            customization(1, T0, tuition_fee="18000", admission_fee="4000"),
        ]
    )
    fees = effective_fees(assignment, 1)
    assert fees.tuition_fee == Decimal("15000")
    assert fees.admission_fee == Decimal("4000")
    assert fees.others == Decimal("0")


def test_same_timestamp_customizations_keep_insertion_order() -> None:
    assignment = make_assignment(
        customizations=[
            customization(1, T0, tuition_fee="18000"),
            customization(1, T0, tuition_fee="17000"),
        ]
    )
    assert effective_fees(assignment, 1).tuition_fee == Decimal("17000")


def test_customization_for_other_semester_is_ignored() -> None:
    assignment = make_assignment(
        semesters=[semester(1, tuition_fee="1000"), semester(2, tuition_fee="2000")],
        customizations=[customization(2, T0, tuition_fee="500")],
    )
    assert effective_fees(assignment, 1).tuition_fee == Decimal("1000")
    assert effective_fees(assignment, 2).tuition_fee == Decimal("500")


def test_unknown_semester_is_a_validation_error() -> None:
    with pytest.raises(FeeValidationError):
        effective_fees(make_assignment(), 7)


def test_negative_effective_fee_is_an_integrity_error() -> None:
    assignment = make_assignment(customizations=[customization(1, T0, admission_fee="-10")])
    with pytest.raises(DataIntegrityError) as exc:
        effective_fees(assignment, 1)
    assert "contact the administration" in exc.value.message


def test_semester_total_mismatch_is_an_integrity_error() -> None:
    fees = FeeBreakdown(tuition_fee=Decimal("1000"))
    broken = SemesterFees(semester=1, semester_name="Semester 1", fees=fees, total=Decimal("999"))
    with pytest.raises(DataIntegrityError):
        compute_status(make_assignment(semesters=[broken]), [])


def test_ledger_entry_for_missing_semester_is_an_integrity_error() -> None:
    with pytest.raises(DataIntegrityError):
        compute_status(make_assignment(), [paid(item("tuitionFee", "100"), semester_no=4)])


def test_over_payment_is_clamped() -> None:
    payments = [paid(item("tuitionFee", "15000")), paid(item("tuitionFee", "15000"))]
    sem = compute_status(make_assignment(), payments).semester(1)
    assert sem.fee_type_paid[FeeType.TUITION_FEE] == Decimal("20000")
    assert sem.remaining_balance[FeeType.TUITION_FEE] == Decimal("0")
    assert sem.fee_type_status[FeeType.TUITION_FEE] == FeeStatus.fully_paid
    assert sem.excess_paid == Decimal("10000")
    assert sem.outstanding == sem.total_due - sem.total_paid


@pytest.mark.parametrize(
    "status",
    [PaymentStatus.pending, PaymentStatus.processing, PaymentStatus.failed, PaymentStatus.refunded],
)
def test_only_completed_payments_count(status: PaymentStatus) -> None:
    sem = compute_status(make_assignment(), [paid(item("tuitionFee", "20000"), status=status)]).semester(1)
    assert sem.total_paid == Decimal("0")
    assert sem.semester_status == FeeStatus.unpaid


def test_partial_refund_reduces_only_refunded_lines() -> None:
    payment = paid(
        item("tuitionFee", "20000"),
        item("admissionFee", "5000"),
        status=PaymentStatus.partial_refund,
        refunded=[item("tuitionFee", "8000")],
    )
    sem = compute_status(make_assignment(), [payment]).semester(1)
    assert sem.fee_type_paid[FeeType.TUITION_FEE] == Decimal("12000")
    assert sem.fee_type_paid[FeeType.ADMISSION_FEE] == Decimal("5000")
    assert sem.fee_type_status[FeeType.TUITION_FEE] == FeeStatus.partially_paid
    assert sem.outstanding == Decimal("8000")


def test_zero_due_semester_is_fully_paid() -> None:
    assignment = make_assignment(semesters=[semester(1, tuition_fee="1000"), semester(2)])
    status = compute_status(assignment, [])
    assert status.semester(2).semester_status == FeeStatus.fully_paid
    assert status.semester(1).semester_status == FeeStatus.unpaid


def test_full_payment_items_are_attributed_to_their_own_semester() -> None:
    assignment = make_assignment(
        semesters=[semester(1, tuition_fee="1000"), semester(2, tuition_fee="2000")]
    )
    payment = paid(
        item("tuitionFee", "1000", semester_no=1),
        item("tuitionFee", "2000", semester_no=2),
        semester_no=None,
        payment_type=PaymentType.full_payment,
    )
    status = compute_status(assignment, [payment])
    assert status.semester(1).semester_status == FeeStatus.fully_paid
    assert status.semester(2).semester_status == FeeStatus.fully_paid
    assert status.overall_status == FeeStatus.fully_paid


def test_hostel_is_its_own_pseudo_semester() -> None:
    assignment = make_assignment(hostel_fee="12000")
    hostel_payment = paid(item("hostelFee", "5000"), semester_no=None, payment_type=PaymentType.hostel_fee)
    status = compute_status(assignment, [hostel_payment])
    assert status.hostel.paid == Decimal("5000")
    assert status.hostel.outstanding == Decimal("7000")
    assert status.hostel.status == FeeStatus.partially_paid
    assert status.semester(1).total_paid == Decimal("0")
    assert status.total_due == Decimal("37000")
    assert status.outstanding == Decimal("32000")
    assert status.overall_status == FeeStatus.partially_paid


def test_completed_payments_never_regress_status() -> None:
    assignment = make_assignment()
    ledger: List[PaymentRecord] = []
    rank = {FeeStatus.unpaid: 0, FeeStatus.partially_paid: 1, FeeStatus.fully_paid: 2}
    previous = compute_status(assignment, ledger).semester(1)
    for amount in ("3000", "2000", "9000", "11000", "500"):
        ledger.append(paid(item("tuitionFee", amount), item("admissionFee", amount)))
        current = compute_status(assignment, ledger).semester(1)
        for fee_type, fee_status in current.fee_type_status.items():
            assert rank[fee_status] >= rank[previous.fee_type_status[fee_type]]
        assert rank[current.semester_status] >= rank[previous.semester_status]
        assert all(r >= 0 for r in current.remaining_balance.values())
        previous = current


def test_payment_summary_counts() -> None:
    assignment = make_assignment()
    payments = [
        paid(item("tuitionFee", "20000")),
        paid(item("admissionFee", "5000"), status=PaymentStatus.pending),
        paid(item("admissionFee", "5000"), status=PaymentStatus.failed),
    ]
    payments[0] = payments[0].model_copy(update={"convenience_fee": Decimal("600")})
    summary = payment_summary(compute_status(assignment, payments), payments)
    assert summary.total_amount_due == Decimal("25000")
    assert summary.total_amount_paid == Decimal("20000")
    assert summary.total_outstanding == Decimal("5000")
    assert summary.total_convenience_fee == Decimal("600")
    assert (summary.completed_payments, summary.pending_payments, summary.failed_payments) == (1, 1, 1)
