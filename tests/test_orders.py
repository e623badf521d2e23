from decimal import Decimal

import pytest

from campus_fees.core.enums import PaymentSource, PaymentStatus, PaymentType
from campus_fees.core.exceptions import FeeValidationError
from campus_fees.fees.domain import OrderIntent, PaymentRecord
from campus_fees.fees.orders import build_order, convenience_fee, exhausted_fee_keys, overlapping_fee_keys
from campus_fees.fees.reconciliation import compute_status

from tests.builders import item, make_assignment, paid, semester


def two_semesters(hostel_fee: str = "0"):
    return make_assignment(
        semesters=[
            semester(1, admission_fee="5000", tuition_fee="20000"),
            semester(2, tuition_fee="3000"),
        ],
        hostel_fee=hostel_fee,
    )


@pytest.mark.parametrize(
    "amount, expected",
    [
        ("3000", "90"),
        ("25000", "750"),
        ("50", "2"),  # 1.5 rounds half-up
        ("16", "0"),  # 0.48
        ("17", "1"),  # 0.51
        ("12345.67", "370"),
    ],
)
def test_online_convenience_fee_rounds_half_up(amount: str, expected: str) -> None:
    assert convenience_fee(Decimal(amount), PaymentSource.online_gateway) == Decimal(expected)


def test_office_payments_have_no_convenience_fee() -> None:
    assert convenience_fee(Decimal("25000"), PaymentSource.manual_office) == Decimal("0")


def test_full_payment_charges_only_remaining_balance() -> None:
    payments = [paid(item("admissionFee", "5000"), item("tuitionFee", "20000"))]
    quote = build_order(two_semesters(), payments, OrderIntent(payment_type=PaymentType.full_payment))
    assert quote.amount == Decimal("3000")
    assert quote.convenience_fee == Decimal("90")
    assert quote.total_amount == Decimal("3090")
    assert [(i.fee_type, i.amount, i.semester) for i in quote.fee_breakdown] == [
        ("tuitionFee", Decimal("3000"), 2)
    ]


def test_full_payment_excludes_hostel() -> None:
    quote = build_order(two_semesters(hostel_fee="12000"), [], OrderIntent(payment_type=PaymentType.full_payment))
    assert quote.amount == Decimal("28000")
    assert all(i.fee_type != "hostelFee" for i in quote.fee_breakdown)


def test_semester_payment_lists_remaining_entries() -> None:
    payments = [paid(item("tuitionFee", "20000"))]
    quote = build_order(
        two_semesters(), payments, OrderIntent(payment_type=PaymentType.semester_payment, semester=1)
    )
    assert quote.semester == 1
    assert quote.amount == Decimal("5000")
    assert [i.fee_type for i in quote.fee_breakdown] == ["admissionFee"]


def test_semester_payment_requires_semester() -> None:
    with pytest.raises(FeeValidationError):
        build_order(two_semesters(), [], OrderIntent(payment_type=PaymentType.semester_payment))


def test_semester_payment_rejects_unknown_semester() -> None:
    with pytest.raises(FeeValidationError):
        build_order(two_semesters(), [], OrderIntent(payment_type=PaymentType.semester_payment, semester=9))


def test_partial_payment_rejects_already_paid_fee_type() -> None:
    payments = [paid(item("tuitionFee", "20000"))]
    intent = OrderIntent(
        payment_type=PaymentType.partial_payment,
        semester=1,
        selected_fee_types=["tuitionFee"],
    )
    with pytest.raises(FeeValidationError) as exc:
        build_order(two_semesters(), payments, intent)
    assert "already been paid" in exc.value.message


def test_partial_payment_rejects_zero_due_fee_type() -> None:
    intent = OrderIntent(
        payment_type=PaymentType.partial_payment,
        semester=1,
        selected_fee_types=["tuitionFee", "specialFee"],
    )
    with pytest.raises(FeeValidationError):
        build_order(two_semesters(), [], intent)


def test_partial_payment_charges_remaining_of_selection() -> None:
    payments = [paid(item("tuitionFee", "8000"))]
    intent = OrderIntent(
        payment_type=PaymentType.partial_payment,
        semester=1,
        selected_fee_types=["tuitionFee", "tuitionFee"],
        payment_source=PaymentSource.manual_office,
    )
    quote = build_order(two_semesters(), payments, intent)
    assert quote.amount == Decimal("12000")
    assert quote.convenience_fee == Decimal("0")
    assert len(quote.fee_breakdown) == 1


def test_partial_payment_rejects_unknown_fee_type() -> None:
    intent = OrderIntent(
        payment_type=PaymentType.partial_payment, semester=1, selected_fee_types=["libraryFee"]
    )
    with pytest.raises(FeeValidationError):
        build_order(two_semesters(), [], intent)


def test_partial_payment_requires_a_selection() -> None:
    intent = OrderIntent(payment_type=PaymentType.partial_payment, semester=1, selected_fee_types=[])
    with pytest.raises(FeeValidationError):
        build_order(two_semesters(), [], intent)


def test_fee_types_only_allowed_for_partial_payment() -> None:
    intent = OrderIntent(
        payment_type=PaymentType.semester_payment, semester=1, selected_fee_types=["tuitionFee"]
    )
    with pytest.raises(FeeValidationError):
        build_order(two_semesters(), [], intent)


def test_hostel_payment_nets_previous_hostel_payments() -> None:
    payments = [paid(item("hostelFee", "4000"), semester_no=None, payment_type=PaymentType.hostel_fee)]
    quote = build_order(
        two_semesters(hostel_fee="12000"), payments, OrderIntent(payment_type=PaymentType.hostel_fee)
    )
    assert quote.amount == Decimal("8000")
    assert quote.fee_breakdown[0].fee_type == "hostelFee"
    assert quote.fee_breakdown[0].semester is None


def test_nothing_due_is_rejected() -> None:
    with pytest.raises(FeeValidationError) as exc:
        build_order(two_semesters(), [], OrderIntent(payment_type=PaymentType.hostel_fee))
    assert "Nothing is due" in exc.value.message


def test_pending_payments_do_not_reduce_the_quote() -> None:
    payments = [paid(item("tuitionFee", "3000"), semester_no=2, status=PaymentStatus.pending)]
    quote = build_order(
        two_semesters(), payments, OrderIntent(payment_type=PaymentType.semester_payment, semester=2)
    )
    assert quote.amount == Decimal("3000")


def test_overlap_detects_in_flight_fee_types() -> None:
    quote = build_order(
        two_semesters(), [], OrderIntent(payment_type=PaymentType.semester_payment, semester=1)
    )
    in_flight = [
        PaymentRecord(
            payment_type=PaymentType.partial_payment,
            semester=1,
            fee_breakdown=[item("tuitionFee", "20000")],
            payment_status=PaymentStatus.pending,
        )
    ]
    assert overlapping_fee_keys(quote, in_flight) == {(1, "tuitionFee")}
    other_semester = [in_flight[0].model_copy(update={"semester": 2})]
    assert overlapping_fee_keys(quote, other_semester) == set()


def test_exhausted_keys_compare_stored_amounts_with_current_balances() -> None:
    assignment = two_semesters(hostel_fee="12000")
    stale = paid(item("tuitionFee", "20000"), item("admissionFee", "5000"), status=PaymentStatus.pending)

    assert exhausted_fee_keys(compute_status(assignment, []), stale) == set()

    office = paid(item("tuitionFee", "8000"))
    status = compute_status(assignment, [office, stale])
    assert exhausted_fee_keys(status, stale) == {(1, "tuitionFee")}

    hostel = paid(item("hostelFee", "12000"), semester_no=None, payment_type=PaymentType.hostel_fee)
    settled = compute_status(assignment, [hostel])
    assert exhausted_fee_keys(settled, hostel.model_copy(update={"payment_status": PaymentStatus.pending})) == {
        (None, "hostelFee")
    }
