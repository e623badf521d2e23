"""Payment order builder: validates a payment intent against current balances and prices it."""

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence

from campus_fees.core.enums import (
    FEE_TYPE_LABELS,
    HOSTEL_FEE_KEY,
    FeeStatus,
    FeeType,
    PaymentSource,
    PaymentType,
)
from campus_fees.core.exceptions import FeeValidationError

from .domain import (
    ZERO,
    FeeAssignment,
    LedgerItem,
    OrderIntent,
    OrderQuote,
    PaymentRecord,
    SemesterPaymentStatus,
    StudentPaymentStatus,
    to_money,
)
from .reconciliation import compute_status, ledger_keys, resolve_ledger_key

DEFAULT_CONVENIENCE_FEE_RATE = Decimal("0.03")


def convenience_fee(
    amount: Decimal,
    payment_source: PaymentSource,
    rate: Decimal = DEFAULT_CONVENIENCE_FEE_RATE,
) -> Decimal:
    """Surcharge for gateway payments, rounded half-up to whole currency units. Office payments pay none."""
    if PaymentSource(payment_source) != PaymentSource.online_gateway:
        return ZERO
    return (to_money(amount) * to_money(rate)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _parse_fee_types(selected: Iterable[str]) -> List[FeeType]:
    parsed: List[FeeType] = []
    for raw in selected:
        try:
            fee_type = FeeType(raw)
        except ValueError:
            raise FeeValidationError(f"Unknown fee type '{raw}'")
        if fee_type not in parsed:
            parsed.append(fee_type)
    return parsed


def _require_semester(status: StudentPaymentStatus, semester: Optional[int]) -> SemesterPaymentStatus:
    if semester is None:
        raise FeeValidationError("Please select a semester")
    sem_status = status.semester(semester)
    if sem_status is None:
        raise FeeValidationError(f"Semester {semester} is not part of this fee structure")
    return sem_status


def _remaining_items(sem_status: SemesterPaymentStatus) -> List[LedgerItem]:
    return [
        LedgerItem(fee_type=fee_type.value, amount=remaining, semester=sem_status.semester)
        for fee_type, remaining in sem_status.remaining_balance.items()
        if remaining > 0
    ]


def build_order(
    assignment: FeeAssignment,
    payments: Sequence[PaymentRecord],
    intent: OrderIntent,
    status: Optional[StudentPaymentStatus] = None,
    convenience_rate: Decimal = DEFAULT_CONVENIENCE_FEE_RATE,
) -> OrderQuote:
    """
    Price a payment intent from remaining balances only.

    Already-paid amounts are never charged again: every branch works from the
    reconciliation status, and a partial selection containing a settled fee type
    is rejected outright.
    """
    if status is None:
        status = compute_status(assignment, payments)

    payment_type = PaymentType(intent.payment_type)
    if intent.selected_fee_types and payment_type != PaymentType.partial_payment:
        raise FeeValidationError("Fee types can only be selected for a partial payment")

    semester: Optional[int] = None
    if payment_type == PaymentType.full_payment:
        breakdown: List[LedgerItem] = []
        for sem_status in status.semesters:
            breakdown.extend(_remaining_items(sem_status))

    elif payment_type == PaymentType.semester_payment:
        sem_status = _require_semester(status, intent.semester)
        semester = sem_status.semester
        breakdown = _remaining_items(sem_status)

    elif payment_type == PaymentType.partial_payment:
        sem_status = _require_semester(status, intent.semester)
        semester = sem_status.semester
        selected = _parse_fee_types(intent.selected_fee_types or [])
        if not selected:
            raise FeeValidationError("Please select at least one fee type to pay")
        settled = [
            FEE_TYPE_LABELS[fee_type.value]
            for fee_type in selected
            if sem_status.fee_type_status[fee_type] == FeeStatus.fully_paid
            or sem_status.remaining_balance[fee_type] <= 0
        ]
        if settled:
            raise FeeValidationError(
                f"{', '.join(settled)} for {sem_status.semester_name} has already been paid"
            )
        breakdown = [
            LedgerItem(
                fee_type=fee_type.value,
                amount=sem_status.remaining_balance[fee_type],
                semester=semester,
            )
            for fee_type in selected
        ]

    else:
        remaining = status.hostel.outstanding
        breakdown = (
            [LedgerItem(fee_type=HOSTEL_FEE_KEY, amount=remaining)] if remaining > 0 else []
        )

    amount = sum((to_money(item.amount) for item in breakdown), ZERO)
    if amount <= 0:
        raise FeeValidationError("Nothing is due for the selected payment")

    fee = convenience_fee(amount, intent.payment_source, convenience_rate)
    return OrderQuote(
        payment_type=payment_type,
        semester=semester,
        payment_source=intent.payment_source,
        fee_breakdown=breakdown,
        amount=amount,
        convenience_fee=fee,
        total_amount=amount + fee,
    )


def overlapping_fee_keys(quote: OrderQuote, in_flight: Iterable[PaymentRecord]) -> set:
    """(semester, fee type) pairs of ``quote`` already covered by an unfinished payment."""
    candidate = PaymentRecord(
        payment_type=quote.payment_type,
        semester=quote.semester,
        fee_breakdown=quote.fee_breakdown,
        payment_status="pending",
    )
    wanted = ledger_keys(candidate)
    taken = set()
    for payment in in_flight:
        taken |= ledger_keys(payment)
    return wanted & taken


def exhausted_fee_keys(status: StudentPaymentStatus, payment: PaymentRecord) -> set:
    """
    (semester, fee type) pairs where ``payment`` would pay more than is still outstanding.

    Used when an order priced earlier settles after other payments have landed; its stored
    amounts are compared against current balances, never recomputed.
    """
    remaining = {(None, HOSTEL_FEE_KEY): status.hostel.outstanding}
    for sem_status in status.semesters:
        for fee_type, amount in sem_status.remaining_balance.items():
            remaining[(sem_status.semester, fee_type.value)] = amount

    wanted = defaultdict(lambda: ZERO)
    for item in payment.fee_breakdown:
        wanted[resolve_ledger_key(item, payment)] += to_money(item.amount)
    return {key for key, amount in wanted.items() if amount > remaining.get(key, ZERO)}
