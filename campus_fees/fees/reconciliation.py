"""
Reconciliation engine: effective dues per semester and payment status derived from the ledger.

Pure functions of (assignment, payments). Nothing here touches the database.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from campus_fees.core.enums import HOSTEL_FEE_KEY, FeeStatus, FeeType, PaymentStatus
from campus_fees.core.exceptions import DataIntegrityError, FeeValidationError

from .domain import (
    ZERO,
    FeeAssignment,
    FeeBreakdown,
    FeeStructureSnapshot,
    HostelPaymentStatus,
    LedgerItem,
    PaymentRecord,
    PaymentSummary,
    SemesterPaymentStatus,
    StudentPaymentStatus,
    as_utc,
    to_money,
)

# (semester, fee type key); hostel entries use semester None.
LedgerKey = Tuple[Optional[int], str]

_FEE_TYPE_KEYS = {ft.value for ft in FeeType}


def validate_snapshot(snapshot: FeeStructureSnapshot) -> None:
    """Raise DataIntegrityError unless every semester total equals its breakdown sum."""
    seen = set()
    for sem in snapshot.semesters:
        if sem.semester in seen:
            raise DataIntegrityError(f"Semester {sem.semester} appears twice in the fee snapshot")
        seen.add(sem.semester)
        for fee_type, amount in sem.fees.items():
            if amount < 0:
                raise DataIntegrityError(
                    f"Semester {sem.semester} has a negative {fee_type.value} amount in the fee snapshot"
                )
        if sem.fees.total() != to_money(sem.total):
            raise DataIntegrityError(
                f"Semester {sem.semester} total {sem.total} does not match its fee breakdown sum {sem.fees.total()}"
            )
    if to_money(snapshot.hostel_fee) < 0:
        raise DataIntegrityError("Hostel fee in the fee snapshot is negative")


def effective_fees(assignment: FeeAssignment, semester: int) -> FeeBreakdown:
    """Snapshot fees for ``semester`` with its customizations folded in, oldest first."""
    sem = assignment.snapshot.semester(semester)
    if sem is None:
        raise FeeValidationError(f"Semester {semester} is not part of this fee structure")

    # sorted() is stable, so same-timestamp customizations keep insertion order.
    relevant = sorted(
        (c for c in assignment.customizations if c.semester == semester),
        key=lambda c: as_utc(c.customized_at),
    )
    fees = sem.fees
    for customization in relevant:
        fees = fees.merge(customization.fees)

    for fee_type, amount in fees.items():
        if amount < 0:
            raise DataIntegrityError(
                f"Semester {semester} {fee_type.value} resolves to a negative amount ({amount})"
            )
    return fees


def resolve_ledger_key(item: LedgerItem, payment: PaymentRecord) -> LedgerKey:
    if item.fee_type == HOSTEL_FEE_KEY:
        return None, HOSTEL_FEE_KEY
    if item.fee_type not in _FEE_TYPE_KEYS:
        raise DataIntegrityError(f"Payment {payment.id} has unknown fee type '{item.fee_type}'")
    semester = item.semester if item.semester is not None else payment.semester
    if semester is None:
        raise DataIntegrityError(f"Payment {payment.id} has a {item.fee_type} entry without a semester")
    return semester, item.fee_type


def ledger_keys(payment: PaymentRecord) -> set:
    return {resolve_ledger_key(item, payment) for item in payment.fee_breakdown}


def net_contribution(payment: PaymentRecord) -> Dict[LedgerKey, Decimal]:
    """What a single payment counts toward balances, per (semester, fee type)."""
    if payment.payment_status not in (PaymentStatus.completed, PaymentStatus.partial_refund):
        return {}
    totals: Dict[LedgerKey, Decimal] = defaultdict(lambda: ZERO)
    for item in payment.fee_breakdown:
        totals[resolve_ledger_key(item, payment)] += to_money(item.amount)
    if payment.payment_status == PaymentStatus.partial_refund:
        for item in payment.refunded:
            key = resolve_ledger_key(item, payment)
            totals[key] = max(ZERO, totals[key] - to_money(item.amount))
    return dict(totals)


def paid_totals(payments: Iterable[PaymentRecord]) -> Dict[LedgerKey, Decimal]:
    totals: Dict[LedgerKey, Decimal] = defaultdict(lambda: ZERO)
    for payment in payments:
        for key, amount in net_contribution(payment).items():
            totals[key] += amount
    return dict(totals)


def fee_status(paid: Decimal, due: Decimal) -> FeeStatus:
    """Status of one due amount; ``paid`` is expected to be clamped to ``due`` already."""
    if due - paid <= 0:
        return FeeStatus.fully_paid
    if paid <= 0:
        return FeeStatus.unpaid
    return FeeStatus.partially_paid


def _semester_status(
    assignment: FeeAssignment,
    semester: int,
    semester_name: str,
    paid: Dict[LedgerKey, Decimal],
) -> SemesterPaymentStatus:
    fees = effective_fees(assignment, semester)
    fee_type_paid: Dict[FeeType, Decimal] = {}
    fee_type_status: Dict[FeeType, FeeStatus] = {}
    remaining: Dict[FeeType, Decimal] = {}
    excess = ZERO
    for fee_type, due in fees.items():
        raw_paid = paid.get((semester, fee_type.value), ZERO)
        counted = min(raw_paid, due)
        excess += raw_paid - counted
        fee_type_paid[fee_type] = counted
        remaining[fee_type] = due - counted
        fee_type_status[fee_type] = fee_status(counted, due)

    total_due = fees.total()
    total_paid = sum(fee_type_paid.values(), ZERO)
    outstanding = sum(remaining.values(), ZERO)
    # All-zero dues count as settled; otherwise any unpaid or partial fee type keeps
    # the semester below fully_paid. Not a strict minimum over fee types: one fee type
    # paid and another untouched is partially_paid, not unpaid.
    if all(s == FeeStatus.fully_paid for s in fee_type_status.values()):
        semester_status = FeeStatus.fully_paid
    elif total_paid <= 0:
        semester_status = FeeStatus.unpaid
    else:
        semester_status = FeeStatus.partially_paid

    return SemesterPaymentStatus(
        semester=semester,
        semester_name=semester_name,
        fees=fees,
        fee_type_paid=fee_type_paid,
        fee_type_status=fee_type_status,
        remaining_balance=remaining,
        total_due=total_due,
        total_paid=total_paid,
        outstanding=outstanding,
        excess_paid=excess,
        semester_status=semester_status,
    )


def compute_status(
    assignment: FeeAssignment,
    payments: Sequence[PaymentRecord],
) -> StudentPaymentStatus:
    """Per-semester, per-fee-type payment status plus student-level totals."""
    snapshot = assignment.snapshot
    validate_snapshot(snapshot)

    paid = paid_totals(payments)
    for semester, fee_key in paid:
        if semester is not None and snapshot.semester(semester) is None:
            raise DataIntegrityError(
                f"Ledger has a {fee_key} payment for semester {semester}, which is not in the fee snapshot"
            )

    semesters: List[SemesterPaymentStatus] = [
        _semester_status(assignment, sem.semester, sem.semester_name, paid)
        for sem in snapshot.semesters
    ]

    hostel_due = to_money(snapshot.hostel_fee)
    hostel_paid = min(paid.get((None, HOSTEL_FEE_KEY), ZERO), hostel_due)
    hostel = HostelPaymentStatus(
        due=hostel_due,
        paid=hostel_paid,
        outstanding=hostel_due - hostel_paid,
        status=fee_status(hostel_paid, hostel_due),
    )

    total_due = sum((s.total_due for s in semesters), ZERO) + hostel.due
    total_paid = sum((s.total_paid for s in semesters), ZERO) + hostel.paid
    outstanding = sum((s.outstanding for s in semesters), ZERO) + hostel.outstanding
    if outstanding <= 0:
        overall = FeeStatus.fully_paid
    elif total_paid <= 0:
        overall = FeeStatus.unpaid
    else:
        overall = FeeStatus.partially_paid

    return StudentPaymentStatus(
        academic_year=snapshot.academic_year,
        semesters=semesters,
        hostel=hostel,
        total_due=total_due,
        total_paid=total_paid,
        outstanding=outstanding,
        overall_status=overall,
    )


def payment_summary(
    status: StudentPaymentStatus,
    payments: Sequence[PaymentRecord],
) -> PaymentSummary:
    """Totals and counts shown above a student's payment history."""
    retained = (PaymentStatus.completed, PaymentStatus.partial_refund)
    return PaymentSummary(
        total_amount_due=status.total_due,
        total_amount_paid=status.total_paid,
        total_convenience_fee=sum(
            (to_money(p.convenience_fee) for p in payments if p.payment_status in retained),
            ZERO,
        ),
        total_outstanding=status.outstanding,
        completed_payments=sum(1 for p in payments if p.payment_status in retained),
        pending_payments=sum(
            1 for p in payments
            if p.payment_status in (PaymentStatus.pending, PaymentStatus.processing)
        ),
        failed_payments=sum(1 for p in payments if p.payment_status == PaymentStatus.failed),
    )
