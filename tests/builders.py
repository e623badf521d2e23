"""Builders for engine-level tests: snapshots, customizations and ledger entries."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from campus_fees.core.enums import PaymentStatus, PaymentType
from campus_fees.fees.domain import (
    Customization,
    FeeAssignment,
    FeeBreakdown,
    FeeStructureSnapshot,
    LedgerItem,
    PartialFeeBreakdown,
    PaymentRecord,
    SemesterFees,
)

T0 = datetime(2025, 7, 1, 9, 0, tzinfo=timezone.utc)

def make_assignment(
    semesters: Optional[List[SemesterFees]] = None,
    hostel_fee: str = "0",
    customizations: Optional[List[Customization]] = None,
) -> FeeAssignment:
    if semesters is None:
        fees = FeeBreakdown(admission_fee=Decimal("5000"), tuition_fee=Decimal("20000"))
        semesters = [SemesterFees(semester=1, semester_name="Semester 1", fees=fees, total=fees.total())]
    return FeeAssignment(
        snapshot=FeeStructureSnapshot(
            title="B.Sc 2025-2026",
            academic_year="2025-2026",
            semesters=semesters,
            grand_total=sum((s.total for s in semesters), Decimal("0")),
            hostel_fee=Decimal(hostel_fee),
        ),
        customizations=customizations or [],
    )

def semester(number: int, **amounts: str) -> SemesterFees:
    fees = FeeBreakdown(**{k: Decimal(v) for k, v in amounts.items()})
    return SemesterFees(semester=number, semester_name=f"Semester {number}", fees=fees, total=fees.total())

def paid(
    *items: LedgerItem,
    semester_no: Optional[int] = 1,
    status: PaymentStatus = PaymentStatus.completed,
    payment_type: PaymentType = PaymentType.partial_payment,
    refunded: Optional[List[LedgerItem]] = None,
) -> PaymentRecord:
    amount = sum((i.amount for i in items), Decimal("0"))
    return PaymentRecord(
        payment_type=payment_type,
        semester=semester_no,
        fee_breakdown=list(items),
        amount_paid=amount,
        total_amount_charged=amount,
        payment_status=status,
        refunded=refunded or [],
    )

def item(fee_type: str, amount: str, semester_no: Optional[int] = None) -> LedgerItem:
    return LedgerItem(fee_type=fee_type, amount=Decimal(amount), semester=semester_no)

def customization(sem: int, at: datetime, **amounts: str) -> Customization:
    return Customization(
        semester=sem,
        fees=PartialFeeBreakdown(**{k: Decimal(v) for k, v in amounts.items()}),
        reason="scholarship",
        customized_at=at,
    )


def structure_payload(**overrides) -> dict:
    """Two-semester B.Com structure used across the API tests."""
    payload = {
        "title": "B.Com 2025-2026",
        "program": "B.Com",
        "program_type": "UG",
        "academic_year": "2025-2026",
        "semesters": [
            {
                "semester": 1,
                "semester_name": "Semester 1",
                "fees": {"admission_fee": "5000", "tuition_fee": "20000"},
            },
            {
                "semester": 2,
                "semester_name": "Semester 2",
                "fees": {"tuition_fee": "20000", "exam_permit_reg_fee": "1500"},
            },
        ],
        "hostel_fee": "12000",
    }
    payload.update(overrides)
    return payload
