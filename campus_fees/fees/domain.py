"""Fee engine value types: snapshot, customizations, ledger entries and derived status."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from campus_fees.core.enums import (
    FeeStatus,
    FeeType,
    PaymentSource,
    PaymentStatus,
    PaymentType,
)

ZERO = Decimal("0")


def to_money(val) -> Decimal:
    if val is None:
        return ZERO
    return val if isinstance(val, Decimal) else Decimal(str(val))


def as_utc(val: datetime) -> datetime:
    """Treat naive timestamps (e.g. read back from SQLite) as UTC."""
    if val.tzinfo is None:
        return val.replace(tzinfo=timezone.utc)
    return val


# FeeType -> FeeBreakdown attribute
FEE_TYPE_FIELDS: Dict[FeeType, str] = {
    FeeType.ADMISSION_FEE: "admission_fee",
    FeeType.EXAM_PERMIT_REG_FEE: "exam_permit_reg_fee",
    FeeType.SPECIAL_FEE: "special_fee",
    FeeType.TUITION_FEE: "tuition_fee",
    FeeType.OTHERS: "others",
}


class FeeBreakdown(BaseModel):
    """Amounts for the five fixed fee types of one semester."""

    model_config = ConfigDict(frozen=True)

    admission_fee: Decimal = ZERO
    exam_permit_reg_fee: Decimal = ZERO
    special_fee: Decimal = ZERO
    tuition_fee: Decimal = ZERO
    others: Decimal = ZERO

    def get(self, fee_type: FeeType) -> Decimal:
        return getattr(self, FEE_TYPE_FIELDS[FeeType(fee_type)])

    def items(self) -> Iterator[Tuple[FeeType, Decimal]]:
        for fee_type, field in FEE_TYPE_FIELDS.items():
            yield fee_type, getattr(self, field)

    def total(self) -> Decimal:
        return sum((amount for _, amount in self.items()), ZERO)

    def merge(self, overrides: "PartialFeeBreakdown") -> "FeeBreakdown":
        """Return a copy with every fee type present in ``overrides`` replaced."""
        update = {
            FEE_TYPE_FIELDS[fee_type]: amount for fee_type, amount in overrides.items()
        }
        return self.model_copy(update=update)


class PartialFeeBreakdown(BaseModel):
    """Customization payload: only overridden fee types are set."""

    model_config = ConfigDict(frozen=True)

    admission_fee: Optional[Decimal] = None
    exam_permit_reg_fee: Optional[Decimal] = None
    special_fee: Optional[Decimal] = None
    tuition_fee: Optional[Decimal] = None
    others: Optional[Decimal] = None

    def items(self) -> Iterator[Tuple[FeeType, Decimal]]:
        for fee_type, field in FEE_TYPE_FIELDS.items():
            amount = getattr(self, field)
            if amount is not None:
                yield fee_type, amount

    def is_empty(self) -> bool:
        return next(self.items(), None) is None


class ActorRef(BaseModel):
    """Staff member who performed a change, as supplied by the auth collaborator."""

    id: Optional[UUID] = None
    name: str
    email: Optional[str] = None


class SemesterFees(BaseModel):
    semester: int = Field(..., gt=0)
    semester_name: str
    fees: FeeBreakdown
    total: Decimal


class FeeStructureSnapshot(BaseModel):
    """Point-in-time copy of a catalog fee structure embedded in an assignment."""

    title: str
    program: Optional[str] = None
    program_type: Optional[str] = None
    academic_year: str
    semesters: List[SemesterFees]
    grand_total: Decimal
    hostel_fee: Decimal = ZERO

    def semester(self, number: int) -> Optional[SemesterFees]:
        for sem in self.semesters:
            if sem.semester == number:
                return sem
        return None


class Customization(BaseModel):
    semester: int
    fees: PartialFeeBreakdown
    reason: Optional[str] = None
    customized_by: Optional[ActorRef] = None
    customized_at: datetime


class FeeAssignment(BaseModel):
    id: Optional[UUID] = None
    student_id: Optional[UUID] = None
    snapshot: FeeStructureSnapshot
    # Stored order is insertion order; the engine re-sorts by customized_at.
    customizations: List[Customization] = Field(default_factory=list)
    is_active: bool = True


class LedgerItem(BaseModel):
    """One fee-type line of a payment. ``semester`` overrides the payment-level semester."""

    fee_type: str
    amount: Decimal
    semester: Optional[int] = None


class PaymentRecord(BaseModel):
    id: Optional[UUID] = None
    payment_type: PaymentType
    semester: Optional[int] = None
    fee_breakdown: List[LedgerItem] = Field(default_factory=list)
    amount_paid: Decimal = ZERO
    convenience_fee: Decimal = ZERO
    total_amount_charged: Decimal = ZERO
    payment_status: PaymentStatus
    refunded: List[LedgerItem] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class SemesterPaymentStatus(BaseModel):
    semester: int
    semester_name: str
    fees: FeeBreakdown
    fee_type_paid: Dict[FeeType, Decimal]
    fee_type_status: Dict[FeeType, FeeStatus]
    remaining_balance: Dict[FeeType, Decimal]
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    excess_paid: Decimal = ZERO
    semester_status: FeeStatus


class HostelPaymentStatus(BaseModel):
    due: Decimal
    paid: Decimal
    outstanding: Decimal
    status: FeeStatus


class StudentPaymentStatus(BaseModel):
    academic_year: str
    semesters: List[SemesterPaymentStatus]
    hostel: HostelPaymentStatus
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    overall_status: FeeStatus

    def semester(self, number: int) -> Optional[SemesterPaymentStatus]:
        for sem in self.semesters:
            if sem.semester == number:
                return sem
        return None

    def by_semester(self) -> Dict[int, SemesterPaymentStatus]:
        return {sem.semester: sem for sem in self.semesters}


class PaymentSummary(BaseModel):
    total_amount_due: Decimal
    total_amount_paid: Decimal
    total_convenience_fee: Decimal
    total_outstanding: Decimal
    completed_payments: int
    pending_payments: int
    failed_payments: int


class OrderIntent(BaseModel):
    payment_type: PaymentType
    semester: Optional[int] = None
    selected_fee_types: Optional[List[str]] = None
    payment_source: PaymentSource = PaymentSource.online_gateway


class OrderQuote(BaseModel):
    """Priced order. These figures are persisted on the pending payment and never recomputed."""

    payment_type: PaymentType
    semester: Optional[int] = None
    payment_source: PaymentSource
    fee_breakdown: List[LedgerItem]
    amount: Decimal
    convenience_fee: Decimal
    total_amount: Decimal
