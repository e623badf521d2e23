"""Fee assignment schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from campus_fees.fees.domain import (
    ActorRef,
    FeeStructureSnapshot,
    PartialFeeBreakdown,
    SemesterFees,
    StudentPaymentStatus,
)


class AssignFeeStructureRequest(BaseModel):
    fee_structure_id: UUID
    notes: Optional[str] = None


class CustomizationAmounts(BaseModel):
    """Only the fee types being overridden are sent."""

    admission_fee: Optional[Decimal] = Field(None, ge=0)
    exam_permit_reg_fee: Optional[Decimal] = Field(None, ge=0)
    special_fee: Optional[Decimal] = Field(None, ge=0)
    tuition_fee: Optional[Decimal] = Field(None, ge=0)
    others: Optional[Decimal] = Field(None, ge=0)

    def to_partial(self) -> PartialFeeBreakdown:
        return PartialFeeBreakdown(**self.model_dump())


class CustomizationCreate(BaseModel):
    semester: int = Field(..., gt=0)
    fees: CustomizationAmounts
    reason: Optional[str] = Field(None, max_length=500)


class CustomizationResponse(BaseModel):
    id: UUID
    sequence: int
    semester: int
    fees: PartialFeeBreakdown
    reason: Optional[str] = None
    customized_by: Optional[ActorRef] = None
    customized_at: datetime


class FeeAssignmentResponse(BaseModel):
    id: UUID
    student_id: UUID
    fee_structure_id: UUID
    academic_year: str
    fee_structure_snapshot: FeeStructureSnapshot
    customizations: List[CustomizationResponse]
    notes: Optional[str] = None
    assigned_by: Optional[ActorRef] = None
    assigned_at: datetime
    is_active: bool
    ledger_version: int
    created_at: datetime
    updated_at: datetime


class FeeAssignmentWithDues(FeeAssignmentResponse):
    """Assignment plus the dues after customizations, per semester."""

    effective_semesters: List[SemesterFees]
    effective_grand_total: Decimal


class FeePaymentStatusResponse(BaseModel):
    assignment_id: UUID
    student_id: UUID
    academic_year: str
    payment_status: StudentPaymentStatus
