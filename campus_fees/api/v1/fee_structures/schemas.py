"""Fee structure catalog schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from campus_fees.fees.domain import FeeBreakdown, SemesterFees


class FeeAmounts(BaseModel):
    """The five fee-type amounts of one semester, as entered by staff."""

    admission_fee: Decimal = Field(Decimal("0"), ge=0)
    exam_permit_reg_fee: Decimal = Field(Decimal("0"), ge=0)
    special_fee: Decimal = Field(Decimal("0"), ge=0)
    tuition_fee: Decimal = Field(Decimal("0"), ge=0)
    others: Decimal = Field(Decimal("0"), ge=0)

    def to_breakdown(self) -> FeeBreakdown:
        return FeeBreakdown(**self.model_dump())


class SemesterInput(BaseModel):
    semester: int = Field(..., gt=0)
    semester_name: str = Field(..., min_length=1, max_length=100)
    fees: FeeAmounts


class FeeStructureCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    program: str = Field(..., min_length=1, max_length=150)
    program_type: Optional[str] = Field(None, max_length=50, description="UG, PG, diploma")
    academic_year: str = Field(..., min_length=4, max_length=20, description="e.g. 2025-2026")
    description: Optional[str] = None
    semesters: List[SemesterInput] = Field(..., min_length=1)
    hostel_fee: Decimal = Field(Decimal("0"), ge=0)
    effective_date: Optional[date] = None


class FeeStructureUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    program_type: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    semesters: Optional[List[SemesterInput]] = Field(None, min_length=1)
    hostel_fee: Optional[Decimal] = Field(None, ge=0)
    effective_date: Optional[date] = None


class FeeStructureResponse(BaseModel):
    id: UUID
    title: str
    program: str
    program_type: Optional[str] = None
    academic_year: str
    description: Optional[str] = None
    version: int
    semesters: List[SemesterFees]
    grand_total: Decimal
    hostel_fee: Decimal
    effective_date: Optional[date] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
