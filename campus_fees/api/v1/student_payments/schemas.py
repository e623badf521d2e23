"""Student payment schemas: online orders, verification, office payments, refunds, history."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from campus_fees.core.enums import PaymentMethod, PaymentStatus, PaymentType
from campus_fees.fees.domain import ActorRef, LedgerItem, PaymentSummary


class PaymentSelection(BaseModel):
    """What the payer wants to settle. Amounts are always derived server-side."""

    payment_type: PaymentType
    semester: Optional[int] = Field(None, gt=0)
    selected_fee_types: Optional[List[str]] = None
    academic_year: Optional[str] = Field(None, description="Defaults to the latest active assignment")


class CreateOrderRequest(PaymentSelection):
    pass


class CreateOrderResponse(BaseModel):
    payment_id: UUID
    gateway_order_id: str
    key_id: Optional[str] = None
    payment_type: PaymentType
    semester: Optional[int] = None
    fee_breakdown: List[LedgerItem]
    amount: Decimal
    convenience_fee: Decimal
    total_amount: Decimal
    currency: str


class VerifyPaymentRequest(BaseModel):
    payment_id: UUID
    gateway_order_id: str = Field(..., min_length=1)
    gateway_payment_id: str = Field(..., min_length=1)
    gateway_signature: str = Field(..., min_length=1)


class MarkFailedRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class OfficePaymentRequest(PaymentSelection):
    payment_method: PaymentMethod
    receipt_number: Optional[str] = Field(None, max_length=100)
    transaction_id: Optional[str] = Field(None, max_length=100)
    dd_number: Optional[str] = Field(None, max_length=50)
    cheque_number: Optional[str] = Field(None, max_length=50)
    bank_name: Optional[str] = Field(None, max_length=150)
    branch_name: Optional[str] = Field(None, max_length=150)
    deposit_date: Optional[date] = None
    notes: Optional[str] = None


class RefundLine(BaseModel):
    fee_type: str
    amount: Decimal = Field(..., gt=0)
    semester: Optional[int] = Field(None, gt=0)


class RefundRequest(BaseModel):
    """Omit ``items`` to refund the whole payment."""

    items: Optional[List[RefundLine]] = None
    reason: Optional[str] = Field(None, max_length=500)
    gateway_refund_id: Optional[str] = Field(None, max_length=100)


class ManualPaymentDetails(BaseModel):
    receipt_number: Optional[str] = None
    transaction_id: Optional[str] = None
    dd_number: Optional[str] = None
    cheque_number: Optional[str] = None
    bank_name: Optional[str] = None
    branch_name: Optional[str] = None
    deposit_date: Optional[date] = None


class StatusHistoryEntry(BaseModel):
    from_status: Optional[PaymentStatus] = None
    to_status: PaymentStatus
    changed_by: Optional[str] = None
    reason: Optional[str] = None
    changed_at: datetime


class RefundEntry(BaseModel):
    id: UUID
    items: List[LedgerItem]
    amount: Decimal
    reason: Optional[str] = None
    gateway_refund_id: Optional[str] = None
    refunded_by: Optional[str] = None
    created_at: datetime


class PaymentResponse(BaseModel):
    id: UUID
    student_id: UUID
    student_fee_assignment_id: UUID
    academic_year: str
    payment_type: PaymentType
    semester: Optional[int] = None
    fee_breakdown: List[LedgerItem]
    amount_paid: Decimal
    convenience_fee: Decimal
    total_amount_charged: Decimal
    currency: str
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    payment_source: str
    payment_date: datetime
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    manual_payment_details: Optional[ManualPaymentDetails] = None
    notes: Optional[str] = None
    failure_reason: Optional[str] = None
    processed_by: Optional[ActorRef] = None
    verified_by: Optional[ActorRef] = None
    created_at: datetime
    updated_at: datetime


class PaymentDetailResponse(PaymentResponse):
    status_history: List[StatusHistoryEntry] = []
    refunds: List[RefundEntry] = []


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class PaymentHistoryResponse(BaseModel):
    payments: List[PaymentResponse]
    summary: Optional[PaymentSummary] = None
    pagination: Pagination
