"""
Student payment service: online orders and verification, office payments, refunds, history.

Every write that changes what counts toward balances goes through the assignment's
serialization point (row lock + ledger_version compare-and-set) in ``core.ledger``.
"""

import logging
import uuid
from datetime import timedelta
from typing import List, Optional, Sequence
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.auth.schemas import CurrentActor
from campus_fees.core.config import settings
from campus_fees.core.enums import (
    FEE_TYPE_LABELS,
    PaymentMethod,
    PaymentSource,
    PaymentStatus,
)
from campus_fees.core.exceptions import (
    ConcurrencyConflict,
    FeeValidationError,
    GatewayError,
    InvalidTransitionError,
    ServiceError,
)
from campus_fees.core.ledger import (
    actor_ref,
    claim_ledger_version,
    get_active_assignment_row,
    get_assignment_row,
    items_from_json,
    items_to_json,
    load_ledger,
    payment_to_domain,
    reconcile,
    record_status_change,
)
from campus_fees.core.models import (
    PaymentRefund,
    PaymentStatusHistory,
    StudentFeeAssignment,
    StudentPayment,
)
from campus_fees.db.types import utcnow
from campus_fees.fees.domain import (
    ZERO,
    LedgerItem,
    OrderIntent,
    OrderQuote,
    PaymentRecord,
    as_utc,
)
from campus_fees.fees.gateway import PaymentGateway
from campus_fees.fees.orders import build_order, exhausted_fee_keys, overlapping_fee_keys
from campus_fees.fees.reconciliation import payment_summary
from campus_fees.fees.refunds import resolve_refund
from campus_fees.fees.state_machine import IN_FLIGHT_STATUSES

from .schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    ManualPaymentDetails,
    MarkFailedRequest,
    OfficePaymentRequest,
    Pagination,
    PaymentDetailResponse,
    PaymentHistoryResponse,
    PaymentResponse,
    PaymentSelection,
    RefundEntry,
    RefundRequest,
    StatusHistoryEntry,
    VerifyPaymentRequest,
)

logger = logging.getLogger(__name__)


# --- Response builders ---
def _payment_to_response(p: StudentPayment) -> PaymentResponse:
    manual = None
    if p.payment_source == PaymentSource.manual_office.value:
        manual = ManualPaymentDetails(
            receipt_number=p.receipt_number,
            transaction_id=p.transaction_id,
            dd_number=p.dd_number,
            cheque_number=p.cheque_number,
            bank_name=p.bank_name,
            branch_name=p.branch_name,
            deposit_date=p.deposit_date,
        )
    return PaymentResponse(
        id=p.id,
        student_id=p.student_id,
        student_fee_assignment_id=p.student_fee_assignment_id,
        academic_year=p.academic_year,
        payment_type=p.payment_type,
        semester=p.semester,
        fee_breakdown=items_from_json(p.fee_breakdown),
        amount_paid=p.amount_paid,
        convenience_fee=p.convenience_fee,
        total_amount_charged=p.total_amount_charged,
        currency=p.currency,
        payment_status=p.payment_status,
        payment_method=p.payment_method,
        payment_source=p.payment_source,
        payment_date=p.payment_date,
        gateway_order_id=p.gateway_order_id,
        gateway_payment_id=p.gateway_payment_id,
        manual_payment_details=manual,
        notes=p.notes,
        failure_reason=p.failure_reason,
        processed_by=actor_ref(p.processed_by_id, p.processed_by_name, p.processed_by_email),
        verified_by=actor_ref(p.verified_by_id, p.verified_by_name, p.verified_by_email),
        created_at=p.created_at,
        updated_at=p.updated_at,
    )


async def _payment_detail(db: AsyncSession, p: StudentPayment) -> PaymentDetailResponse:
    history = (
        await db.execute(
            select(PaymentStatusHistory)
            .where(PaymentStatusHistory.payment_id == p.id)
            .order_by(PaymentStatusHistory.changed_at)
        )
    ).scalars().all()
    refunds = (
        await db.execute(
            select(PaymentRefund)
            .where(PaymentRefund.payment_id == p.id)
            .order_by(PaymentRefund.created_at)
        )
    ).scalars().all()
    base = _payment_to_response(p)
    return PaymentDetailResponse(
        **base.model_dump(),
        status_history=[
            StatusHistoryEntry(
                from_status=h.from_status,
                to_status=h.to_status,
                changed_by=h.changed_by_name,
                reason=h.reason,
                changed_at=h.changed_at,
            )
            for h in history
        ],
        refunds=[
            RefundEntry(
                id=r.id,
                items=items_from_json(r.refund_breakdown),
                amount=r.amount,
                reason=r.reason,
                gateway_refund_id=r.gateway_refund_id,
                refunded_by=r.refunded_by_name,
                created_at=r.created_at,
            )
            for r in refunds
        ],
    )


async def get_payment_row(
    db: AsyncSession,
    payment_id: UUID,
    for_update: bool = False,
) -> StudentPayment:
    stmt = select(StudentPayment).where(StudentPayment.id == payment_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    payment = (await db.execute(stmt)).scalar_one_or_none()
    if not payment:
        raise ServiceError("Payment not found", status.HTTP_404_NOT_FOUND)
    return payment


# --- Order pricing under the assignment lock ---
def _in_flight(payments: Sequence[PaymentRecord]) -> List[PaymentRecord]:
    """Unfinished payments still inside the hold window."""
    cutoff = utcnow() - timedelta(minutes=settings.order_hold_minutes)
    return [
        p for p in payments
        if p.payment_status in IN_FLIGHT_STATUSES
        and p.created_at is not None
        and as_utc(p.created_at) >= cutoff
    ]


async def _price_selection(
    db: AsyncSession,
    sfa: StudentFeeAssignment,
    selection: PaymentSelection,
    payment_source: PaymentSource,
) -> OrderQuote:
    assignment, payments = await load_ledger(db, sfa)
    current = reconcile(assignment, payments)
    quote = build_order(
        assignment,
        payments,
        OrderIntent(
            payment_type=selection.payment_type,
            semester=selection.semester,
            selected_fee_types=selection.selected_fee_types,
            payment_source=payment_source,
        ),
        status=current,
        convenience_rate=settings.convenience_fee_rate,
    )
    overlap = overlapping_fee_keys(quote, _in_flight(payments))
    if overlap:
        labels = sorted({FEE_TYPE_LABELS.get(fee_key, fee_key) for _, fee_key in overlap})
        logger.warning(
            "Blocked overlapping order on assignment %s: %s already in progress", sfa.id, labels
        )
        raise ConcurrencyConflict(
            f"A payment for {', '.join(labels)} is already in progress. "
            "Please wait a few minutes and try again."
        )
    return quote


def _new_payment(
    sfa: StudentFeeAssignment,
    quote: OrderQuote,
    payment_method: PaymentMethod,
) -> StudentPayment:
    # Explicit id so status history rows can reference it before flush.
    return StudentPayment(
        id=uuid.uuid4(),
        student_fee_assignment_id=sfa.id,
        student_id=sfa.student_id,
        academic_year=sfa.academic_year,
        payment_type=quote.payment_type.value,
        semester=quote.semester,
        fee_breakdown=items_to_json(quote.fee_breakdown),
        amount_paid=quote.amount,
        convenience_fee=quote.convenience_fee,
        total_amount_charged=quote.total_amount,
        currency=settings.payment_currency,
        payment_method=payment_method.value,
        payment_source=quote.payment_source.value,
        payment_date=utcnow(),
    )


# --- Online payments ---
async def create_online_order(
    db: AsyncSession,
    gateway: PaymentGateway,
    student_id: UUID,
    payload: CreateOrderRequest,
    actor: CurrentActor,
) -> CreateOrderResponse:
    """Price the selection, open a gateway order and persist the pending payment."""
    sfa = await get_active_assignment_row(db, student_id, payload.academic_year, for_update=True)
    seen_version = sfa.ledger_version
    quote = await _price_selection(db, sfa, payload, PaymentSource.online_gateway)
    await claim_ledger_version(db, sfa.id, seen_version)

    payment = _new_payment(sfa, quote, PaymentMethod.razorpay_online)
    try:
        order = await gateway.create_order(
            quote.total_amount,
            settings.payment_currency,
            {
                "receipt": f"fee_{payment.id.hex[:20]}",
                "payment_id": str(payment.id),
                "student_id": str(student_id),
                "payment_type": quote.payment_type.value,
            },
        )
    except GatewayError:
        await db.rollback()
        raise

    payment.gateway_order_id = order.gateway_order_id
    payment.processed_by_id = actor.id
    payment.processed_by_name = actor.name
    payment.processed_by_email = actor.email
    db.add(payment)
    await record_status_change(
        db, payment, PaymentStatus.pending.value, actor.ref(), "Online order created", initial=True
    )
    await db.commit()
    logger.info(
        "Created order %s for student %s: %s %s + fee %s",
        order.gateway_order_id, student_id, quote.payment_type.value, quote.amount, quote.convenience_fee,
    )
    return CreateOrderResponse(
        payment_id=payment.id,
        gateway_order_id=order.gateway_order_id,
        key_id=gateway.key_id,
        payment_type=quote.payment_type,
        semester=quote.semester,
        fee_breakdown=quote.fee_breakdown,
        amount=quote.amount,
        convenience_fee=quote.convenience_fee,
        total_amount=quote.total_amount,
        currency=settings.payment_currency,
    )


async def _find_by_gateway_payment_id(db: AsyncSession, gateway_payment_id: str) -> Optional[StudentPayment]:
    return (
        await db.execute(
            select(StudentPayment).where(StudentPayment.gateway_payment_id == gateway_payment_id)
        )
    ).scalar_one_or_none()


async def _already_verified(
    db: AsyncSession,
    existing: StudentPayment,
    payment_id: UUID,
) -> PaymentDetailResponse:
    if existing.id != payment_id:
        raise FeeValidationError("This gateway payment is already linked to another payment")
    logger.info("Ignoring duplicate verification for payment %s", existing.id)
    return await _payment_detail(db, existing)


async def verify_online_payment(
    db: AsyncSession,
    gateway: PaymentGateway,
    payload: VerifyPaymentRequest,
    actor: CurrentActor,
) -> PaymentDetailResponse:
    """
    Confirm a gateway callback. Repeated callbacks for the same gateway payment return the
    stored payment unchanged. Amounts are never recomputed here.
    """
    existing = await _find_by_gateway_payment_id(db, payload.gateway_payment_id)
    if existing is not None:
        return await _already_verified(db, existing, payload.payment_id)

    payment = await get_payment_row(db, payload.payment_id)
    sfa = await get_assignment_row(db, payment.student_fee_assignment_id, for_update=True)
    seen_version = sfa.ledger_version
    payment = await get_payment_row(db, payload.payment_id, for_update=True)
    if payment.gateway_payment_id == payload.gateway_payment_id:
        # The callback this one raced with committed before the lock was granted.
        return await _already_verified(db, payment, payload.payment_id)
    if payment.payment_source != PaymentSource.online_gateway.value:
        raise FeeValidationError("Only online payments can be verified")
    if payment.gateway_order_id != payload.gateway_order_id:
        raise FeeValidationError("Order id does not match this payment")
    if payment.payment_status != PaymentStatus.pending.value:
        raise InvalidTransitionError(payment.payment_status, PaymentStatus.processing.value)

    try:
        valid = await gateway.verify(
            str(payment.id),
            payload.gateway_payment_id,
            payload.gateway_order_id,
            payload.gateway_signature,
        )
    except GatewayError as e:
        payment.failure_reason = e.message
        await record_status_change(db, payment, PaymentStatus.failed.value, actor.ref(), e.message)
        await db.commit()
        raise

    if not valid:
        reason = "Payment signature verification failed"
        payment.failure_reason = reason
        await record_status_change(db, payment, PaymentStatus.failed.value, actor.ref(), reason)
        await db.commit()
        logger.warning("Invalid gateway signature for payment %s (order %s)", payment.id, payment.gateway_order_id)
        raise GatewayError("Payment verification failed", status.HTTP_400_BAD_REQUEST)

    # An order older than the hold window may have been overtaken by another payment.
    assignment, payments = await load_ledger(db, sfa)
    exhausted = exhausted_fee_keys(reconcile(assignment, payments), payment_to_domain(payment))
    if exhausted:
        labels = sorted({FEE_TYPE_LABELS.get(fee_key, fee_key) for _, fee_key in exhausted})
        reason = (
            f"{', '.join(labels)} already settled by another payment; "
            f"gateway payment {payload.gateway_payment_id} must be refunded"
        )
        payment.failure_reason = reason
        await record_status_change(db, payment, PaymentStatus.failed.value, actor.ref(), reason)
        await db.commit()
        logger.warning("Rejected stale order %s on assignment %s: %s", payment.gateway_order_id, sfa.id, reason)
        raise ConcurrencyConflict(
            f"{', '.join(labels)} has already been paid. This payment will be refunded."
        )

    await claim_ledger_version(db, sfa.id, seen_version)
    # Set last so a duplicate gateway payment id surfaces at commit, not in an autoflush.
    payment.gateway_payment_id = payload.gateway_payment_id
    await record_status_change(db, payment, PaymentStatus.processing.value, actor.ref(), "Signature verified")
    await record_status_change(db, payment, PaymentStatus.completed.value, actor.ref(), "Payment captured")
    payment.verified_by_id = actor.id
    payment.verified_by_name = actor.name
    payment.verified_by_email = actor.email
    payment.payment_date = utcnow()
    payment_id = payment.id
    try:
        await db.commit()
    except IntegrityError:
        # Another callback stored the same gateway payment first.
        await db.rollback()
        existing = await _find_by_gateway_payment_id(db, payload.gateway_payment_id)
        if existing is None:
            raise
        return await _already_verified(db, existing, payment_id)

    await db.refresh(payment)
    logger.info("Verified payment %s (%s %s)", payment.id, payment.total_amount_charged, payment.currency)
    return await _payment_detail(db, payment)


async def mark_payment_failed(
    db: AsyncSession,
    payment_id: UUID,
    payload: MarkFailedRequest,
    actor: CurrentActor,
) -> PaymentDetailResponse:
    payment = await get_payment_row(db, payment_id, for_update=True)
    reason = (payload.reason or "").strip() or "Payment cancelled or failed at the gateway"
    await record_status_change(db, payment, PaymentStatus.failed.value, actor.ref(), reason)
    payment.failure_reason = reason
    await db.commit()
    await db.refresh(payment)
    logger.info("Payment %s marked failed: %s", payment.id, reason)
    return await _payment_detail(db, payment)


# --- Office payments ---
def _check_manual_details(payload: OfficePaymentRequest) -> None:
    method = payload.payment_method
    if method == PaymentMethod.razorpay_online:
        raise FeeValidationError("Online payments must be made through the payment gateway")
    if method == PaymentMethod.dd and not payload.dd_number:
        raise FeeValidationError("DD number is required for DD payments")
    if method == PaymentMethod.cheque and not payload.cheque_number:
        raise FeeValidationError("Cheque number is required for cheque payments")


async def record_office_payment(
    db: AsyncSession,
    student_id: UUID,
    payload: OfficePaymentRequest,
    actor: CurrentActor,
) -> PaymentDetailResponse:
    """Record a cash/bank/DD/cheque payment taken at the office. No convenience fee applies."""
    _check_manual_details(payload)
    sfa = await get_active_assignment_row(db, student_id, payload.academic_year, for_update=True)
    seen_version = sfa.ledger_version
    quote = await _price_selection(db, sfa, payload, PaymentSource.manual_office)
    await claim_ledger_version(db, sfa.id, seen_version)

    payment = _new_payment(sfa, quote, payload.payment_method)
    payment.receipt_number = payload.receipt_number
    payment.transaction_id = payload.transaction_id
    payment.dd_number = payload.dd_number
    payment.cheque_number = payload.cheque_number
    payment.bank_name = payload.bank_name
    payment.branch_name = payload.branch_name
    payment.deposit_date = payload.deposit_date
    payment.notes = (payload.notes or "").strip() or None
    payment.processed_by_id = actor.id
    payment.processed_by_name = actor.name
    payment.processed_by_email = actor.email
    payment.verified_by_id = actor.id
    payment.verified_by_name = actor.name
    payment.verified_by_email = actor.email
    db.add(payment)

    ref = actor.ref()
    await record_status_change(db, payment, PaymentStatus.pending.value, ref, "Office payment recorded", initial=True)
    await record_status_change(db, payment, PaymentStatus.processing.value, ref)
    await record_status_change(db, payment, PaymentStatus.completed.value, ref, f"Paid by {payload.payment_method.value}")
    await db.commit()
    await db.refresh(payment)
    logger.info(
        "Office payment %s recorded for student %s: %s via %s (by %s)",
        payment.id, student_id, quote.amount, payload.payment_method.value, actor.name,
    )
    return await _payment_detail(db, payment)


# --- Refunds ---
async def refund_payment(
    db: AsyncSession,
    payment_id: UUID,
    payload: RefundRequest,
    actor: CurrentActor,
) -> PaymentDetailResponse:
    """Reverse all or part of a completed payment. Only the refunded lines stop counting."""
    payment = await get_payment_row(db, payment_id)
    sfa = await get_assignment_row(db, payment.student_fee_assignment_id, for_update=True)
    seen_version = sfa.ledger_version
    payment = await get_payment_row(db, payment_id, for_update=True)
    if payment.payment_status != PaymentStatus.completed.value:
        raise InvalidTransitionError(payment.payment_status, PaymentStatus.refunded.value)

    lines = None
    if payload.items:
        lines = [LedgerItem(**line.model_dump()) for line in payload.items]
    refunded, new_status = resolve_refund(payment_to_domain(payment), lines)
    amount = sum((item.amount for item in refunded), ZERO)
    reason = (payload.reason or "").strip() or None

    db.add(
        PaymentRefund(
            payment_id=payment.id,
            refund_breakdown=items_to_json(refunded),
            amount=amount,
            reason=reason,
            gateway_refund_id=payload.gateway_refund_id,
            refunded_by_id=actor.id,
            refunded_by_name=actor.name,
        )
    )
    await record_status_change(db, payment, new_status.value, actor.ref(), reason)
    await claim_ledger_version(db, sfa.id, seen_version)
    await db.commit()
    await db.refresh(payment)
    logger.info("Refunded %s of payment %s (%s)", amount, payment.id, new_status.value)
    return await _payment_detail(db, payment)


# --- Queries ---
async def get_payment(db: AsyncSession, payment_id: UUID) -> PaymentDetailResponse:
    return await _payment_detail(db, await get_payment_row(db, payment_id))


async def get_payment_history(
    db: AsyncSession,
    student_id: UUID,
    academic_year: Optional[str] = None,
    payment_status: Optional[PaymentStatus] = None,
    semester: Optional[int] = None,
    payment_method: Optional[PaymentMethod] = None,
    page: int = 1,
    limit: int = 10,
) -> PaymentHistoryResponse:
    stmt = select(StudentPayment).where(StudentPayment.student_id == student_id)
    if academic_year is not None:
        stmt = stmt.where(StudentPayment.academic_year == academic_year)
    if payment_status is not None:
        stmt = stmt.where(StudentPayment.payment_status == payment_status.value)
    if semester is not None:
        stmt = stmt.where(StudentPayment.semester == semester)
    if payment_method is not None:
        stmt = stmt.where(StudentPayment.payment_method == payment_method.value)

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar() or 0
    rows = (
        await db.execute(
            stmt.order_by(StudentPayment.created_at.desc()).offset((page - 1) * limit).limit(limit)
        )
    ).scalars().all()

    # Summary covers the whole ledger of the matching active assignment, not just this page.
    sfa_stmt = select(StudentFeeAssignment).where(
        StudentFeeAssignment.student_id == student_id,
        StudentFeeAssignment.is_active.is_(True),
    )
    if academic_year is not None:
        sfa_stmt = sfa_stmt.where(StudentFeeAssignment.academic_year == academic_year)
    sfa = (
        await db.execute(sfa_stmt.order_by(StudentFeeAssignment.assigned_at.desc()).limit(1))
    ).scalar_one_or_none()
    summary = None
    if sfa is not None:
        assignment, payments = await load_ledger(db, sfa)
        summary = payment_summary(reconcile(assignment, payments), payments)

    return PaymentHistoryResponse(
        payments=[_payment_to_response(p) for p in rows],
        summary=summary,
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            pages=(total + limit - 1) // limit,
        ),
    )
