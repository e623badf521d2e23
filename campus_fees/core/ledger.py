"""
Ledger access shared by the fee services: loading assignment/payment rows as engine
inputs, the per-assignment serialization point, status history and audit entries.
Callers commit.
"""

import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.core.exceptions import ConcurrencyConflict, DataIntegrityError, ServiceError
from campus_fees.core.models import (
    FeeAuditLog,
    FeeCustomization,
    PaymentRefund,
    PaymentStatusHistory,
    StudentFeeAssignment,
    StudentPayment,
)
from campus_fees.fees.domain import (
    ActorRef,
    Customization,
    FeeAssignment,
    FeeStructureSnapshot,
    LedgerItem,
    PartialFeeBreakdown,
    PaymentRecord,
    StudentPaymentStatus,
)
from campus_fees.fees.reconciliation import compute_status
from campus_fees.fees.state_machine import ensure_transition

logger = logging.getLogger(__name__)


def _to_uuid(val):
    if val is None:
        return None
    return val if isinstance(val, UUID) else UUID(str(val))


# --- Audit helper ---
async def log_fee_audit(
    db: AsyncSession,
    reference_table: str,
    reference_id: UUID,
    action_type: str,
    old_value: Optional[dict],
    new_value: Optional[dict],
    changed_by: Optional[UUID],
) -> None:
    log = FeeAuditLog(
        reference_table=reference_table,
        reference_id=reference_id,
        action_type=action_type,
        old_value=old_value,
        new_value=new_value,
        changed_by=changed_by,
    )
    db.add(log)


# --- JSON <-> ledger items ---
def items_to_json(items: Iterable[LedgerItem]) -> List[dict]:
    return [item.model_dump(mode="json") for item in items]


def items_from_json(raw: Optional[Sequence[dict]]) -> List[LedgerItem]:
    return [LedgerItem.model_validate(entry) for entry in raw or []]


# --- Row loading ---
async def get_assignment_row(
    db: AsyncSession,
    assignment_id: UUID,
    for_update: bool = False,
) -> StudentFeeAssignment:
    stmt = select(StudentFeeAssignment).where(StudentFeeAssignment.id == assignment_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    sfa = (await db.execute(stmt)).scalar_one_or_none()
    if not sfa:
        raise ServiceError("Student fee assignment not found", status.HTTP_404_NOT_FOUND)
    return sfa


async def get_active_assignment_row(
    db: AsyncSession,
    student_id: UUID,
    academic_year: Optional[str] = None,
    for_update: bool = False,
) -> StudentFeeAssignment:
    """The student's active assignment; the most recently assigned one when no year is given."""
    stmt = select(StudentFeeAssignment).where(
        StudentFeeAssignment.student_id == student_id,
        StudentFeeAssignment.is_active.is_(True),
    )
    if academic_year is not None:
        stmt = stmt.where(StudentFeeAssignment.academic_year == academic_year)
    stmt = stmt.order_by(StudentFeeAssignment.assigned_at.desc()).limit(1)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    sfa = (await db.execute(stmt)).scalar_one_or_none()
    if not sfa:
        raise ServiceError("No active fee assignment found for this student", status.HTTP_404_NOT_FOUND)
    return sfa


async def load_customization_rows(db: AsyncSession, assignment_id: UUID) -> List[FeeCustomization]:
    result = await db.execute(
        select(FeeCustomization)
        .where(FeeCustomization.student_fee_assignment_id == assignment_id)
        .order_by(FeeCustomization.sequence)
    )
    return list(result.scalars().all())


async def load_payment_rows(db: AsyncSession, assignment_id: UUID) -> List[StudentPayment]:
    result = await db.execute(
        select(StudentPayment)
        .where(StudentPayment.student_fee_assignment_id == assignment_id)
        .order_by(StudentPayment.created_at)
    )
    return list(result.scalars().all())


async def load_refund_rows(
    db: AsyncSession,
    payment_ids: Sequence[UUID],
) -> Dict[UUID, List[PaymentRefund]]:
    grouped: Dict[UUID, List[PaymentRefund]] = defaultdict(list)
    if not payment_ids:
        return grouped
    result = await db.execute(
        select(PaymentRefund)
        .where(PaymentRefund.payment_id.in_(list(payment_ids)))
        .order_by(PaymentRefund.created_at)
    )
    for refund in result.scalars().all():
        grouped[_to_uuid(refund.payment_id)].append(refund)
    return grouped


# --- Rows -> engine inputs ---
def actor_ref(actor_id, name: Optional[str], email: Optional[str]) -> Optional[ActorRef]:
    if not name:
        return None
    return ActorRef(id=_to_uuid(actor_id), name=name, email=email)


def customization_to_domain(row: FeeCustomization) -> Customization:
    return Customization(
        semester=row.semester,
        fees=PartialFeeBreakdown.model_validate(row.fees or {}),
        reason=row.reason,
        customized_by=actor_ref(row.customized_by_id, row.customized_by_name, row.customized_by_email),
        customized_at=row.customized_at,
    )


def assignment_to_domain(
    sfa: StudentFeeAssignment,
    customizations: Sequence[FeeCustomization],
) -> FeeAssignment:
    return FeeAssignment(
        id=_to_uuid(sfa.id),
        student_id=_to_uuid(sfa.student_id),
        snapshot=FeeStructureSnapshot.model_validate(sfa.fee_structure_snapshot),
        customizations=[customization_to_domain(c) for c in customizations],
        is_active=sfa.is_active,
    )


def payment_to_domain(
    row: StudentPayment,
    refunds: Sequence[PaymentRefund] = (),
) -> PaymentRecord:
    refunded: List[LedgerItem] = []
    for refund in refunds:
        refunded.extend(items_from_json(refund.refund_breakdown))
    return PaymentRecord(
        id=_to_uuid(row.id),
        payment_type=row.payment_type,
        semester=row.semester,
        fee_breakdown=items_from_json(row.fee_breakdown),
        amount_paid=row.amount_paid,
        convenience_fee=row.convenience_fee,
        total_amount_charged=row.total_amount_charged,
        payment_status=row.payment_status,
        refunded=refunded,
        created_at=row.created_at,
    )


async def load_ledger(
    db: AsyncSession,
    sfa: StudentFeeAssignment,
) -> Tuple[FeeAssignment, List[PaymentRecord]]:
    """Engine inputs for one assignment: snapshot + customizations, and its full payment ledger."""
    customizations = await load_customization_rows(db, sfa.id)
    rows = await load_payment_rows(db, sfa.id)
    refunds = await load_refund_rows(db, [r.id for r in rows])
    payments = [payment_to_domain(r, refunds.get(_to_uuid(r.id), [])) for r in rows]
    return assignment_to_domain(sfa, customizations), payments


def reconcile(assignment: FeeAssignment, payments: Sequence[PaymentRecord]) -> StudentPaymentStatus:
    try:
        return compute_status(assignment, payments)
    except DataIntegrityError as e:
        logger.error("Fee data integrity error on assignment %s: %s", assignment.id, e.detail)
        raise


# --- Serialization point ---
async def claim_ledger_version(db: AsyncSession, assignment_id: UUID, seen_version: int) -> int:
    """
    Compare-and-set the assignment's ledger_version. Raises ConcurrencyConflict when another
    writer changed the ledger since ``seen_version`` was read.
    """
    result = await db.execute(
        update(StudentFeeAssignment)
        .where(
            StudentFeeAssignment.id == assignment_id,
            StudentFeeAssignment.ledger_version == seen_version,
        )
        .values(ledger_version=seen_version + 1)
    )
    if result.rowcount != 1:
        logger.warning(
            "Ledger version conflict on assignment %s (expected version %s)", assignment_id, seen_version
        )
        raise ConcurrencyConflict()
    return seen_version + 1


# --- Payment status changes ---
async def record_status_change(
    db: AsyncSession,
    payment: StudentPayment,
    to_status: str,
    actor: Optional[ActorRef] = None,
    reason: Optional[str] = None,
    initial: bool = False,
) -> None:
    """Apply one state machine transition and append its history and audit rows."""
    from_status = None if initial else payment.payment_status
    if not initial:
        ensure_transition(from_status, to_status)
    payment.payment_status = to_status
    db.add(
        PaymentStatusHistory(
            payment_id=payment.id,
            from_status=from_status,
            to_status=to_status,
            changed_by_id=actor.id if actor else None,
            changed_by_name=actor.name if actor else None,
            reason=reason,
        )
    )
    await log_fee_audit(
        db,
        "student_payments",
        payment.id,
        "CREATE" if initial else "STATUS_CHANGE",
        None if initial else {"payment_status": from_status},
        {"payment_status": to_status, "reason": reason},
        actor.id if actor else None,
    )
