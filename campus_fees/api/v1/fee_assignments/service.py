"""Fee assignment service: snapshot assignment, customizations, payment status."""

import logging
from typing import Optional, Sequence
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.api.v1.fee_structures.service import get_fee_structure_row, to_snapshot
from campus_fees.auth.schemas import CurrentActor
from campus_fees.core.exceptions import DataIntegrityError, FeeValidationError, ServiceError
from campus_fees.core.ledger import (
    actor_ref,
    assignment_to_domain,
    claim_ledger_version,
    customization_to_domain,
    get_active_assignment_row,
    get_assignment_row,
    load_customization_rows,
    load_ledger,
    log_fee_audit,
    reconcile,
)
from campus_fees.core.models import FeeCustomization, StudentFeeAssignment
from campus_fees.db.types import utcnow
from campus_fees.fees.domain import ZERO, SemesterFees
from campus_fees.fees.reconciliation import effective_fees, validate_snapshot

from .schemas import (
    AssignFeeStructureRequest,
    CustomizationCreate,
    CustomizationResponse,
    FeeAssignmentWithDues,
    FeePaymentStatusResponse,
)

logger = logging.getLogger(__name__)


def _customization_to_response(row: FeeCustomization) -> CustomizationResponse:
    domain = customization_to_domain(row)
    return CustomizationResponse(
        id=row.id,
        sequence=row.sequence,
        semester=domain.semester,
        fees=domain.fees,
        reason=domain.reason,
        customized_by=domain.customized_by,
        customized_at=domain.customized_at,
    )


def _sfa_to_response(
    sfa: StudentFeeAssignment,
    customizations: Sequence[FeeCustomization],
) -> FeeAssignmentWithDues:
    assignment = assignment_to_domain(sfa, customizations)
    effective = []
    for sem in assignment.snapshot.semesters:
        fees = effective_fees(assignment, sem.semester)
        effective.append(
            SemesterFees(
                semester=sem.semester,
                semester_name=sem.semester_name,
                fees=fees,
                total=fees.total(),
            )
        )
    return FeeAssignmentWithDues(
        id=sfa.id,
        student_id=sfa.student_id,
        fee_structure_id=sfa.fee_structure_id,
        academic_year=sfa.academic_year,
        fee_structure_snapshot=assignment.snapshot,
        customizations=[_customization_to_response(c) for c in customizations],
        notes=sfa.notes,
        assigned_by=actor_ref(sfa.assigned_by_id, sfa.assigned_by_name, sfa.assigned_by_email),
        assigned_at=sfa.assigned_at,
        is_active=sfa.is_active,
        ledger_version=sfa.ledger_version,
        created_at=sfa.created_at,
        updated_at=sfa.updated_at,
        effective_semesters=effective,
        effective_grand_total=sum((s.total for s in effective), ZERO),
    )


async def _to_response(db: AsyncSession, sfa: StudentFeeAssignment) -> FeeAssignmentWithDues:
    customizations = await load_customization_rows(db, sfa.id)
    return _sfa_to_response(sfa, customizations)


async def assign_fee_structure(
    db: AsyncSession,
    student_id: UUID,
    payload: AssignFeeStructureRequest,
    actor: CurrentActor,
) -> FeeAssignmentWithDues:
    """Assign a catalog structure to a student as a deep-copied snapshot."""
    fs = await get_fee_structure_row(db, payload.fee_structure_id)
    if not fs.is_active:
        raise FeeValidationError("This fee structure is no longer active")

    existing = (
        await db.execute(
            select(StudentFeeAssignment.id).where(
                StudentFeeAssignment.student_id == student_id,
                StudentFeeAssignment.academic_year == fs.academic_year,
                StudentFeeAssignment.is_active.is_(True),
            )
        )
    ).scalar_one_or_none()
    if existing:
        raise ServiceError(
            f"Student already has an active fee assignment for {fs.academic_year}",
            status.HTTP_409_CONFLICT,
        )

    snapshot = to_snapshot(fs)
    try:
        validate_snapshot(snapshot)
    except DataIntegrityError as e:
        logger.error("Fee structure %s cannot be assigned: %s", fs.id, e.detail)
        raise

    sfa = StudentFeeAssignment(
        student_id=student_id,
        fee_structure_id=fs.id,
        academic_year=fs.academic_year,
        fee_structure_snapshot=snapshot.model_dump(mode="json"),
        notes=(payload.notes or "").strip() or None,
        assigned_by_id=actor.id,
        assigned_by_name=actor.name,
        assigned_by_email=actor.email,
        assigned_at=utcnow(),
        is_active=True,
        ledger_version=0,
    )
    db.add(sfa)
    await db.flush()
    await log_fee_audit(
        db, "student_fee_assignments", sfa.id,
        "CREATE", None,
        {"student_id": str(student_id), "fee_structure_id": str(fs.id),
         "academic_year": fs.academic_year, "grand_total": str(snapshot.grand_total)},
        actor.id,
    )
    await db.commit()
    await db.refresh(sfa)
    logger.info("Assigned fee structure %s to student %s", fs.id, student_id)
    return _sfa_to_response(sfa, [])


async def get_assignment(db: AsyncSession, assignment_id: UUID) -> FeeAssignmentWithDues:
    sfa = await get_assignment_row(db, assignment_id)
    return await _to_response(db, sfa)


async def get_active_assignment_for_student(
    db: AsyncSession,
    student_id: UUID,
    academic_year: Optional[str] = None,
) -> FeeAssignmentWithDues:
    sfa = await get_active_assignment_row(db, student_id, academic_year)
    return await _to_response(db, sfa)


async def add_customization(
    db: AsyncSession,
    assignment_id: UUID,
    payload: CustomizationCreate,
    actor: CurrentActor,
) -> FeeAssignmentWithDues:
    """Append a per-semester override. Earlier customizations are kept as history."""
    sfa = await get_assignment_row(db, assignment_id, for_update=True)
    if not sfa.is_active:
        raise FeeValidationError("Cannot customize an inactive fee assignment")
    fees = payload.fees.to_partial()
    if fees.is_empty():
        raise FeeValidationError("Specify at least one fee type to customize")

    seen_version = sfa.ledger_version
    rows = await load_customization_rows(db, sfa.id)
    assignment = assignment_to_domain(sfa, rows)
    if assignment.snapshot.semester(payload.semester) is None:
        raise FeeValidationError(f"Semester {payload.semester} is not part of this fee structure")

    row = FeeCustomization(
        student_fee_assignment_id=sfa.id,
        sequence=len(rows) + 1,
        semester=payload.semester,
        fees=fees.model_dump(mode="json", exclude_none=True),
        reason=(payload.reason or "").strip() or None,
        customized_by_id=actor.id,
        customized_by_name=actor.name,
        customized_by_email=actor.email,
        customized_at=utcnow(),
    )
    before = effective_fees(assignment, payload.semester)
    assignment.customizations.append(customization_to_domain(row))
    after = effective_fees(assignment, payload.semester)

    db.add(row)
    await db.flush()
    await claim_ledger_version(db, sfa.id, seen_version)
    await log_fee_audit(
        db, "student_fee_assignments", sfa.id,
        "UPDATE",
        {"semester": payload.semester, "fees": before.model_dump(mode="json")},
        {"semester": payload.semester, "fees": after.model_dump(mode="json"), "reason": row.reason},
        actor.id,
    )
    await db.commit()
    await db.refresh(sfa)
    logger.info(
        "Customized semester %s fees on assignment %s (by %s)", payload.semester, sfa.id, actor.name
    )
    return await _to_response(db, sfa)


async def deactivate_assignment(
    db: AsyncSession,
    assignment_id: UUID,
    actor: CurrentActor,
) -> FeeAssignmentWithDues:
    sfa = await get_assignment_row(db, assignment_id, for_update=True)
    if not sfa.is_active:
        raise FeeValidationError("Fee assignment is already inactive")
    sfa.is_active = False
    await log_fee_audit(
        db, "student_fee_assignments", sfa.id,
        "DEACTIVATE", {"is_active": True}, {"is_active": False},
        actor.id,
    )
    await db.commit()
    await db.refresh(sfa)
    return await _to_response(db, sfa)


async def get_fee_payment_status(db: AsyncSession, assignment_id: UUID) -> FeePaymentStatusResponse:
    sfa = await get_assignment_row(db, assignment_id)
    assignment, payments = await load_ledger(db, sfa)
    return FeePaymentStatusResponse(
        assignment_id=sfa.id,
        student_id=sfa.student_id,
        academic_year=sfa.academic_year,
        payment_status=reconcile(assignment, payments),
    )
