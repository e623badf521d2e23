"""Fee structure catalog service: versioned structures, frozen once assigned."""

import logging
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.auth.schemas import CurrentActor
from campus_fees.core.exceptions import FeeValidationError, ServiceError
from campus_fees.core.ledger import log_fee_audit
from campus_fees.core.models import FeeStructure, StudentFeeAssignment
from campus_fees.fees.domain import ZERO, FeeStructureSnapshot, SemesterFees, to_money

from .schemas import FeeStructureCreate, FeeStructureResponse, FeeStructureUpdate, SemesterInput

logger = logging.getLogger(__name__)


def _build_semesters(items: Sequence[SemesterInput]) -> Tuple[List[SemesterFees], Decimal]:
    """Semester totals and the grand total are always derived from the fee breakdowns."""
    numbers = [s.semester for s in items]
    if len(numbers) != len(set(numbers)):
        raise FeeValidationError("Each semester can only appear once in a fee structure")
    semesters = []
    for item in sorted(items, key=lambda s: s.semester):
        fees = item.fees.to_breakdown()
        semesters.append(
            SemesterFees(
                semester=item.semester,
                semester_name=item.semester_name.strip(),
                fees=fees,
                total=fees.total(),
            )
        )
    grand_total = sum((s.total for s in semesters), ZERO)
    return semesters, grand_total


def _semesters_json(semesters: Sequence[SemesterFees]) -> list:
    return [s.model_dump(mode="json") for s in semesters]


def _fs_to_response(fs: FeeStructure) -> FeeStructureResponse:
    return FeeStructureResponse(
        id=fs.id,
        title=fs.title,
        program=fs.program,
        program_type=fs.program_type,
        academic_year=fs.academic_year,
        description=fs.description,
        version=fs.version,
        semesters=[SemesterFees.model_validate(s) for s in fs.semesters or []],
        grand_total=to_money(fs.grand_total),
        hostel_fee=to_money(fs.hostel_fee),
        effective_date=fs.effective_date,
        is_active=fs.is_active,
        created_at=fs.created_at,
        updated_at=fs.updated_at,
    )


def to_snapshot(fs: FeeStructure) -> FeeStructureSnapshot:
    """Deep copy of the catalog row for embedding in an assignment."""
    return FeeStructureSnapshot(
        title=fs.title,
        program=fs.program,
        program_type=fs.program_type,
        academic_year=fs.academic_year,
        semesters=[SemesterFees.model_validate(s) for s in fs.semesters or []],
        grand_total=to_money(fs.grand_total),
        hostel_fee=to_money(fs.hostel_fee),
    )


async def get_fee_structure_row(db: AsyncSession, structure_id: UUID) -> FeeStructure:
    fs = await db.get(FeeStructure, structure_id)
    if not fs:
        raise ServiceError("Fee structure not found", status.HTTP_404_NOT_FOUND)
    return fs


async def create_fee_structure(
    db: AsyncSession,
    payload: FeeStructureCreate,
    actor: CurrentActor,
) -> FeeStructureResponse:
    semesters, grand_total = _build_semesters(payload.semesters)
    program = payload.program.strip()
    academic_year = payload.academic_year.strip()
    latest = (
        await db.execute(
            select(func.max(FeeStructure.version)).where(
                FeeStructure.program == program,
                FeeStructure.academic_year == academic_year,
            )
        )
    ).scalar()
    fs = FeeStructure(
        title=payload.title.strip(),
        program=program,
        program_type=(payload.program_type or "").strip() or None,
        academic_year=academic_year,
        description=(payload.description or "").strip() or None,
        version=(latest or 0) + 1,
        semesters=_semesters_json(semesters),
        grand_total=grand_total,
        hostel_fee=payload.hostel_fee,
        effective_date=payload.effective_date,
        is_active=True,
        created_by=actor.id,
    )
    db.add(fs)
    await db.flush()
    await log_fee_audit(
        db, "fee_structures", fs.id,
        "CREATE", None,
        {"program": program, "academic_year": academic_year, "version": fs.version,
         "grand_total": str(grand_total), "hostel_fee": str(payload.hostel_fee)},
        actor.id,
    )
    await db.commit()
    await db.refresh(fs)
    logger.info("Created fee structure %s v%s for %s %s", fs.id, fs.version, program, academic_year)
    return _fs_to_response(fs)


async def list_fee_structures(
    db: AsyncSession,
    academic_year: Optional[str] = None,
    program: Optional[str] = None,
    active_only: bool = True,
) -> List[FeeStructureResponse]:
    stmt = select(FeeStructure)
    if academic_year is not None:
        stmt = stmt.where(FeeStructure.academic_year == academic_year)
    if program is not None:
        stmt = stmt.where(FeeStructure.program == program)
    if active_only:
        stmt = stmt.where(FeeStructure.is_active.is_(True))
    stmt = stmt.order_by(FeeStructure.academic_year, FeeStructure.program, FeeStructure.version)
    result = await db.execute(stmt)
    return [_fs_to_response(fs) for fs in result.scalars().all()]


async def get_fee_structure(db: AsyncSession, structure_id: UUID) -> FeeStructureResponse:
    return _fs_to_response(await get_fee_structure_row(db, structure_id))


async def update_fee_structure(
    db: AsyncSession,
    structure_id: UUID,
    payload: FeeStructureUpdate,
    actor: CurrentActor,
) -> FeeStructureResponse:
    fs = await get_fee_structure_row(db, structure_id)
    assigned = (
        await db.execute(
            select(func.count(StudentFeeAssignment.id)).where(
                StudentFeeAssignment.fee_structure_id == structure_id
            )
        )
    ).scalar() or 0
    if assigned:
        raise ServiceError(
            "This fee structure is already assigned to students. Create a new version instead.",
            status.HTTP_409_CONFLICT,
        )

    old = {"grand_total": str(fs.grand_total), "hostel_fee": str(fs.hostel_fee), "title": fs.title}
    if payload.title is not None:
        fs.title = payload.title.strip()
    if payload.program_type is not None:
        fs.program_type = payload.program_type.strip() or None
    if payload.description is not None:
        fs.description = payload.description.strip() or None
    if payload.semesters is not None:
        semesters, grand_total = _build_semesters(payload.semesters)
        fs.semesters = _semesters_json(semesters)
        fs.grand_total = grand_total
    if payload.hostel_fee is not None:
        fs.hostel_fee = payload.hostel_fee
    if payload.effective_date is not None:
        fs.effective_date = payload.effective_date
    await log_fee_audit(
        db, "fee_structures", fs.id,
        "UPDATE", old,
        {"grand_total": str(fs.grand_total), "hostel_fee": str(fs.hostel_fee), "title": fs.title},
        actor.id,
    )
    await db.commit()
    await db.refresh(fs)
    return _fs_to_response(fs)


async def deactivate_fee_structure(
    db: AsyncSession,
    structure_id: UUID,
    actor: CurrentActor,
) -> FeeStructureResponse:
    """Hide a structure from new assignments. Existing snapshots are unaffected."""
    fs = await get_fee_structure_row(db, structure_id)
    fs.is_active = False
    await log_fee_audit(
        db, "fee_structures", fs.id,
        "DEACTIVATE", {"is_active": True}, {"is_active": False},
        actor.id,
    )
    await db.commit()
    await db.refresh(fs)
    return _fs_to_response(fs)
