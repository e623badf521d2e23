"""Student fee assignment router."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.auth.dependencies import get_current_actor
from campus_fees.auth.schemas import CurrentActor
from campus_fees.core.exceptions import ServiceError
from campus_fees.db.session import get_db

from .schemas import (
    AssignFeeStructureRequest,
    CustomizationCreate,
    FeeAssignmentWithDues,
    FeePaymentStatusResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/fee-assignments", tags=["fee-assignments"])


@router.post(
    "/assign/{student_id}",
    response_model=FeeAssignmentWithDues,
    status_code=status.HTTP_201_CREATED,
)
async def assign_fee_structure(
    student_id: UUID,
    payload: AssignFeeStructureRequest,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> FeeAssignmentWithDues:
    try:
        return await service.assign_fee_structure(db, student_id, payload, current_actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/student/{student_id}", response_model=FeeAssignmentWithDues)
async def get_student_assignment(
    student_id: UUID,
    academic_year: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> FeeAssignmentWithDues:
    try:
        return await service.get_active_assignment_for_student(db, student_id, academic_year)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{assignment_id}", response_model=FeeAssignmentWithDues)
async def get_assignment(
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> FeeAssignmentWithDues:
    try:
        return await service.get_assignment(db, assignment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{assignment_id}/customizations", response_model=FeeAssignmentWithDues)
async def add_customization(
    assignment_id: UUID,
    payload: CustomizationCreate,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> FeeAssignmentWithDues:
    try:
        return await service.add_customization(db, assignment_id, payload, current_actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{assignment_id}/deactivate", response_model=FeeAssignmentWithDues)
async def deactivate_assignment(
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> FeeAssignmentWithDues:
    try:
        return await service.deactivate_assignment(db, assignment_id, current_actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{assignment_id}/payment-status", response_model=FeePaymentStatusResponse)
async def get_fee_payment_status(
    assignment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> FeePaymentStatusResponse:
    try:
        return await service.get_fee_payment_status(db, assignment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
