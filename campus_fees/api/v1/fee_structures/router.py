"""Fee structure catalog router."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.auth.dependencies import get_current_actor
from campus_fees.auth.schemas import CurrentActor
from campus_fees.core.exceptions import ServiceError
from campus_fees.db.session import get_db

from .schemas import FeeStructureCreate, FeeStructureResponse, FeeStructureUpdate
from . import service

router = APIRouter(prefix="/api/v1/fee-structures", tags=["fee-structures"])


@router.post(
    "",
    response_model=FeeStructureResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_fee_structure(
    payload: FeeStructureCreate,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> FeeStructureResponse:
    try:
        return await service.create_fee_structure(db, payload, current_actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("", response_model=List[FeeStructureResponse])
async def list_fee_structures(
    academic_year: Optional[str] = Query(None),
    program: Optional[str] = Query(None),
    active_only: bool = Query(True, description="Return only active structures by default"),
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> List[FeeStructureResponse]:
    return await service.list_fee_structures(
        db,
        academic_year=academic_year,
        program=program,
        active_only=active_only,
    )


@router.get("/{structure_id}", response_model=FeeStructureResponse)
async def get_fee_structure(
    structure_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> FeeStructureResponse:
    try:
        return await service.get_fee_structure(db, structure_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{structure_id}", response_model=FeeStructureResponse)
async def update_fee_structure(
    structure_id: UUID,
    payload: FeeStructureUpdate,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> FeeStructureResponse:
    try:
        return await service.update_fee_structure(db, structure_id, payload, current_actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{structure_id}/deactivate", response_model=FeeStructureResponse)
async def deactivate_fee_structure(
    structure_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> FeeStructureResponse:
    try:
        return await service.deactivate_fee_structure(db, structure_id, current_actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
