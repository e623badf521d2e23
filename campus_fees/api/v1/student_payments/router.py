"""Student payment router: online checkout, office payments, refunds and history."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_fees.auth.dependencies import get_current_actor
from campus_fees.auth.schemas import CurrentActor
from campus_fees.core.enums import PaymentMethod, PaymentStatus
from campus_fees.core.exceptions import ServiceError
from campus_fees.db.session import get_db
from campus_fees.fees.gateway import PaymentGateway, get_payment_gateway

from .schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    MarkFailedRequest,
    OfficePaymentRequest,
    PaymentDetailResponse,
    PaymentHistoryResponse,
    RefundRequest,
    VerifyPaymentRequest,
)
from . import service

router = APIRouter(prefix="/api/v1/student-payments", tags=["student-payments"])


@router.post(
    "/online-payment/create-order/{student_id}",
    response_model=CreateOrderResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_online_order(
    student_id: UUID,
    payload: CreateOrderRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> CreateOrderResponse:
    try:
        return await service.create_online_order(db, gateway, student_id, payload, current_actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/online-payment/verify", response_model=PaymentDetailResponse)
async def verify_online_payment(
    payload: VerifyPaymentRequest,
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> PaymentDetailResponse:
    try:
        return await service.verify_online_payment(db, gateway, payload, current_actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "/office-payment/{student_id}",
    response_model=PaymentDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_office_payment(
    student_id: UUID,
    payload: OfficePaymentRequest,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> PaymentDetailResponse:
    try:
        return await service.record_office_payment(db, student_id, payload, current_actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/history/{student_id}", response_model=PaymentHistoryResponse)
async def get_payment_history(
    student_id: UUID,
    academic_year: Optional[str] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    semester: Optional[int] = Query(None, gt=0),
    payment_method: Optional[PaymentMethod] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> PaymentHistoryResponse:
    try:
        return await service.get_payment_history(
            db,
            student_id,
            academic_year=academic_year,
            payment_status=payment_status,
            semester=semester,
            payment_method=payment_method,
            page=page,
            limit=limit,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{payment_id}/fail", response_model=PaymentDetailResponse)
async def mark_payment_failed(
    payment_id: UUID,
    payload: MarkFailedRequest,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> PaymentDetailResponse:
    try:
        return await service.mark_payment_failed(db, payment_id, payload, current_actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{payment_id}/refund", response_model=PaymentDetailResponse)
async def refund_payment(
    payment_id: UUID,
    payload: RefundRequest,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> PaymentDetailResponse:
    try:
        return await service.refund_payment(db, payment_id, payload, current_actor)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{payment_id}", response_model=PaymentDetailResponse)
async def get_payment(
    payment_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_actor: CurrentActor = Depends(get_current_actor),
) -> PaymentDetailResponse:
    try:
        return await service.get_payment(db, payment_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
