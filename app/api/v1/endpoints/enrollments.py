"""Enrollment inspection and manual cancellation."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.errors import http_error
from app.core.database import get_db
from app.core.exceptions import LeadFlowError
from app.models.enrollment import SequenceStepExecution
from app.schemas.enrollment import EnrollmentCancel, EnrollmentOut, ExecutionOut
from app.services import enrollments as enrollment_service

router = APIRouter()


@router.get("/{enrollment_id}", response_model=EnrollmentOut)
async def get_enrollment(enrollment_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        return await enrollment_service.get_enrollment(db, enrollment_id)
    except LeadFlowError as e:
        raise http_error(e)


@router.get("/{enrollment_id}/executions", response_model=List[ExecutionOut])
async def list_executions(enrollment_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        await enrollment_service.get_enrollment(db, enrollment_id)
    except LeadFlowError as e:
        raise http_error(e)
    result = await db.execute(
        select(SequenceStepExecution)
        .where(SequenceStepExecution.enrollment_id == enrollment_id)
        .order_by(SequenceStepExecution.created_at)
    )
    return result.scalars().all()


@router.post("/{enrollment_id}/cancel", response_model=EnrollmentOut)
async def cancel_enrollment(enrollment_id: UUID, data: EnrollmentCancel, db: AsyncSession = Depends(get_db)):
    try:
        return await enrollment_service.cancel_enrollment(db, enrollment_id, data.reason)
    except LeadFlowError as e:
        raise http_error(e)
