"""Follow-up sequence definition endpoints."""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.errors import http_error
from app.core.database import get_db
from app.core.exceptions import LeadFlowError
from app.models.enrollment import EnrollmentStatus
from app.models.sequence import Sequence
from app.schemas.enrollment import EnrollmentOut
from app.schemas.sequence import SequenceCreate, SequenceOut, SequenceToggle, SequenceUpdate
from app.services import enrollments as enrollment_service
from app.services import sequences as sequence_service

router = APIRouter()
logger = logging.getLogger(__name__)


async def _with_stats(db: AsyncSession, sequences: list[Sequence]) -> list[SequenceOut]:
    stats = await sequence_service.sequence_stats(db, [s.id for s in sequences])
    return [
        SequenceOut.model_validate(s).model_copy(update={
            "active_enrollments": stats[s.id].active_enrollments,
            "conversion_rate": stats[s.id].conversion_rate,
        })
        for s in sequences
    ]


@router.post("/", response_model=SequenceOut, status_code=201)
async def create_sequence(data: SequenceCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await sequence_service.create_sequence(db, data)
    except LeadFlowError as e:
        raise http_error(e)


@router.get("/", response_model=List[SequenceOut])
async def list_sequences(
    business_id: UUID = Query(..., description="Business ID"),
    db: AsyncSession = Depends(get_db),
):
    return await _with_stats(db, await sequence_service.list_sequences(db, business_id))


@router.get("/{sequence_id}", response_model=SequenceOut)
async def get_sequence(sequence_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        sequence = await sequence_service.get_sequence(db, sequence_id)
    except LeadFlowError as e:
        raise http_error(e)
    return (await _with_stats(db, [sequence]))[0]


@router.put("/{sequence_id}", response_model=SequenceOut)
async def update_sequence(sequence_id: UUID, data: SequenceUpdate, db: AsyncSession = Depends(get_db)):
    """Update settings; `steps`, when present, replaces every step."""
    try:
        sequence = await sequence_service.update_sequence(db, sequence_id, data)
    except LeadFlowError as e:
        raise http_error(e)
    return (await _with_stats(db, [sequence]))[0]


@router.post("/{sequence_id}/toggle", response_model=SequenceOut)
async def toggle_sequence(sequence_id: UUID, data: SequenceToggle, db: AsyncSession = Depends(get_db)):
    try:
        sequence = await sequence_service.toggle_sequence(db, sequence_id, data.enabled)
    except LeadFlowError as e:
        raise http_error(e)
    return (await _with_stats(db, [sequence]))[0]


@router.post("/{sequence_id}/duplicate", response_model=SequenceOut, status_code=201)
async def duplicate_sequence(sequence_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        return await sequence_service.duplicate_sequence(db, sequence_id)
    except LeadFlowError as e:
        raise http_error(e)


@router.delete("/{sequence_id}", status_code=204)
async def delete_sequence(sequence_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        await sequence_service.delete_sequence(db, sequence_id)
    except LeadFlowError as e:
        raise http_error(e)
    return Response(status_code=204)


@router.get("/{sequence_id}/enrollments", response_model=List[EnrollmentOut])
async def list_sequence_enrollments(
    sequence_id: UUID,
    status: Optional[EnrollmentStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await enrollment_service.list_enrollments(db, sequence_id=sequence_id, status=status)
