"""Lead endpoints.

- POST   /api/v1/leads/                          → Create lead (fires lead_created sequences)
- GET    /api/v1/leads/?business_id=             → List leads, filter by score / status
- GET    /api/v1/leads/{id}                      → Lead detail
- GET    /api/v1/leads/{id}/score                → Score with per-factor breakdown
- PUT    /api/v1/leads/{id}/status               → Update status (applies stop conditions)
- POST   /api/v1/leads/{id}/interactions         → Log a call / sms / email / note
- GET    /api/v1/leads/{id}/interactions         → Interaction history
- POST   /api/v1/leads/{id}/convert              → Convert to client
- DELETE /api/v1/leads/{id}                      → Delete (rejected once enrolled)
- POST   /api/v1/leads/{id}/enrollments          → Enroll in a sequence
- GET    /api/v1/leads/{id}/enrollments          → Enrollment history
- POST   /api/v1/leads/{id}/triggers             → Fire a trigger for this lead
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.errors import http_error
from app.core.database import get_db
from app.core.exceptions import LeadFlowError
from app.models.lead import LeadScore, LeadStatus
from app.models.lead_interaction import LeadInteraction
from app.models.sequence import SequenceTrigger
from app.schemas.enrollment import EnrollmentCreate, EnrollmentOut
from app.schemas.lead import (
    InteractionCreate,
    InteractionOut,
    LeadConvert,
    LeadCreate,
    LeadOut,
    LeadScoreOut,
    LeadStatusUpdate,
    LeadTrigger,
)
from app.services import enrollments as enrollment_service
from app.services import leads as lead_service
from app.services.scoring import LeadSnapshot, score_breakdown, temperature_for

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/", response_model=LeadOut, status_code=201)
async def create_lead(data: LeadCreate, db: AsyncSession = Depends(get_db)):
    """Create a lead and enroll it in the business's lead_created sequences."""
    try:
        lead = await lead_service.create_lead(
            db,
            business_id=data.business_id,
            name=data.name,
            email=data.email,
            phone=data.phone,
            source=data.source,
            interested_service=data.interested_service,
            estimated_value=data.estimated_value,
            notes=data.notes,
        )
        await enrollment_service.enroll_lead_by_trigger(db, lead.id, SequenceTrigger.LEAD_CREATED)
    except LeadFlowError as e:
        raise http_error(e)
    return await lead_service.get_lead(db, lead.id)


@router.get("/", response_model=List[LeadOut])
async def list_leads(
    business_id: UUID = Query(..., description="Business ID to filter leads"),
    score: Optional[LeadScore] = Query(None, description="Filter by temperature"),
    status: Optional[LeadStatus] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    return await lead_service.list_leads(db, business_id, score=score, status=status, limit=limit)


@router.get("/{lead_id}", response_model=LeadOut)
async def get_lead(lead_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        return await lead_service.get_lead(db, lead_id)
    except LeadFlowError as e:
        raise http_error(e)


@router.get("/{lead_id}/score", response_model=LeadScoreOut)
async def get_lead_score(lead_id: UUID, db: AsyncSession = Depends(get_db)):
    """Recompute the score as of now and show what each factor contributed."""
    try:
        lead = await lead_service.get_lead(db, lead_id)
    except LeadFlowError as e:
        raise http_error(e)
    breakdown = score_breakdown(LeadSnapshot.from_lead(lead), datetime.utcnow())
    points = sum(breakdown.values())
    return LeadScoreOut(score=temperature_for(points), points=points, breakdown=breakdown)


@router.put("/{lead_id}/status", response_model=LeadOut)
async def update_lead_status(lead_id: UUID, data: LeadStatusUpdate, db: AsyncSession = Depends(get_db)):
    try:
        return await lead_service.update_lead_status(db, lead_id, data.status)
    except LeadFlowError as e:
        raise http_error(e)


@router.post("/{lead_id}/interactions", response_model=InteractionOut, status_code=201)
async def log_interaction(lead_id: UUID, data: InteractionCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await lead_service.log_interaction(
            db,
            lead_id,
            data.type,
            content=data.content,
            outcome=data.outcome,
            direction=data.direction,
        )
    except LeadFlowError as e:
        raise http_error(e)


@router.get("/{lead_id}/interactions", response_model=List[InteractionOut])
async def list_interactions(lead_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        await lead_service.get_lead(db, lead_id)
    except LeadFlowError as e:
        raise http_error(e)
    result = await db.execute(
        select(LeadInteraction)
        .where(LeadInteraction.lead_id == lead_id)
        .order_by(LeadInteraction.created_at.desc())
    )
    return result.scalars().all()


@router.post("/{lead_id}/convert", response_model=LeadOut)
async def convert_lead(lead_id: UUID, data: LeadConvert, db: AsyncSession = Depends(get_db)):
    try:
        return await lead_service.convert_lead(db, lead_id, client_id=data.client_id)
    except LeadFlowError as e:
        raise http_error(e)


@router.delete("/{lead_id}", status_code=204)
async def delete_lead(lead_id: UUID, db: AsyncSession = Depends(get_db)):
    try:
        await lead_service.delete_lead(db, lead_id)
    except LeadFlowError as e:
        raise http_error(e)
    return Response(status_code=204)


@router.post("/{lead_id}/enrollments", response_model=EnrollmentOut, status_code=201)
async def enroll_lead(lead_id: UUID, data: EnrollmentCreate, db: AsyncSession = Depends(get_db)):
    try:
        return await enrollment_service.enroll(db, lead_id, data.sequence_id)
    except LeadFlowError as e:
        raise http_error(e)


@router.get("/{lead_id}/enrollments", response_model=List[EnrollmentOut])
async def list_lead_enrollments(lead_id: UUID, db: AsyncSession = Depends(get_db)):
    return await enrollment_service.list_enrollments(db, lead_id=lead_id)


@router.post("/{lead_id}/triggers", response_model=List[EnrollmentOut])
async def fire_trigger(lead_id: UUID, data: LeadTrigger, db: AsyncSession = Depends(get_db)):
    """Called by booking, quote and job workflows when an event happens to a lead."""
    try:
        return await enrollment_service.enroll_lead_by_trigger(db, lead_id, data.trigger)
    except LeadFlowError as e:
        raise http_error(e)
