"""Pydantic schemas for Leads."""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from app.models.lead import LeadScore, LeadSource, LeadStatus
from app.models.lead_interaction import InteractionDirection, InteractionType
from app.models.sequence import SequenceTrigger


class LeadCreate(BaseModel):
    """Schema for creating a lead."""
    business_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    source: LeadSource = LeadSource.MANUAL
    interested_service: Optional[str] = None
    estimated_value: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None


class LeadOut(BaseModel):
    """Schema for returning lead details."""
    id: UUID
    business_id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    source: LeadSource
    interested_service: Optional[str] = None
    estimated_value: Optional[float] = None
    notes: Optional[str] = None
    tags: Optional[list[str]] = None
    score: LeadScore
    status: LeadStatus
    follow_up_count: int
    last_contacted_at: Optional[datetime] = None
    unsubscribed_at: Optional[datetime] = None
    converted_at: Optional[datetime] = None
    converted_to_client_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class LeadStatusUpdate(BaseModel):
    """Schema for updating lead status."""
    status: LeadStatus


class LeadScoreOut(BaseModel):
    """Current temperature with the points behind it."""
    score: LeadScore
    points: int
    breakdown: dict[str, int]


class InteractionCreate(BaseModel):
    type: InteractionType
    content: Optional[str] = None
    outcome: Optional[str] = None
    direction: InteractionDirection = InteractionDirection.OUTBOUND


class InteractionOut(BaseModel):
    id: UUID
    lead_id: UUID
    type: InteractionType
    direction: InteractionDirection
    content: Optional[str] = None
    outcome: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class LeadConvert(BaseModel):
    client_id: Optional[UUID] = None


class LeadTrigger(BaseModel):
    """Fired by booking, quote and job workflows to start matching sequences."""
    trigger: SequenceTrigger
