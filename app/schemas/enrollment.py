"""Pydantic schemas for sequence enrollments and the batch endpoint."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel

from app.models.enrollment import CancelReason


class EnrollmentCreate(BaseModel):
    sequence_id: UUID


class EnrollmentCancel(BaseModel):
    reason: CancelReason = CancelReason.MANUAL


class ExecutionOut(BaseModel):
    id: UUID
    step_id: UUID
    status: str
    message_sent: Optional[str] = None
    error_message: Optional[str] = None
    provider_message_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class EnrollmentOut(BaseModel):
    id: UUID
    lead_id: UUID
    sequence_id: UUID
    business_id: UUID
    status: str
    current_step_order: int
    enrolled_at: datetime
    completed_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    class Config:
        from_attributes = True


class BatchResultOut(BaseModel):
    """Summary of one pass of the sequence executor."""
    processed: int
    advanced: int
    sent: int
    failed: int
    completed: int
    canceled: int
    waiting: int
    skipped: int
    errors: int
