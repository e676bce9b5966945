"""Pydantic schemas for sequence definitions."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.lead import LeadStatus
from app.models.sequence import DelayUnit, SequenceTrigger, StepType


class SequenceStepIn(BaseModel):
    """One step as authored in the sequence editor."""
    step_order: int = Field(..., ge=0)
    step_type: StepType
    delay_value: Optional[int] = Field(None, ge=0)
    delay_unit: Optional[DelayUnit] = None
    subject: Optional[str] = None
    message_template: str = ""
    tag_name: Optional[str] = None
    status_value: Optional[LeadStatus] = None
    notification_message: Optional[str] = None

    @model_validator(mode="after")
    def check_step_parameters(self):
        if self.step_type == StepType.ADD_TAG and not self.tag_name:
            raise ValueError("add_tag steps require tag_name")
        if self.step_type == StepType.CHANGE_STATUS and not self.status_value:
            raise ValueError("change_status steps require status_value")
        return self


def _check_unique_orders(steps: list[SequenceStepIn]) -> list[SequenceStepIn]:
    orders = [s.step_order for s in steps]
    if len(orders) != len(set(orders)):
        raise ValueError("step_order values must be unique within a sequence")
    return steps


class SequenceCreate(BaseModel):
    business_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    trigger_type: SequenceTrigger = SequenceTrigger.CUSTOM
    enabled: bool = False
    stop_on_reply: bool = True
    stop_on_booking: bool = True
    steps: list[SequenceStepIn] = []

    @field_validator("steps")
    @classmethod
    def unique_orders(cls, steps):
        return _check_unique_orders(steps)


class SequenceUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    trigger_type: Optional[SequenceTrigger] = None
    enabled: Optional[bool] = None
    stop_on_reply: Optional[bool] = None
    stop_on_booking: Optional[bool] = None
    steps: Optional[list[SequenceStepIn]] = None

    @field_validator("steps")
    @classmethod
    def unique_orders(cls, steps):
        if steps is None:
            return steps
        return _check_unique_orders(steps)


class SequenceToggle(BaseModel):
    enabled: bool


class SequenceStepOut(BaseModel):
    id: UUID
    step_order: int
    step_type: str
    delay_value: Optional[int] = None
    delay_unit: Optional[str] = None
    subject: Optional[str] = None
    message_template: str
    tag_name: Optional[str] = None
    status_value: Optional[str] = None
    notification_message: Optional[str] = None

    class Config:
        from_attributes = True


class SequenceOut(BaseModel):
    id: UUID
    business_id: UUID
    name: str
    description: Optional[str] = None
    trigger_type: str
    enabled: bool
    stop_on_reply: bool
    stop_on_booking: bool
    created_at: datetime
    updated_at: datetime
    steps: list[SequenceStepOut] = []
    active_enrollments: int = 0
    conversion_rate: float = 0.0

    class Config:
        from_attributes = True
