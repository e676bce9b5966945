"""Pydantic schemas for Business config."""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel
from app.models.business import MessageTone, SmsProvider


class BusinessCreate(BaseModel):
    name: str
    owner_name: str | None = None
    owner_phone: str | None = None
    owner_email: str | None = None
    sender_name: str | None = None
    default_tone: MessageTone = MessageTone.FRIENDLY
    sms_provider: SmsProvider = SmsProvider.TWILIO
    twilio_account_sid: str | None = None
    twilio_phone_number: str | None = None
    sms_gateway_url: str | None = None
    sms_gateway_api_key: str | None = None


class BusinessUpdate(BaseModel):
    """Schema for updating business messaging settings."""
    name: str | None = None
    owner_name: str | None = None
    owner_phone: str | None = None
    owner_email: str | None = None
    sender_name: str | None = None
    default_tone: MessageTone | None = None
    sms_provider: SmsProvider | None = None
    twilio_account_sid: str | None = None
    twilio_phone_number: str | None = None
    sms_gateway_url: str | None = None
    sms_gateway_api_key: str | None = None
    is_active: bool | None = None


class BusinessOut(BaseModel):
    id: UUID
    name: str
    owner_name: str | None = None
    owner_phone: str | None = None
    owner_email: str | None = None
    sender_name: str | None = None
    default_tone: MessageTone
    sms_provider: SmsProvider
    twilio_phone_number: str | None = None
    sms_gateway_url: str | None = None
    is_active: bool | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True
