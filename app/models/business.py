"""Business (tenant) configuration model.

Each field-service business owns its leads and sequences and carries the
settings the sequence engine needs: sender identity, message tone and which
SMS gateway to use.
"""

from sqlalchemy import Column, String, DateTime, Boolean, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid
from datetime import datetime
from enum import Enum
from app.core.database import Base


class MessageTone(str, Enum):
    FRIENDLY = "friendly"
    PREMIUM = "premium"
    DIRECT = "direct"


class SmsProvider(str, Enum):
    """Which gateway delivers this tenant's SMS."""
    TWILIO = "twilio"
    GATEWAY = "gateway"


class Business(Base):
    __tablename__ = "businesses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    owner_name = Column(String, nullable=True)
    owner_phone = Column(String, nullable=True)
    owner_email = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)

    # Outbound messaging
    sender_name = Column(String, nullable=True)  # shown in messages, falls back to name
    default_tone = Column(
        SQLEnum(MessageTone, name="message_tone_enum"),
        nullable=False,
        default=MessageTone.FRIENDLY,
    )
    sms_provider = Column(
        SQLEnum(SmsProvider, name="sms_provider_enum"),
        nullable=False,
        default=SmsProvider.TWILIO,
    )
    twilio_account_sid = Column(String, nullable=True)  # subaccount, falls back to platform SID
    twilio_phone_number = Column(String, nullable=True)  # dedicated outbound number
    sms_gateway_url = Column(String, nullable=True)
    sms_gateway_api_key = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    leads = relationship("Lead", back_populates="business")
    sequences = relationship("Sequence", back_populates="business")

    @property
    def display_name(self) -> str:
        return self.sender_name or self.name
