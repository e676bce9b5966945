"""Logged touches between a business and a lead (calls, texts, emails, notes)."""
import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Enum, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.core.database import Base


class InteractionType(str, enum.Enum):
    CALL = "call"
    SMS = "sms"
    EMAIL = "email"
    NOTE = "note"


class InteractionDirection(str, enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class LeadInteraction(Base):
    __tablename__ = "lead_interactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lead_id = Column(UUID(as_uuid=True), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    type = Column(Enum(InteractionType), nullable=False)
    direction = Column(Enum(InteractionDirection), nullable=False, default=InteractionDirection.OUTBOUND)
    content = Column(Text, nullable=True)
    outcome = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    lead = relationship("Lead", back_populates="interactions")
