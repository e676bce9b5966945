"""Lead model: a prospective customer not yet converted to a client."""
import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Enum, ForeignKey, Integer, Float
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.types import JSON
from sqlalchemy.orm import relationship
from app.core.database import Base


class LeadSource(str, enum.Enum):
    """Lead source enum."""
    MANUAL = "manual"
    ONLINE_BOOKING = "online_booking"
    CALL = "call"
    WEB = "web"
    WEBHOOK = "webhook"
    REFERRAL = "referral"


class LeadStatus(str, enum.Enum):
    """Lead lifecycle status."""
    NEW = "new"
    IN_PROGRESS = "in_progress"
    QUOTED = "quoted"
    NURTURING = "nurturing"
    BOOKED = "booked"
    LOST = "lost"


class LeadScore(str, enum.Enum):
    """Lead temperature."""
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class Lead(Base):
    """Lead model."""
    __tablename__ = "leads"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True, index=True)  # E.164
    source = Column(Enum(LeadSource), nullable=False, default=LeadSource.MANUAL)
    interested_service = Column(String(255), nullable=True)
    estimated_value = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)  # ["vip", "fleet", ...]

    score = Column(Enum(LeadScore), nullable=False, default=LeadScore.COLD, index=True)
    status = Column(Enum(LeadStatus), nullable=False, default=LeadStatus.NEW, index=True)
    follow_up_count = Column(Integer, nullable=False, default=0)
    last_contacted_at = Column(DateTime, nullable=True)
    unsubscribed_at = Column(DateTime, nullable=True)

    converted_at = Column(DateTime, nullable=True)
    converted_to_client_id = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    business = relationship("Business", back_populates="leads")
    interactions = relationship("LeadInteraction", back_populates="lead", order_by="LeadInteraction.created_at")
    enrollments = relationship("SequenceEnrollment", back_populates="lead")
