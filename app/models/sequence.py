"""Sequence definitions: tenant-owned, ordered follow-up templates."""

import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.core.database import Base


class SequenceTrigger(str, enum.Enum):
    """Event label that enrolls a lead into matching sequences."""
    BOOKING_ABANDONED = "booking_abandoned"
    QUOTE_SENT = "quote_sent"
    NO_RESPONSE = "no_response"
    MISSED_CALL = "missed_call"
    POST_SERVICE = "post_service"
    JOB_COMPLETED = "job_completed"
    LEAD_CREATED = "lead_created"
    CUSTOM = "custom"


class StepType(str, enum.Enum):
    WAIT = "wait"
    SEND_SMS = "send_sms"
    SEND_EMAIL = "send_email"
    CONDITION = "condition"
    ADD_TAG = "add_tag"
    CHANGE_STATUS = "change_status"
    NOTIFY_USER = "notify_user"


class Channel(str, enum.Enum):
    SMS = "sms"
    EMAIL = "email"


STEP_CHANNELS = {
    StepType.SEND_SMS: Channel.SMS,
    StepType.SEND_EMAIL: Channel.EMAIL,
}


class DelayUnit(str, enum.Enum):
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"


class Sequence(Base):
    __tablename__ = "sequences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    trigger_type = Column(String(50), nullable=False, default=SequenceTrigger.CUSTOM.value, index=True)
    enabled = Column(Boolean, nullable=False, default=False)
    stop_on_reply = Column(Boolean, nullable=False, default=True)
    stop_on_booking = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    business = relationship("Business", back_populates="sequences")
    steps = relationship(
        "SequenceStep",
        back_populates="sequence",
        order_by="SequenceStep.step_order",
        cascade="all, delete-orphan",
    )
    enrollments = relationship("SequenceEnrollment", back_populates="sequence")


class SequenceStep(Base):
    __tablename__ = "sequence_steps"
    __table_args__ = (
        UniqueConstraint("sequence_id", "step_order", name="uq_sequence_steps_sequence_order"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sequence_id = Column(UUID(as_uuid=True), ForeignKey("sequences.id", ondelete="CASCADE"), nullable=False, index=True)
    step_order = Column(Integer, nullable=False)
    step_type = Column(String(30), nullable=False)  # StepType value
    delay_value = Column(Integer, nullable=True)
    delay_unit = Column(String(20), nullable=True)  # DelayUnit value
    subject = Column(String(255), nullable=True)  # email only
    message_template = Column(Text, nullable=False, default="")

    # Action step parameters
    tag_name = Column(String(100), nullable=True)
    status_value = Column(String(30), nullable=True)
    notification_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    sequence = relationship("Sequence", back_populates="steps")
