"""Sequence enrollments and their immutable step execution records."""

import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, Index, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.core.database import Base


class EnrollmentStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELED = "canceled"


class CancelReason(str, enum.Enum):
    REPLIED = "replied"
    UNSUBSCRIBED = "unsubscribed"
    BOOKED = "booked"
    LOST = "lost"
    CONVERTED = "converted"
    DELIVERY_FAILED = "delivery_failed"
    MANUAL = "manual"
    REPLACED = "replaced"


class ExecutionStatus(str, enum.Enum):
    SENT = "sent"
    FAILED = "failed"


class SequenceEnrollment(Base):
    __tablename__ = "sequence_enrollments"
    __table_args__ = (
        # One live enrollment per (lead, sequence); finished ones are history.
        Index(
            "uq_sequence_enrollments_active_lead_sequence",
            "lead_id",
            "sequence_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    lead_id = Column(UUID(as_uuid=True), ForeignKey("leads.id"), nullable=False, index=True)
    sequence_id = Column(UUID(as_uuid=True), ForeignKey("sequences.id", ondelete="CASCADE"), nullable=False, index=True)
    business_id = Column(UUID(as_uuid=True), ForeignKey("businesses.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=EnrollmentStatus.ACTIVE.value, index=True)
    current_step_order = Column(Integer, nullable=False, default=0)
    enrolled_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    canceled_at = Column(DateTime, nullable=True)
    cancel_reason = Column(String(30), nullable=True)

    lead = relationship("Lead", back_populates="enrollments")
    sequence = relationship("Sequence", back_populates="enrollments")
    executions = relationship(
        "SequenceStepExecution",
        back_populates="enrollment",
        order_by="SequenceStepExecution.created_at",
    )

    @property
    def is_active(self) -> bool:
        return self.status == EnrollmentStatus.ACTIVE


class SequenceStepExecution(Base):
    __tablename__ = "sequence_step_executions"
    __table_args__ = (
        # Idempotency anchor: a message step is sent at most once per
        # enrollment. Failed attempts are kept alongside for retry accounting.
        Index(
            "uq_sequence_step_executions_sent",
            "enrollment_id",
            "step_id",
            unique=True,
            postgresql_where=text("status = 'sent'"),
            sqlite_where=text("status = 'sent'"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    enrollment_id = Column(
        UUID(as_uuid=True), ForeignKey("sequence_enrollments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_id = Column(UUID(as_uuid=True), ForeignKey("sequence_steps.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False)  # sent, failed
    message_sent = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    provider_message_id = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    enrollment = relationship("SequenceEnrollment", back_populates="executions")
