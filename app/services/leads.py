"""Lead lifecycle service.

Creation, status changes, interaction logging, conversion and deletion.
Every change to a scoring input recomputes `lead.score` in the same
transaction, under a row lock, so concurrent writers (the sequence executor
and operators logging calls by hand) never leave a stale temperature behind.
"""

import logging
import uuid
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BusinessNotFound, InvalidStatusTransition, LeadInUse, LeadNotFound
from app.models.business import Business
from app.models.enrollment import CancelReason, SequenceEnrollment
from app.models.lead import Lead, LeadScore, LeadSource, LeadStatus
from app.models.lead_interaction import InteractionDirection, InteractionType, LeadInteraction
from app.services.enrollments import apply_status_stop_conditions, cancel_active_enrollments
from app.services.scoring import apply_score
from app.utils.phone import normalize_phone

logger = logging.getLogger(__name__)

# Forward progress rank; booked and lost are both terminal.
_STATUS_RANK = {
    LeadStatus.NEW: 0,
    LeadStatus.IN_PROGRESS: 1,
    LeadStatus.QUOTED: 2,
    LeadStatus.BOOKED: 3,
    LeadStatus.LOST: 3,
}


def can_transition(current: LeadStatus, target: LeadStatus) -> bool:
    """Statuses move forward toward booked/lost; nurturing can be (re-)entered."""
    if current == target:
        return True
    if current == LeadStatus.BOOKED:
        return False
    if target == LeadStatus.NURTURING:
        return True
    if current == LeadStatus.LOST:
        return False
    if current == LeadStatus.NURTURING:
        return True
    return _STATUS_RANK[target] > _STATUS_RANK[current]


def record_contact(lead: Lead, now: datetime) -> None:
    """Count an outbound touch and rescore. Caller holds the row lock and commits."""
    lead.follow_up_count = (lead.follow_up_count or 0) + 1
    lead.last_contacted_at = now
    apply_score(lead, now)


def add_tag(lead: Lead, tag: str) -> bool:
    """Append a tag if missing. Returns True when the tag list changed."""
    tags = list(lead.tags or [])
    if tag in tags:
        return False
    tags.append(tag)
    lead.tags = tags  # reassign so the JSON column is flagged dirty
    return True


async def get_lead(db: AsyncSession, lead_id: UUID, business_id: Optional[UUID] = None) -> Lead:
    lead = await db.get(Lead, lead_id)
    if not lead or (business_id is not None and lead.business_id != business_id):
        raise LeadNotFound(f"Lead {lead_id} not found")
    return lead


async def lock_lead(db: AsyncSession, lead_id: UUID, nowait: bool = False) -> Lead:
    """Load a lead with a row lock for a read-modify-write of its counters.

    With `nowait` a lead locked elsewhere raises OperationalError at once
    instead of blocking.
    """
    result = await db.execute(
        select(Lead)
        .where(Lead.id == lead_id)
        .with_for_update(nowait=nowait)
        .execution_options(populate_existing=True)
    )
    lead = result.scalar_one_or_none()
    if not lead:
        raise LeadNotFound(f"Lead {lead_id} not found")
    return lead


async def create_lead(
    db: AsyncSession,
    business_id: UUID,
    name: str,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    source: LeadSource = LeadSource.MANUAL,
    interested_service: Optional[str] = None,
    estimated_value: Optional[float] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Lead:
    """Create a lead with status `new` and its initial score."""
    now = now or datetime.utcnow()

    business = await db.get(Business, business_id)
    if not business:
        raise BusinessNotFound(f"Business {business_id} not found")

    lead = Lead(
        business_id=business_id,
        name=(name or "").strip() or "Unknown",
        email=email.strip().lower() if email and email.strip() else None,
        phone=normalize_phone(phone),
        source=source,
        interested_service=interested_service,
        estimated_value=estimated_value,
        notes=notes,
        tags=[],
        status=LeadStatus.NEW,
        follow_up_count=0,
        created_at=now,
        updated_at=now,
    )
    apply_score(lead, now)

    db.add(lead)
    await db.commit()
    await db.refresh(lead)

    logger.info(
        "Created lead %s for business %s: %s (%s, score=%s)",
        lead.id,
        business_id,
        lead.name,
        lead.phone or lead.email or "no contact",
        lead.score.value,
    )
    return lead


async def list_leads(
    db: AsyncSession,
    business_id: UUID,
    score: Optional[LeadScore] = None,
    status: Optional[LeadStatus] = None,
    limit: int = 100,
) -> list[Lead]:
    query = select(Lead).where(Lead.business_id == business_id)
    if score:
        query = query.where(Lead.score == score)
    if status:
        query = query.where(Lead.status == status)
    query = query.order_by(Lead.created_at.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_lead_status(
    db: AsyncSession,
    lead_id: UUID,
    status: LeadStatus,
    now: Optional[datetime] = None,
) -> Lead:
    """Move a lead to `status`, rescore it and apply sequence stop conditions."""
    now = now or datetime.utcnow()
    lead = await lock_lead(db, lead_id)

    if not can_transition(lead.status, status):
        raise InvalidStatusTransition(
            f"Cannot move lead {lead_id} from {lead.status.value} to {status.value}"
        )

    previous = lead.status
    lead.status = status
    apply_score(lead, now)
    canceled = await apply_status_stop_conditions(db, lead, now)

    await db.commit()
    await db.refresh(lead)
    logger.info(
        "Lead %s status %s -> %s (score=%s, %d enrollments canceled)",
        lead_id,
        previous.value,
        status.value,
        lead.score.value,
        canceled,
    )
    return lead


async def log_interaction(
    db: AsyncSession,
    lead_id: UUID,
    interaction_type: InteractionType,
    content: Optional[str] = None,
    outcome: Optional[str] = None,
    direction: InteractionDirection = InteractionDirection.OUTBOUND,
    now: Optional[datetime] = None,
) -> LeadInteraction:
    """Log a manual touch. Outbound calls, texts and emails count as follow-ups."""
    now = now or datetime.utcnow()
    lead = await lock_lead(db, lead_id)

    interaction = LeadInteraction(
        lead_id=lead.id,
        business_id=lead.business_id,
        type=interaction_type,
        direction=direction,
        content=content,
        outcome=outcome,
        created_at=now,
    )
    db.add(interaction)

    if direction == InteractionDirection.OUTBOUND and interaction_type != InteractionType.NOTE:
        record_contact(lead, now)

    await db.commit()
    await db.refresh(interaction)
    logger.info("Logged %s %s for lead %s", direction.value, interaction_type.value, lead_id)
    return interaction


async def convert_lead(
    db: AsyncSession,
    lead_id: UUID,
    client_id: Optional[UUID] = None,
    now: Optional[datetime] = None,
) -> Lead:
    """Mark a lead booked and converted to a client; stops all its sequences."""
    now = now or datetime.utcnow()
    lead = await lock_lead(db, lead_id)

    if not can_transition(lead.status, LeadStatus.BOOKED):
        raise InvalidStatusTransition(f"Cannot convert lead {lead_id} from {lead.status.value}")

    lead.status = LeadStatus.BOOKED
    lead.converted_at = now
    lead.converted_to_client_id = client_id or uuid.uuid4()
    apply_score(lead, now)
    await cancel_active_enrollments(db, lead.id, CancelReason.CONVERTED, now)

    await db.commit()
    await db.refresh(lead)
    logger.info("Lead %s converted to client %s", lead_id, lead.converted_to_client_id)
    return lead


async def unsubscribe_lead(db: AsyncSession, lead: Lead, now: Optional[datetime] = None) -> int:
    """Opt a lead out of automated messages. Stages changes, does not commit."""
    now = now or datetime.utcnow()
    if lead.unsubscribed_at is None:
        lead.unsubscribed_at = now
    return await cancel_active_enrollments(db, lead.id, CancelReason.UNSUBSCRIBED, now)


async def delete_lead(db: AsyncSession, lead_id: UUID) -> None:
    """Hard-delete a lead. Rejected while any sequence enrollment references it."""
    lead = await get_lead(db, lead_id)

    result = await db.execute(
        select(func.count(SequenceEnrollment.id)).where(SequenceEnrollment.lead_id == lead_id)
    )
    if result.scalar_one():
        raise LeadInUse(f"Lead {lead_id} has sequence enrollments; mark it lost instead")

    await db.execute(delete(LeadInteraction).where(LeadInteraction.lead_id == lead_id))
    await db.delete(lead)
    await db.commit()
    logger.info("Deleted lead %s", lead_id)
