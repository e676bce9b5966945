"""Inbound replies that stop follow-up sequences.

An unsubscribe keyword opts the lead out and cancels every active
enrollment. Any other reply is logged as an inbound interaction and cancels
enrollments whose sequence has `stop_on_reply`. Status-driven stops (booked,
lost) live in `app.services.enrollments.apply_status_stop_conditions`.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.business import Business
from app.models.enrollment import CancelReason
from app.models.lead import Lead
from app.models.lead_interaction import InteractionDirection, InteractionType, LeadInteraction
from app.services.enrollments import cancel_active_enrollments
from app.services.leads import unsubscribe_lead
from app.utils.phone import normalize_phone

logger = logging.getLogger(__name__)

UNSUBSCRIBE_KEYWORDS = {"STOP", "STOPALL", "UNSUBSCRIBE", "CANCEL", "END", "QUIT"}


def is_unsubscribe(body: Optional[str]) -> bool:
    return (body or "").strip().strip(".!").upper() in UNSUBSCRIBE_KEYWORDS


@dataclass
class InboundResult:
    matched_leads: list[UUID] = field(default_factory=list)
    unsubscribed: bool = False
    canceled: int = 0


async def find_leads_by_phone(
    db: AsyncSession,
    phone: str,
    to_number: Optional[str] = None,
) -> list[Lead]:
    """Leads with this phone number, scoped to the receiving business when known."""
    normalized = normalize_phone(phone)
    if not normalized:
        return []

    query = select(Lead).where(Lead.phone == normalized)
    receiving = normalize_phone(to_number) if to_number else None
    if receiving:
        result = await db.execute(select(Business.id).where(Business.twilio_phone_number == receiving))
        business_ids = list(result.scalars().all())
        if business_ids:
            query = query.where(Lead.business_id.in_(business_ids))

    result = await db.execute(query.order_by(Lead.created_at))
    return list(result.scalars().all())


async def handle_inbound_sms(
    db: AsyncSession,
    from_number: str,
    body: str,
    to_number: Optional[str] = None,
    now: Optional[datetime] = None,
) -> InboundResult:
    """Apply reply and unsubscribe stop conditions for an inbound SMS. Commits."""
    now = now or datetime.utcnow()
    outcome = InboundResult(unsubscribed=is_unsubscribe(body))

    leads = await find_leads_by_phone(db, from_number, to_number)
    if not leads:
        logger.info("Inbound SMS from unknown number %s", from_number)
        return outcome

    for lead in leads:
        outcome.matched_leads.append(lead.id)
        db.add(
            LeadInteraction(
                lead_id=lead.id,
                business_id=lead.business_id,
                type=InteractionType.SMS,
                direction=InteractionDirection.INBOUND,
                content=body,
                outcome="unsubscribe" if outcome.unsubscribed else "reply",
                created_at=now,
            )
        )
        if outcome.unsubscribed:
            outcome.canceled += await unsubscribe_lead(db, lead, now)
        else:
            outcome.canceled += await cancel_active_enrollments(
                db, lead.id, CancelReason.REPLIED, now, stop_on_reply_only=True
            )

    await db.commit()
    logger.info(
        "Inbound SMS from %s matched %d leads (unsubscribe=%s, %d enrollments canceled)",
        from_number,
        len(leads),
        outcome.unsubscribed,
        outcome.canceled,
    )
    return outcome
