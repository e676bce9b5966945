"""Sequence enrollment store.

Enrollments are created by triggers, advanced only by the step executor and
finished by completion or cancellation. `advance`, `complete` and `cancel`
only stage changes on the instance; whoever owns the unit of work commits,
so an advance is always persisted together with its execution record.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AlreadyEnrolled,
    EnrollmentNotFound,
    LeadNotEnrollable,
    LeadNotFound,
    LeadUnsubscribed,
    SequenceNotFound,
)
from app.models.enrollment import CancelReason, EnrollmentStatus, SequenceEnrollment
from app.models.lead import Lead, LeadStatus
from app.models.sequence import Sequence, SequenceStep, SequenceTrigger

logger = logging.getLogger(__name__)

CLOSED_LEAD_STATUSES = {LeadStatus.BOOKED, LeadStatus.LOST}


async def first_step_order(db: AsyncSession, sequence_id: UUID) -> int:
    """Lowest defined step_order of a sequence, 0 when it has no steps."""
    result = await db.execute(
        select(func.min(SequenceStep.step_order)).where(SequenceStep.sequence_id == sequence_id)
    )
    first = result.scalar()
    return first if first is not None else 0


async def get_active_enrollment(
    db: AsyncSession, lead_id: UUID, sequence_id: UUID
) -> Optional[SequenceEnrollment]:
    result = await db.execute(
        select(SequenceEnrollment).where(
            SequenceEnrollment.lead_id == lead_id,
            SequenceEnrollment.sequence_id == sequence_id,
            SequenceEnrollment.status == EnrollmentStatus.ACTIVE.value,
        )
    )
    return result.scalar_one_or_none()


async def enroll(
    db: AsyncSession,
    lead_id: UUID,
    sequence_id: UUID,
    now: Optional[datetime] = None,
) -> SequenceEnrollment:
    """Start a lead on a sequence.

    Raises LeadNotFound / SequenceNotFound for missing or cross-tenant
    references, LeadUnsubscribed / LeadNotEnrollable when the lead may not be
    messaged, and AlreadyEnrolled when an active enrollment exists.
    """
    now = now or datetime.utcnow()

    lead = await db.get(Lead, lead_id)
    if not lead:
        raise LeadNotFound(f"Lead {lead_id} not found")

    sequence = await db.get(Sequence, sequence_id)
    if not sequence or sequence.business_id != lead.business_id:
        raise SequenceNotFound(f"Sequence {sequence_id} not found")

    if lead.unsubscribed_at is not None:
        raise LeadUnsubscribed(f"Lead {lead_id} has unsubscribed")
    if lead.status in CLOSED_LEAD_STATUSES:
        raise LeadNotEnrollable(f"Lead {lead_id} is {lead.status.value}")

    if await get_active_enrollment(db, lead_id, sequence_id):
        raise AlreadyEnrolled(f"Lead {lead_id} is already enrolled in sequence {sequence_id}")

    enrollment = SequenceEnrollment(
        lead_id=lead_id,
        sequence_id=sequence_id,
        business_id=lead.business_id,
        status=EnrollmentStatus.ACTIVE.value,
        current_step_order=await first_step_order(db, sequence_id),
        enrolled_at=now,
    )
    db.add(enrollment)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race against a concurrent enroll for the same pair
        await db.rollback()
        raise AlreadyEnrolled(f"Lead {lead_id} is already enrolled in sequence {sequence_id}")

    await db.refresh(enrollment)
    logger.info("Lead %s enrolled in sequence %s (%s)", lead_id, sequence_id, enrollment.id)
    return enrollment


async def enroll_lead_by_trigger(
    db: AsyncSession,
    lead_id: UUID,
    trigger: SequenceTrigger | str,
    now: Optional[datetime] = None,
) -> list[SequenceEnrollment]:
    """Enroll a lead into every enabled sequence of its business matching `trigger`.

    Sequences the lead is already active in are skipped. Returns the new
    enrollments; an empty list when nothing matched.
    """
    trigger_value = getattr(trigger, "value", trigger)

    lead = await db.get(Lead, lead_id)
    if not lead:
        raise LeadNotFound(f"Lead {lead_id} not found")

    result = await db.execute(
        select(Sequence.id)
        .where(
            Sequence.business_id == lead.business_id,
            Sequence.enabled.is_(True),
            Sequence.trigger_type == trigger_value,
        )
        .order_by(Sequence.created_at)
    )
    sequence_ids = result.scalars().all()

    created = []
    for sequence_id in sequence_ids:
        try:
            created.append(await enroll(db, lead_id, sequence_id, now=now))
        except AlreadyEnrolled:
            logger.info("Lead %s already active in sequence %s, skipping", lead_id, sequence_id)

    logger.info(
        "Trigger %s for lead %s: %d matching sequences, %d enrolled",
        trigger_value,
        lead_id,
        len(sequence_ids),
        len(created),
    )
    return created


def advance(enrollment: SequenceEnrollment) -> None:
    enrollment.current_step_order += 1


def complete(enrollment: SequenceEnrollment, now: Optional[datetime] = None) -> None:
    enrollment.status = EnrollmentStatus.COMPLETED.value
    enrollment.completed_at = now or datetime.utcnow()


def cancel(
    enrollment: SequenceEnrollment,
    reason: CancelReason | str = CancelReason.MANUAL,
    now: Optional[datetime] = None,
) -> None:
    enrollment.status = EnrollmentStatus.CANCELED.value
    enrollment.canceled_at = now or datetime.utcnow()
    enrollment.cancel_reason = getattr(reason, "value", reason)


async def get_enrollment(db: AsyncSession, enrollment_id: UUID) -> SequenceEnrollment:
    enrollment = await db.get(SequenceEnrollment, enrollment_id)
    if not enrollment:
        raise EnrollmentNotFound(f"Enrollment {enrollment_id} not found")
    return enrollment


async def cancel_enrollment(
    db: AsyncSession,
    enrollment_id: UUID,
    reason: CancelReason | str = CancelReason.MANUAL,
) -> SequenceEnrollment:
    """Cancel one enrollment by id. Finished enrollments are returned unchanged."""
    enrollment = await get_enrollment(db, enrollment_id)
    if enrollment.is_active:
        cancel(enrollment, reason)
        await db.commit()
        await db.refresh(enrollment)
        logger.info("Enrollment %s canceled (%s)", enrollment_id, enrollment.cancel_reason)
    return enrollment


async def cancel_active_enrollments(
    db: AsyncSession,
    lead_id: UUID,
    reason: CancelReason,
    now: Optional[datetime] = None,
    stop_on_reply_only: bool = False,
    stop_on_booking_only: bool = False,
    exclude_enrollment_id: Optional[UUID] = None,
) -> int:
    """Cancel a lead's active enrollments. Stages the change, does not commit.

    The `*_only` flags restrict cancellation to sequences that opted into the
    matching stop condition. Returns the number of enrollments canceled.
    """
    now = now or datetime.utcnow()
    query = (
        select(SequenceEnrollment)
        .join(Sequence, Sequence.id == SequenceEnrollment.sequence_id)
        .where(
            SequenceEnrollment.lead_id == lead_id,
            SequenceEnrollment.status == EnrollmentStatus.ACTIVE.value,
        )
    )
    if stop_on_reply_only:
        query = query.where(Sequence.stop_on_reply.is_(True))
    if stop_on_booking_only:
        query = query.where(Sequence.stop_on_booking.is_(True))
    if exclude_enrollment_id is not None:
        query = query.where(SequenceEnrollment.id != exclude_enrollment_id)

    result = await db.execute(query)
    enrollments = result.scalars().all()
    for enrollment in enrollments:
        cancel(enrollment, reason, now)

    if enrollments:
        logger.info(
            "Canceled %d active enrollments for lead %s (%s)",
            len(enrollments),
            lead_id,
            getattr(reason, "value", reason),
        )
    return len(enrollments)


async def apply_status_stop_conditions(
    db: AsyncSession,
    lead: Lead,
    now: Optional[datetime] = None,
    exclude_enrollment_id: Optional[UUID] = None,
) -> int:
    """Cancel enrollments a lead's new status makes pointless. Does not commit."""
    if lead.status == LeadStatus.BOOKED:
        return await cancel_active_enrollments(
            db, lead.id, CancelReason.BOOKED, now,
            stop_on_booking_only=True,
            exclude_enrollment_id=exclude_enrollment_id,
        )
    if lead.status == LeadStatus.LOST:
        return await cancel_active_enrollments(
            db, lead.id, CancelReason.LOST, now,
            exclude_enrollment_id=exclude_enrollment_id,
        )
    return 0


async def list_enrollments(
    db: AsyncSession,
    lead_id: Optional[UUID] = None,
    sequence_id: Optional[UUID] = None,
    status: Optional[EnrollmentStatus] = None,
) -> list[SequenceEnrollment]:
    query = select(SequenceEnrollment)
    if lead_id is not None:
        query = query.where(SequenceEnrollment.lead_id == lead_id)
    if sequence_id is not None:
        query = query.where(SequenceEnrollment.sequence_id == sequence_id)
    if status is not None:
        query = query.where(SequenceEnrollment.status == status.value)
    result = await db.execute(query.order_by(SequenceEnrollment.enrolled_at.desc()))
    return list(result.scalars().all())
