"""Sequence definition management.

Steps are replaced wholesale; that is refused while any enrollment of the
sequence is active, and once any step has an execution record, since
executions are kept for good. Steps are stored with contiguous orders
starting at 0 so the executor can walk them one by one.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import BusinessNotFound, SequenceInUse, SequenceNotFound
from app.models.business import Business
from app.models.enrollment import EnrollmentStatus, SequenceEnrollment, SequenceStepExecution
from app.models.lead import Lead, LeadStatus
from app.models.sequence import Sequence, SequenceStep
from app.schemas.sequence import SequenceCreate, SequenceStepIn, SequenceUpdate

logger = logging.getLogger(__name__)


def _build_steps(steps: Iterable[SequenceStepIn]) -> list[SequenceStep]:
    """Build step rows, renumbering the authored order to 0..n-1."""
    return [
        SequenceStep(
            step_order=position,
            step_type=step.step_type.value,
            delay_value=step.delay_value,
            delay_unit=step.delay_unit.value if step.delay_unit else None,
            subject=step.subject,
            message_template=step.message_template or "",
            tag_name=step.tag_name,
            status_value=step.status_value.value if step.status_value else None,
            notification_message=step.notification_message,
        )
        for position, step in enumerate(sorted(steps, key=lambda s: s.step_order))
    ]


async def count_active_enrollments(db: AsyncSession, sequence_id: UUID) -> int:
    result = await db.execute(
        select(func.count(SequenceEnrollment.id)).where(
            SequenceEnrollment.sequence_id == sequence_id,
            SequenceEnrollment.status == EnrollmentStatus.ACTIVE.value,
        )
    )
    return result.scalar_one()


async def count_executions(db: AsyncSession, sequence_id: UUID) -> int:
    result = await db.execute(
        select(func.count(SequenceStepExecution.id))
        .join(SequenceStep, SequenceStep.id == SequenceStepExecution.step_id)
        .where(SequenceStep.sequence_id == sequence_id)
    )
    return result.scalar_one()


@dataclass(frozen=True)
class SequenceStats:
    active_enrollments: int = 0
    completed_enrollments: int = 0
    booked_leads: int = 0

    @property
    def conversion_rate(self) -> float:
        """Percentage of completed enrollments whose lead went on to book."""
        if not self.completed_enrollments:
            return 0.0
        return round(self.booked_leads / self.completed_enrollments * 100, 1)


async def sequence_stats(db: AsyncSession, sequence_ids: list[UUID]) -> dict[UUID, SequenceStats]:
    """Active and completed enrollment counts plus booked leads, per sequence."""
    if not sequence_ids:
        return {}

    result = await db.execute(
        select(SequenceEnrollment.sequence_id, SequenceEnrollment.status, func.count(SequenceEnrollment.id))
        .where(
            SequenceEnrollment.sequence_id.in_(sequence_ids),
            SequenceEnrollment.status.in_([EnrollmentStatus.ACTIVE.value, EnrollmentStatus.COMPLETED.value]),
        )
        .group_by(SequenceEnrollment.sequence_id, SequenceEnrollment.status)
    )
    counts = {(sequence_id, status): n for sequence_id, status, n in result.all()}

    result = await db.execute(
        select(SequenceEnrollment.sequence_id, func.count(func.distinct(Lead.id)))
        .join(Lead, Lead.id == SequenceEnrollment.lead_id)
        .where(
            SequenceEnrollment.sequence_id.in_(sequence_ids),
            SequenceEnrollment.status == EnrollmentStatus.COMPLETED.value,
            Lead.status == LeadStatus.BOOKED,
        )
        .group_by(SequenceEnrollment.sequence_id)
    )
    booked = dict(result.all())

    return {
        sequence_id: SequenceStats(
            active_enrollments=counts.get((sequence_id, EnrollmentStatus.ACTIVE.value), 0),
            completed_enrollments=counts.get((sequence_id, EnrollmentStatus.COMPLETED.value), 0),
            booked_leads=booked.get(sequence_id, 0),
        )
        for sequence_id in sequence_ids
    }


async def get_sequence(db: AsyncSession, sequence_id: UUID, business_id: Optional[UUID] = None) -> Sequence:
    result = await db.execute(
        select(Sequence)
        .options(selectinload(Sequence.steps))
        .where(Sequence.id == sequence_id)
        .execution_options(populate_existing=True)
    )
    sequence = result.scalar_one_or_none()
    if not sequence or (business_id is not None and sequence.business_id != business_id):
        raise SequenceNotFound(f"Sequence {sequence_id} not found")
    return sequence


async def list_sequences(db: AsyncSession, business_id: UUID) -> list[Sequence]:
    result = await db.execute(
        select(Sequence)
        .options(selectinload(Sequence.steps))
        .where(Sequence.business_id == business_id)
        .order_by(Sequence.created_at.desc())
    )
    return list(result.scalars().all())


async def create_sequence(db: AsyncSession, data: SequenceCreate) -> Sequence:
    business = await db.get(Business, data.business_id)
    if not business:
        raise BusinessNotFound(f"Business {data.business_id} not found")

    sequence = Sequence(
        business_id=data.business_id,
        name=data.name,
        description=data.description,
        trigger_type=data.trigger_type.value,
        enabled=data.enabled,
        stop_on_reply=data.stop_on_reply,
        stop_on_booking=data.stop_on_booking,
        steps=_build_steps(data.steps),
    )
    db.add(sequence)
    await db.commit()

    logger.info(
        "Created sequence %s '%s' (%s, %d steps) for business %s",
        sequence.id,
        sequence.name,
        sequence.trigger_type,
        len(data.steps),
        data.business_id,
    )
    return await get_sequence(db, sequence.id)


async def update_sequence(db: AsyncSession, sequence_id: UUID, data: SequenceUpdate) -> Sequence:
    """Update sequence settings and, when given, replace its steps."""
    sequence = await get_sequence(db, sequence_id)

    if data.steps is not None:
        active = await count_active_enrollments(db, sequence_id)
        if active:
            raise SequenceInUse(
                f"Sequence {sequence_id} has {active} active enrollments; steps cannot be changed"
            )
        if await count_executions(db, sequence_id):
            raise SequenceInUse(
                f"Sequence {sequence_id} has execution history; duplicate it to change steps"
            )

    for field in ("name", "description", "enabled", "stop_on_reply", "stop_on_booking"):
        value = getattr(data, field)
        if value is not None:
            setattr(sequence, field, value)
    if data.trigger_type is not None:
        sequence.trigger_type = data.trigger_type.value

    if data.steps is not None:
        sequence.steps.clear()
        # Flush deletions first so the (sequence_id, step_order) constraint
        # does not see old and new rows at the same time.
        await db.flush()
        sequence.steps.extend(_build_steps(data.steps))

    await db.commit()
    logger.info("Updated sequence %s", sequence_id)
    return await get_sequence(db, sequence_id)


async def toggle_sequence(db: AsyncSession, sequence_id: UUID, enabled: bool) -> Sequence:
    sequence = await get_sequence(db, sequence_id)
    sequence.enabled = enabled
    await db.commit()
    logger.info("Sequence %s %s", sequence_id, "enabled" if enabled else "disabled")
    return await get_sequence(db, sequence_id)


async def duplicate_sequence(db: AsyncSession, sequence_id: UUID) -> Sequence:
    """Copy a sequence and its steps. The copy always starts disabled."""
    original = await get_sequence(db, sequence_id)
    copy = Sequence(
        business_id=original.business_id,
        name=f"{original.name} (Copy)",
        description=original.description,
        trigger_type=original.trigger_type,
        enabled=False,
        stop_on_reply=original.stop_on_reply,
        stop_on_booking=original.stop_on_booking,
        steps=[
            SequenceStep(
                step_order=step.step_order,
                step_type=step.step_type,
                delay_value=step.delay_value,
                delay_unit=step.delay_unit,
                subject=step.subject,
                message_template=step.message_template,
                tag_name=step.tag_name,
                status_value=step.status_value,
                notification_message=step.notification_message,
            )
            for step in original.steps
        ],
    )
    db.add(copy)
    await db.commit()
    logger.info("Duplicated sequence %s as %s", sequence_id, copy.id)
    return await get_sequence(db, copy.id)


async def delete_sequence(db: AsyncSession, sequence_id: UUID) -> None:
    sequence = await get_sequence(db, sequence_id)
    active = await count_active_enrollments(db, sequence_id)
    if active:
        raise SequenceInUse(f"Sequence {sequence_id} has {active} active enrollments")

    result = await db.execute(
        select(func.count(SequenceEnrollment.id)).where(SequenceEnrollment.sequence_id == sequence_id)
    )
    if result.scalar_one():
        # Finished enrollments keep their execution history; disable instead.
        raise SequenceInUse(f"Sequence {sequence_id} has enrollment history; disable it instead")

    await db.delete(sequence)
    await db.commit()
    logger.info("Deleted sequence %s", sequence_id)
