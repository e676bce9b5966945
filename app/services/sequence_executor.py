"""Sequence step executor.

A single batch pass over active enrollments, run by the cron endpoint or the
`process_sequences` script. Each enrollment is handled in its own session
under a row lock: one step at a time, each step committed together with its
execution record and the lead counters it touches. Wait and action steps chain
within a pass; a message attempt ends the enrollment's turn.

Message steps fire at most once. The partial unique index on sent executions
is the final arbiter when two runs race; the loser rolls back.

Locks are taken enrollment first, then lead with NOWAIT and before any send.
A lead held by a concurrent status change leaves the enrollment for the next
pass.

Failed sends do not block retries. Attempt n+1 waits
`retry_delays_minutes[n-1]` after the last failure; after `max_send_attempts`
failures the enrollment is canceled with reason `delivery_failed` and the
business is notified.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Optional, Union
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import EngineConfig, get_engine_config
from app.core.exceptions import LeadNotFound
from app.models.business import Business
from app.models.enrollment import (
    CancelReason,
    EnrollmentStatus,
    ExecutionStatus,
    SequenceEnrollment,
    SequenceStepExecution,
)
from app.models.lead import Lead, LeadStatus
from app.models.lead_interaction import InteractionDirection, InteractionType, LeadInteraction
from app.models.notification import NotificationType
from app.models.sequence import Channel, STEP_CHANNELS, Sequence, SequenceStep, StepType
from app.schemas.dispatch import DispatchResult
from app.services.content_generator import (
    BusinessContext,
    ContentGenerator,
    LeadContext,
    build_content_generator,
    generate_with_fallback,
    message_type_for_step,
    render_template,
)
from app.services.dispatcher import ChannelDispatcher, SenderIdentity
from app.services.enrollments import advance, apply_status_stop_conditions, cancel, complete
from app.services.leads import add_tag, can_transition, lock_lead, record_contact
from app.services.notification_service import create_notification
from app.services.scoring import apply_score

logger = logging.getLogger(__name__)

# Milliseconds per delay unit; unknown units count as hours.
DELAY_UNIT_MS = {
    "minutes": 60 * 1000,
    "hours": 60 * 60 * 1000,
    "days": 24 * 60 * 60 * 1000,
}

MAX_STEPS_PER_PASS = 25
LOCK_NOT_AVAILABLE = "55P03"

_INTERACTION_TYPES = {
    Channel.SMS: InteractionType.SMS,
    Channel.EMAIL: InteractionType.EMAIL,
}


def _is_lock_conflict(error: OperationalError) -> bool:
    # Postgres lock_not_available, raised by FOR UPDATE NOWAIT
    code = getattr(error.orig, "pgcode", None) or getattr(error.orig, "sqlstate", None)
    return code == LOCK_NOT_AVAILABLE


async def _lock_lead(db: AsyncSession, lead_id: UUID) -> Optional[Lead]:
    """Lock an enrollment's lead without waiting; None when the lead is gone."""
    try:
        return await lock_lead(db, lead_id, nowait=True)
    except LeadNotFound:
        return None


def delay_ms(value: Optional[int], unit: Optional[str]) -> int:
    if not value:
        return 0
    return value * DELAY_UNIT_MS.get(unit or "hours", DELAY_UNIT_MS["hours"])


@dataclass(frozen=True)
class WaitStep:
    step: SequenceStep
    delay: timedelta


@dataclass(frozen=True)
class MessageStep:
    step: SequenceStep
    channel: Channel


@dataclass(frozen=True)
class ActionStep:
    step: SequenceStep
    action: Optional[StepType]  # None for unknown step types, run as a pass-through


PlannedStep = Union[WaitStep, MessageStep, ActionStep]


def classify_step(step: SequenceStep) -> PlannedStep:
    try:
        step_type = StepType(step.step_type)
    except ValueError:
        logger.warning("Unknown step type '%s' on step %s, passing through", step.step_type, step.id)
        return ActionStep(step=step, action=None)

    if step_type == StepType.WAIT:
        return WaitStep(step=step, delay=timedelta(milliseconds=delay_ms(step.delay_value, step.delay_unit)))
    if step_type in STEP_CHANNELS:
        return MessageStep(step=step, channel=STEP_CHANNELS[step_type])
    return ActionStep(step=step, action=step_type)


def next_attempt_at(failed_attempts: int, last_failed_at: Optional[datetime], config: EngineConfig) -> Optional[datetime]:
    """When the next send may be tried; None when it may be tried now."""
    if failed_attempts == 0 or last_failed_at is None:
        return None
    delays = config.retry_delays_minutes
    return last_failed_at + timedelta(minutes=delays[min(failed_attempts - 1, len(delays) - 1)])


class Outcome(str, enum.Enum):
    ADVANCED = "advanced"
    SENT = "sent"
    FAILED = "failed"
    GAVE_UP = "gave_up"
    COMPLETED = "completed"
    CANCELED = "canceled"
    WAITING = "waiting"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    ERROR = "error"


@dataclass
class BatchResult:
    processed: int = 0
    advanced: int = 0
    sent: int = 0
    failed: int = 0
    completed: int = 0
    canceled: int = 0
    waiting: int = 0
    skipped: int = 0
    errors: int = 0

    def record(self, outcome: Outcome) -> None:
        if outcome in (Outcome.ADVANCED, Outcome.SENT):
            self.advanced += 1
        if outcome == Outcome.SENT:
            self.sent += 1
        elif outcome in (Outcome.FAILED, Outcome.GAVE_UP):
            self.failed += 1
        if outcome in (Outcome.GAVE_UP, Outcome.CANCELED):
            self.canceled += 1
        elif outcome == Outcome.COMPLETED:
            self.completed += 1
        elif outcome == Outcome.WAITING:
            self.waiting += 1
        elif outcome in (Outcome.SKIPPED, Outcome.DUPLICATE):
            self.skipped += 1
        elif outcome == Outcome.ERROR:
            self.errors += 1

    def as_dict(self) -> dict:
        return asdict(self)


class SequenceExecutor:
    def __init__(
        self,
        config: EngineConfig,
        session_factory: async_sessionmaker,
        generator: Optional[ContentGenerator],
        dispatcher: ChannelDispatcher,
    ):
        self.config = config
        self.session_factory = session_factory
        self.generator = generator
        self.dispatcher = dispatcher

    async def run(self, business_id: Optional[UUID] = None, now: Optional[datetime] = None) -> BatchResult:
        """Process one batch of active enrollments, oldest first."""
        now = now or datetime.utcnow()

        async with self.session_factory() as db:
            query = select(SequenceEnrollment.id).where(SequenceEnrollment.status == EnrollmentStatus.ACTIVE.value)
            if business_id is not None:
                query = query.where(SequenceEnrollment.business_id == business_id)
            query = query.order_by(SequenceEnrollment.enrolled_at).limit(self.config.batch_size)
            enrollment_ids = list((await db.execute(query)).scalars().all())

        result = BatchResult(processed=len(enrollment_ids))
        if not enrollment_ids:
            logger.info("No active enrollments to process")
            return result

        semaphore = asyncio.Semaphore(self.config.concurrency)

        async def worker(enrollment_id: UUID) -> list[Outcome]:
            async with semaphore:
                return await self.process_enrollment(enrollment_id, now)

        for outcomes in await asyncio.gather(*(worker(eid) for eid in enrollment_ids)):
            for outcome in outcomes:
                result.record(outcome)

        logger.info("Sequence batch complete: %s", result.as_dict())
        return result

    async def process_enrollment(self, enrollment_id: UUID, now: datetime) -> list[Outcome]:
        """Run an enrollment's due steps. Never raises; failures become Outcome.ERROR."""
        outcomes: list[Outcome] = []
        try:
            for _ in range(MAX_STEPS_PER_PASS):
                async with self.session_factory() as db:
                    outcome = await self._process_step(db, enrollment_id, now)
                outcomes.append(outcome)
                if outcome != Outcome.ADVANCED:
                    break
        except Exception:
            logger.exception("Error processing enrollment %s", enrollment_id)
            outcomes.append(Outcome.ERROR)
        return outcomes

    async def _process_step(self, db: AsyncSession, enrollment_id: UUID, now: datetime) -> Outcome:
        result = await db.execute(
            select(SequenceEnrollment)
            .where(SequenceEnrollment.id == enrollment_id)
            .with_for_update(skip_locked=True)
            .execution_options(populate_existing=True)
        )
        enrollment = result.scalar_one_or_none()
        if enrollment is None or not enrollment.is_active:
            # Locked by an overlapping run, or finished since the batch was loaded
            return Outcome.SKIPPED

        sequence = await db.get(Sequence, enrollment.sequence_id)
        if sequence is None:
            logger.warning("Enrollment %s references missing sequence %s", enrollment_id, enrollment.sequence_id)
            return Outcome.SKIPPED
        if not sequence.enabled:
            return Outcome.SKIPPED

        result = await db.execute(
            select(SequenceStep).where(
                SequenceStep.sequence_id == enrollment.sequence_id,
                SequenceStep.step_order == enrollment.current_step_order,
            )
        )
        step = result.scalar_one_or_none()
        if step is None:
            complete(enrollment, now)
            await db.commit()
            logger.info("Enrollment %s completed sequence %s", enrollment_id, sequence.id)
            return Outcome.COMPLETED

        planned = classify_step(step)
        try:
            if isinstance(planned, WaitStep):
                return await self._run_wait(db, enrollment, planned, now)
            if isinstance(planned, MessageStep):
                return await self._run_message(db, enrollment, planned, now)
            return await self._run_action(db, enrollment, sequence, planned, now)
        except OperationalError as e:
            if not _is_lock_conflict(e):
                raise
            await db.rollback()
            logger.info("Lead of enrollment %s is locked by another update, retrying next pass", enrollment_id)
            return Outcome.SKIPPED

    async def _run_wait(self, db: AsyncSession, enrollment: SequenceEnrollment, planned: WaitStep, now: datetime) -> Outcome:
        # Delays are measured from enrollment, not from the previous step.
        if now < enrollment.enrolled_at + planned.delay:
            return Outcome.WAITING
        advance(enrollment)
        await db.commit()
        return Outcome.ADVANCED

    async def _run_message(
        self,
        db: AsyncSession,
        enrollment: SequenceEnrollment,
        planned: MessageStep,
        now: datetime,
    ) -> Outcome:
        step = planned.step
        result = await db.execute(
            select(SequenceStepExecution).where(
                SequenceStepExecution.enrollment_id == enrollment.id,
                SequenceStepExecution.step_id == step.id,
            )
        )
        executions = result.scalars().all()

        if any(e.status == ExecutionStatus.SENT.value for e in executions):
            # Sent by an earlier run that did not get to advance
            advance(enrollment)
            await db.commit()
            return Outcome.ADVANCED

        failures = [e for e in executions if e.status == ExecutionStatus.FAILED.value]
        # Lead lock is taken before dispatch, never after a send
        lead = await _lock_lead(db, enrollment.lead_id)
        business = await db.get(Business, enrollment.business_id)
        if lead is None or business is None:
            logger.warning("Enrollment %s is missing its lead or business, skipping", enrollment.id)
            return Outcome.SKIPPED

        if len(failures) >= self.config.max_send_attempts:
            return await self._give_up(db, enrollment, lead, business, len(failures), now)

        retry_at = next_attempt_at(len(failures), max((e.created_at for e in failures), default=None), self.config)
        if retry_at is not None and now < retry_at:
            return Outcome.WAITING

        if lead.unsubscribed_at is not None:
            cancel(enrollment, CancelReason.UNSUBSCRIBED, now)
            await db.commit()
            logger.info("Lead %s unsubscribed, canceled enrollment %s", lead.id, enrollment.id)
            return Outcome.CANCELED

        destination = lead.phone if planned.channel == Channel.SMS else lead.email
        if not destination:
            logger.info(
                "Lead %s has no %s destination, step %s skipped",
                lead.id,
                planned.channel.value,
                step.step_order,
            )
            return Outcome.SKIPPED

        result = await db.execute(
            select(SequenceStepExecution.message_sent)
            .where(
                SequenceStepExecution.enrollment_id == enrollment.id,
                SequenceStepExecution.message_sent.isnot(None),
            )
            .order_by(SequenceStepExecution.created_at)
        )
        previous_messages = list(result.scalars().all())

        generated = await generate_with_fallback(
            self.generator,
            self.config,
            LeadContext.from_lead(lead),
            BusinessContext.from_business(business),
            message_type_for_step(enrollment.current_step_order),
            previous_messages,
            planned.channel,
            step.message_template,
        )

        sender = SenderIdentity.for_business(business, self.config)
        subject = None
        if planned.channel == Channel.EMAIL:
            subject = render_template(
                step.subject or f"Following up from {sender.name}",
                LeadContext.from_lead(lead),
                BusinessContext.from_business(business),
                message_type_for_step(enrollment.current_step_order),
            )
        try:
            dispatch = await self.dispatcher.send(planned.channel, destination, generated.text, sender, subject=subject)
        except Exception as e:
            logger.exception("Dispatcher raised for enrollment %s", enrollment.id)
            dispatch = DispatchResult(success=False, error=str(e))

        if not dispatch.success:
            return await self._record_failure(db, enrollment, step, lead, business, generated.text, dispatch, len(failures) + 1, now)

        record_contact(lead, now)
        db.add(
            SequenceStepExecution(
                enrollment_id=enrollment.id,
                step_id=step.id,
                status=ExecutionStatus.SENT.value,
                message_sent=generated.text,
                provider_message_id=dispatch.provider_message_id,
                created_at=now,
            )
        )
        db.add(
            LeadInteraction(
                lead_id=lead.id,
                business_id=lead.business_id,
                type=_INTERACTION_TYPES[planned.channel],
                direction=InteractionDirection.OUTBOUND,
                content=generated.text,
                outcome="sequence",
                created_at=now,
            )
        )
        enrollment_id, step_order = enrollment.id, step.step_order
        advance(enrollment)
        try:
            await db.commit()
        except IntegrityError:
            # Rollback expires loaded instances
            await db.rollback()
            logger.info("Step %s of enrollment %s already sent by another run", step_order, enrollment_id)
            return Outcome.DUPLICATE

        logger.info(
            "Sent %s step %s for enrollment %s (lead %s, fallback=%s)",
            planned.channel.value,
            step.step_order,
            enrollment.id,
            lead.id,
            generated.used_fallback,
        )
        return Outcome.SENT

    async def _record_failure(
        self,
        db: AsyncSession,
        enrollment: SequenceEnrollment,
        step: SequenceStep,
        lead: Lead,
        business: Business,
        message: str,
        dispatch: DispatchResult,
        attempts: int,
        now: datetime,
    ) -> Outcome:
        db.add(
            SequenceStepExecution(
                enrollment_id=enrollment.id,
                step_id=step.id,
                status=ExecutionStatus.FAILED.value,
                message_sent=message,
                error_message=dispatch.error,
                created_at=now,
            )
        )
        if attempts >= self.config.max_send_attempts:
            return await self._give_up(db, enrollment, lead, business, attempts, now)

        await db.commit()
        logger.warning(
            "Send failed for enrollment %s step %s (attempt %d/%d): %s",
            enrollment.id,
            step.step_order,
            attempts,
            self.config.max_send_attempts,
            dispatch.error,
        )
        return Outcome.FAILED

    async def _give_up(
        self,
        db: AsyncSession,
        enrollment: SequenceEnrollment,
        lead: Lead,
        business: Business,
        attempts: int,
        now: datetime,
    ) -> Outcome:
        title = "Follow-up delivery failed"
        message = (
            f"We could not deliver a follow-up to {lead.name} after {attempts} attempts. "
            "Their sequence has been stopped."
        )
        cancel(enrollment, CancelReason.DELIVERY_FAILED, now)
        await create_notification(db, business.id, title, message, NotificationType.DELIVERY_FAILURE, lead_id=lead.id)
        await db.commit()
        logger.error("Enrollment %s canceled after %d failed sends", enrollment.id, attempts)

        await self.dispatcher.alert_owner(business, title, message, lead.name)
        return Outcome.GAVE_UP

    async def _run_action(
        self,
        db: AsyncSession,
        enrollment: SequenceEnrollment,
        sequence: Sequence,
        planned: ActionStep,
        now: datetime,
    ) -> Outcome:
        step = planned.step
        alert = None

        if planned.action in (StepType.ADD_TAG, StepType.CHANGE_STATUS, StepType.NOTIFY_USER):
            lead = await _lock_lead(db, enrollment.lead_id)
            if lead is None:
                logger.warning("Enrollment %s references missing lead %s", enrollment.id, enrollment.lead_id)
                return Outcome.SKIPPED

        if planned.action == StepType.ADD_TAG:
            if step.tag_name and add_tag(lead, step.tag_name):
                apply_score(lead, now)
                logger.info("Tagged lead %s with '%s'", lead.id, step.tag_name)

        elif planned.action == StepType.CHANGE_STATUS:
            try:
                target = LeadStatus(step.status_value)
            except ValueError:
                target = None
                logger.warning("Step %s has invalid status_value '%s'", step.id, step.status_value)
            if target is not None and can_transition(lead.status, target):
                lead.status = target
                apply_score(lead, now)
                await apply_status_stop_conditions(db, lead, now, exclude_enrollment_id=enrollment.id)
                logger.info("Sequence %s moved lead %s to %s", sequence.id, lead.id, target.value)
            elif target is not None:
                logger.warning(
                    "Sequence %s cannot move lead %s from %s to %s",
                    sequence.id,
                    lead.id,
                    lead.status.value,
                    target.value,
                )

        elif planned.action == StepType.NOTIFY_USER:
            business = await db.get(Business, enrollment.business_id)
            if business is None:
                logger.warning("Enrollment %s references missing business %s", enrollment.id, enrollment.business_id)
                return Outcome.SKIPPED
            text = step.notification_message or step.message_template or f"{{name}} reached a step in '{sequence.name}'"
            message = render_template(
                text,
                LeadContext.from_lead(lead),
                BusinessContext.from_business(business),
                message_type_for_step(enrollment.current_step_order),
            )
            title = f"Sequence: {sequence.name}"
            await create_notification(db, enrollment.business_id, title, message, NotificationType.SEQUENCE, lead_id=lead.id)
            alert = (business, title, message, lead.name)

        advance(enrollment)
        await db.commit()

        if alert is not None:
            await self.dispatcher.alert_owner(*alert)
        return Outcome.ADVANCED


def build_executor(
    config: Optional[EngineConfig] = None,
    session_factory: Optional[async_sessionmaker] = None,
) -> SequenceExecutor:
    """Executor wired to the configured providers and the application database."""
    from app.core.database import async_session

    config = config or get_engine_config()
    return SequenceExecutor(
        config=config,
        session_factory=session_factory or async_session,
        generator=build_content_generator(config),
        dispatcher=ChannelDispatcher(config),
    )
