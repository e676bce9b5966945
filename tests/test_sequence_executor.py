"""Tests for the sequence step executor.

The executor gets the test session factory, a dispatcher double and (where it
matters) a generator double; `now` is always passed explicitly.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.core.exceptions import GenerationUnavailable
from app.models.enrollment import EnrollmentStatus, SequenceEnrollment, SequenceStepExecution
from app.models.lead import Lead, LeadStatus
from app.models.lead_interaction import InteractionDirection, LeadInteraction
from app.models.notification import Notification, NotificationType
from app.models.sequence import Channel, Sequence, SequenceStep
from app.schemas.dispatch import DispatchResult
from app.schemas.sequence import SequenceCreate
from app.services import enrollments as enrollment_service
from app.services import sequences as sequence_service
from app.services.content_generator import ContentGenerator
from app.services.sequence_executor import (
    ActionStep,
    BatchResult,
    MessageStep,
    Outcome,
    SequenceExecutor,
    WaitStep,
    classify_step,
    delay_ms,
    next_attempt_at,
)

T0 = datetime(2026, 3, 2, 15, 0, 0)


async def _sequence(db, business, steps, enabled=True, name="Booking abandoned"):
    sequence = Sequence(
        business_id=business.id,
        name=name,
        trigger_type="booking_abandoned",
        enabled=enabled,
        steps=[SequenceStep(step_order=i, **step) for i, step in enumerate(steps)],
    )
    db.add(sequence)
    await db.commit()
    return sequence


async def _enroll(db, lead, sequence, status=EnrollmentStatus.ACTIVE.value):
    enrollment = SequenceEnrollment(
        lead_id=lead.id,
        sequence_id=sequence.id,
        business_id=lead.business_id,
        status=status,
        current_step_order=0,
        enrolled_at=T0,
    )
    db.add(enrollment)
    await db.commit()
    return enrollment


async def _load(session_factory, model, pk):
    async with session_factory() as session:
        return await session.get(model, pk)


async def _executions(session_factory, enrollment_id):
    async with session_factory() as session:
        result = await session.execute(
            select(SequenceStepExecution)
            .where(SequenceStepExecution.enrollment_id == enrollment_id)
            .order_by(SequenceStepExecution.created_at)
        )
        return list(result.scalars().all())


def _executor(engine_config, session_factory, dispatcher, generator=None):
    return SequenceExecutor(
        config=engine_config,
        session_factory=session_factory,
        generator=generator,
        dispatcher=dispatcher,
    )


SMS = {"step_type": "send_sms"}


def _wait(value, unit):
    return {"step_type": "wait", "delay_value": value, "delay_unit": unit}


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def test_delay_ms_units():
    assert delay_ms(30, "minutes") == 30 * 60 * 1000
    assert delay_ms(2, "hours") == 2 * 3600 * 1000
    assert delay_ms(1, "days") == 86400 * 1000
    assert delay_ms(3, "fortnights") == 3 * 3600 * 1000
    assert delay_ms(None, "days") == 0
    assert delay_ms(0, "days") == 0


def test_classify_step():
    assert isinstance(classify_step(SequenceStep(step_type="wait", delay_value=1, delay_unit="days")), WaitStep)
    message = classify_step(SequenceStep(step_type="send_email"))
    assert isinstance(message, MessageStep)
    assert message.channel == Channel.EMAIL
    unknown = classify_step(SequenceStep(step_type="send_fax"))
    assert isinstance(unknown, ActionStep)
    assert unknown.action is None


def test_next_attempt_at_uses_backoff_schedule(engine_config):
    failed_at = T0
    assert next_attempt_at(0, None, engine_config) is None
    assert next_attempt_at(1, failed_at, engine_config) == T0 + timedelta(minutes=5)
    assert next_attempt_at(2, failed_at, engine_config) == T0 + timedelta(minutes=30)
    assert next_attempt_at(7, failed_at, engine_config) == T0 + timedelta(minutes=120)


def test_batch_result_counts():
    result = BatchResult()
    for outcome in (Outcome.ADVANCED, Outcome.SENT, Outcome.FAILED, Outcome.GAVE_UP,
                    Outcome.COMPLETED, Outcome.WAITING, Outcome.DUPLICATE, Outcome.ERROR):
        result.record(outcome)
    assert result.as_dict() == {
        "processed": 0,
        "advanced": 2,
        "sent": 1,
        "failed": 2,
        "completed": 1,
        "canceled": 1,
        "waiting": 1,
        "skipped": 1,
        "errors": 1,
    }


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_wait_send_wait_send_timeline(db, business, lead, session_factory, engine_config, dispatcher):
    sequence = await _sequence(db, business, [
        _wait(30, "minutes"),
        {"step_type": "send_sms", "message_template": "Hi {name}, still want that {service}?"},
        _wait(24, "hours"),
        {"step_type": "send_sms", "message_template": "Last call from {business}, {name}!"},
    ])
    enrollment = await _enroll(db, lead, sequence)
    executor = _executor(engine_config, session_factory, dispatcher)

    # T0+10min: first wait not due
    result = await executor.run(now=T0 + timedelta(minutes=10))
    assert result.processed == 1
    assert result.waiting == 1
    dispatcher.send.assert_not_called()
    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).current_step_order == 0

    # T0+35min: wait elapses and the SMS goes out in the same pass
    result = await executor.run(now=T0 + timedelta(minutes=35))
    assert result.advanced == 2
    assert result.sent == 1
    dispatcher.send.assert_awaited_once()
    channel, destination, body, sender = dispatcher.send.call_args.args
    assert channel == Channel.SMS
    assert destination == "+15551234567"
    assert body == "Hi Jordan Smith, still want that Ceramic Coating?"
    assert sender.from_number == "+15550001111"
    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).current_step_order == 2

    # T0+35min+23h: second wait (24h from enrollment) not due yet
    result = await executor.run(now=T0 + timedelta(minutes=35, hours=23))
    assert result.waiting == 1
    assert dispatcher.send.await_count == 1

    # T0+24h+36min: second wait elapses, last SMS sent
    last_send = T0 + timedelta(hours=24, minutes=36)
    result = await executor.run(now=last_send)
    assert result.sent == 1
    assert dispatcher.send.await_count == 2
    assert dispatcher.send.call_args.args[2] == "Last call from Dana at Sparkle, Jordan Smith!"

    result = await executor.run(now=last_send + timedelta(minutes=5))
    assert result.completed == 1

    finished = await _load(session_factory, SequenceEnrollment, enrollment.id)
    assert finished.status == EnrollmentStatus.COMPLETED.value
    assert finished.completed_at == last_send + timedelta(minutes=5)

    executions = await _executions(session_factory, enrollment.id)
    assert [e.status for e in executions] == ["sent", "sent"]
    assert executions[0].provider_message_id == "SM-test"

    updated_lead = await _load(session_factory, Lead, lead.id)
    assert updated_lead.follow_up_count == 2
    assert updated_lead.last_contacted_at == last_send

    async with session_factory() as session:
        result = await session.execute(
            select(LeadInteraction).where(LeadInteraction.lead_id == lead.id)
        )
        interactions = result.scalars().all()
    assert len(interactions) == 2
    assert all(i.direction == InteractionDirection.OUTBOUND for i in interactions)
    assert all(i.outcome == "sequence" for i in interactions)


@pytest.mark.asyncio
async def test_empty_sequence_completes(db, business, lead, session_factory, engine_config, dispatcher):
    enrollment = await _enroll(db, lead, await _sequence(db, business, []))
    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)
    assert result.completed == 1
    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).status == "completed"


# ---------------------------------------------------------------------------
# At-most-once delivery
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_double_run_sends_once(db, business, lead, session_factory, engine_config, dispatcher):
    enrollment = await _enroll(db, lead, await _sequence(db, business, [SMS, _wait(1, "days")]))
    executor = _executor(engine_config, session_factory, dispatcher)

    await executor.run(now=T0)
    await executor.run(now=T0)

    assert dispatcher.send.await_count == 1
    assert len(await _executions(session_factory, enrollment.id)) == 1
    assert (await _load(session_factory, Lead, lead.id)).follow_up_count == 1


@pytest.mark.asyncio
async def test_existing_sent_execution_advances_without_resend(
    db, business, lead, session_factory, engine_config, dispatcher
):
    sequence = await _sequence(db, business, [SMS, _wait(1, "days")])
    enrollment = await _enroll(db, lead, sequence)
    db.add(SequenceStepExecution(
        enrollment_id=enrollment.id,
        step_id=sequence.steps[0].id,
        status="sent",
        message_sent="Hi Jordan",
        created_at=T0,
    ))
    await db.commit()

    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0 + timedelta(minutes=1))

    dispatcher.send.assert_not_called()
    assert result.advanced == 1
    assert result.waiting == 1
    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).current_step_order == 1


@pytest.mark.asyncio
async def test_concurrent_send_loses_to_unique_index(db, business, lead, session_factory, engine_config, dispatcher):
    sequence = await _sequence(db, business, [SMS])
    enrollment = await _enroll(db, lead, sequence)
    step_id = sequence.steps[0].id

    async def send_while_other_run_commits(*args, **kwargs):
        async with session_factory() as other:
            other.add(SequenceStepExecution(
                enrollment_id=enrollment.id,
                step_id=step_id,
                status="sent",
                message_sent="sent by the other run",
                created_at=T0,
            ))
            await other.commit()
        return DispatchResult(success=True, provider_message_id="SM-dup")

    dispatcher.send.side_effect = send_while_other_run_commits

    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert result.skipped == 1
    assert result.sent == 0
    executions = await _executions(session_factory, enrollment.id)
    assert [e.message_sent for e in executions] == ["sent by the other run"]
    assert (await _load(session_factory, Lead, lead.id)).follow_up_count == 0


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generated_content_is_sent(db, business, lead, session_factory, engine_config, dispatcher):
    generator = AsyncMock(spec=ContentGenerator)
    generator.generate.side_effect = ["Hi Jordan, quick question about your coating!", "Hi Jordan, still around?"]
    enrollment = await _enroll(db, lead, await _sequence(db, business, [SMS, SMS]))
    executor = _executor(engine_config, session_factory, dispatcher, generator)

    await executor.run(now=T0)
    await executor.run(now=T0 + timedelta(minutes=1))

    assert [c.args[2] for c in dispatcher.send.call_args_list] == [
        "Hi Jordan, quick question about your coating!",
        "Hi Jordan, still around?",
    ]
    # The second generation sees the first message
    assert generator.generate.call_args.args[3] == ["Hi Jordan, quick question about your coating!"]
    assert len(await _executions(session_factory, enrollment.id)) == 2


@pytest.mark.asyncio
async def test_generator_failure_falls_back_to_template(
    db, business, lead, session_factory, engine_config, dispatcher
):
    generator = AsyncMock(spec=ContentGenerator)
    generator.generate.side_effect = GenerationUnavailable("azure_openai timed out")
    sequence = await _sequence(db, business, [
        {"step_type": "send_sms", "message_template": "Hi {name}, {business} here about {service}."},
    ])
    await _enroll(db, lead, sequence)

    result = await _executor(engine_config, session_factory, dispatcher, generator).run(now=T0)

    assert result.sent == 1
    assert dispatcher.send.call_args.args[2] == "Hi Jordan Smith, Dana at Sparkle here about Ceramic Coating."


@pytest.mark.asyncio
async def test_blank_template_uses_default(db, business, lead, session_factory, engine_config, dispatcher):
    await _enroll(db, lead, await _sequence(db, business, [SMS]))
    await _executor(engine_config, session_factory, dispatcher).run(now=T0)
    body = dispatcher.send.call_args.args[2]
    assert body.startswith("Hi Jordan Smith, thanks for reaching out to Dana at Sparkle")


@pytest.mark.asyncio
async def test_email_step_renders_subject(db, business, lead, session_factory, engine_config, dispatcher):
    lead.email = "jordan@example.com"
    await db.commit()
    await _enroll(db, lead, await _sequence(db, business, [
        {"step_type": "send_email", "subject": "Your {service} quote", "message_template": "Hi {name}"},
    ]))

    await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    channel, destination, body, sender = dispatcher.send.call_args.args
    assert channel == Channel.EMAIL
    assert destination == "jordan@example.com"
    assert body == "Hi Jordan Smith"
    assert sender.reply_to == "owner@sparkle.example"
    assert dispatcher.send.call_args.kwargs["subject"] == "Your Ceramic Coating quote"


# ---------------------------------------------------------------------------
# Failures and retries
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_failed_send_retries_with_backoff_then_gives_up(
    db, business, lead, session_factory, engine_config, dispatcher
):
    dispatcher.send.return_value = DispatchResult(success=False, error="carrier rejected")
    enrollment = await _enroll(db, lead, await _sequence(db, business, [SMS]))
    executor = _executor(engine_config, session_factory, dispatcher)

    result = await executor.run(now=T0)
    assert result.failed == 1
    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).status == "active"

    result = await executor.run(now=T0 + timedelta(minutes=1))
    assert result.waiting == 1
    assert dispatcher.send.await_count == 1

    await executor.run(now=T0 + timedelta(minutes=6))
    assert dispatcher.send.await_count == 2

    # Second retry waits 30 minutes after the second failure
    result = await executor.run(now=T0 + timedelta(minutes=35))
    assert result.waiting == 1

    result = await executor.run(now=T0 + timedelta(minutes=37))
    assert result.failed == 1
    assert result.canceled == 1
    assert dispatcher.send.await_count == 3

    canceled = await _load(session_factory, SequenceEnrollment, enrollment.id)
    assert canceled.status == EnrollmentStatus.CANCELED.value
    assert canceled.cancel_reason == "delivery_failed"

    executions = await _executions(session_factory, enrollment.id)
    assert [e.status for e in executions] == ["failed", "failed", "failed"]
    assert executions[0].error_message == "carrier rejected"

    async with session_factory() as session:
        result = await session.execute(select(Notification).where(Notification.business_id == business.id))
        notifications = result.scalars().all()
    assert len(notifications) == 1
    assert notifications[0].type == NotificationType.DELIVERY_FAILURE
    assert notifications[0].lead_id == lead.id
    dispatcher.alert_owner.assert_awaited_once()

    assert (await _load(session_factory, Lead, lead.id)).follow_up_count == 0


@pytest.mark.asyncio
async def test_retry_succeeds_after_failure(db, business, lead, session_factory, engine_config, dispatcher):
    dispatcher.send.side_effect = [
        DispatchResult(success=False, error="timeout"),
        DispatchResult(success=True, provider_message_id="SM-2"),
    ]
    enrollment = await _enroll(db, lead, await _sequence(db, business, [SMS]))
    executor = _executor(engine_config, session_factory, dispatcher)

    await executor.run(now=T0)
    result = await executor.run(now=T0 + timedelta(minutes=5))

    assert result.sent == 1
    executions = await _executions(session_factory, enrollment.id)
    assert [e.status for e in executions] == ["failed", "sent"]
    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).current_step_order == 1


@pytest.mark.asyncio
async def test_dispatcher_exception_counts_as_failure(db, business, lead, session_factory, engine_config, dispatcher):
    dispatcher.send.side_effect = RuntimeError("socket closed")
    enrollment = await _enroll(db, lead, await _sequence(db, business, [SMS]))

    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert result.failed == 1
    assert result.errors == 0
    executions = await _executions(session_factory, enrollment.id)
    assert executions[0].error_message == "socket closed"


# ---------------------------------------------------------------------------
# Skips and cancellation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_missing_phone_skips_without_execution(db, business, lead, session_factory, engine_config, dispatcher):
    lead.phone = None
    lead.email = "jordan@example.com"
    await db.commit()
    enrollment = await _enroll(db, lead, await _sequence(db, business, [SMS]))

    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert result.skipped == 1
    dispatcher.send.assert_not_called()
    assert await _executions(session_factory, enrollment.id) == []
    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).current_step_order == 0


@pytest.mark.asyncio
async def test_unsubscribed_lead_is_canceled(db, business, lead, session_factory, engine_config, dispatcher):
    enrollment = await _enroll(db, lead, await _sequence(db, business, [SMS]))
    lead.unsubscribed_at = T0
    await db.commit()

    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert result.canceled == 1
    dispatcher.send.assert_not_called()
    canceled = await _load(session_factory, SequenceEnrollment, enrollment.id)
    assert canceled.cancel_reason == "unsubscribed"


@pytest.mark.asyncio
async def test_disabled_sequence_pauses(db, business, lead, session_factory, engine_config, dispatcher):
    enrollment = await _enroll(db, lead, await _sequence(db, business, [SMS], enabled=False))

    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert result.processed == 1
    assert result.skipped == 1
    dispatcher.send.assert_not_called()
    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).status == "active"


@pytest.mark.asyncio
async def test_finished_enrollments_are_not_loaded(db, business, lead, session_factory, engine_config, dispatcher):
    sequence = await _sequence(db, business, [SMS])
    await _enroll(db, lead, sequence, status=EnrollmentStatus.CANCELED.value)

    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert result.processed == 0
    dispatcher.send.assert_not_called()


@pytest.mark.asyncio
async def test_run_scoped_to_business(db, business, lead, session_factory, engine_config, dispatcher):
    from app.models.business import Business

    other = Business(name="Other Co")
    db.add(other)
    await db.commit()
    await _enroll(db, lead, await _sequence(db, business, [SMS]))

    result = await _executor(engine_config, session_factory, dispatcher).run(business_id=other.id, now=T0)

    assert result.processed == 0
    dispatcher.send.assert_not_called()


# ---------------------------------------------------------------------------
# Action steps
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_action_steps_chain_before_message(db, business, lead, session_factory, engine_config, dispatcher):
    sequence = await _sequence(db, business, [
        {"step_type": "add_tag", "tag_name": "abandoned-cart"},
        {"step_type": "change_status", "status_value": "nurturing"},
        {"step_type": "notify_user", "notification_message": "Call {name} about {service} today"},
        {"step_type": "condition"},
        SMS,
    ], name="Rescue")
    enrollment = await _enroll(db, lead, sequence)

    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert result.advanced == 5
    assert result.sent == 1

    updated = await _load(session_factory, Lead, lead.id)
    assert updated.tags == ["abandoned-cart"]
    assert updated.status == LeadStatus.NURTURING
    assert updated.follow_up_count == 1

    async with session_factory() as session:
        result = await session.execute(select(Notification).where(Notification.business_id == business.id))
        notification = result.scalar_one()
    assert notification.type == NotificationType.SEQUENCE
    assert notification.title == "Sequence: Rescue"
    assert notification.message == "Call Jordan Smith about Ceramic Coating today"
    dispatcher.alert_owner.assert_awaited_once()

    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).current_step_order == 5


@pytest.mark.asyncio
async def test_change_status_to_lost_stops_other_sequences(
    db, business, lead, session_factory, engine_config, dispatcher
):
    closing = await _enroll(db, lead, await _sequence(db, business, [
        {"step_type": "change_status", "status_value": "lost"},
    ], name="Close out"))
    waiting = await _enroll(db, lead, await _sequence(db, business, [_wait(1, "days"), SMS], name="Nurture"))

    await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert (await _load(session_factory, Lead, lead.id)).status == LeadStatus.LOST
    assert (await _load(session_factory, SequenceEnrollment, closing.id)).status == "completed"
    other = await _load(session_factory, SequenceEnrollment, waiting.id)
    assert other.status == "canceled"
    assert other.cancel_reason == "lost"


@pytest.mark.asyncio
async def test_invalid_status_change_still_advances(db, business, lead, session_factory, engine_config, dispatcher):
    lead.status = LeadStatus.QUOTED
    await db.commit()
    enrollment = await _enroll(db, lead, await _sequence(db, business, [
        {"step_type": "change_status", "status_value": "new"},
        _wait(1, "days"),
    ]))

    await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert (await _load(session_factory, Lead, lead.id)).status == LeadStatus.QUOTED
    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).current_step_order == 1


@pytest.mark.asyncio
async def test_unknown_step_type_passes_through(db, business, lead, session_factory, engine_config, dispatcher):
    enrollment = await _enroll(db, lead, await _sequence(db, business, [{"step_type": "send_fax"}]))

    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert result.advanced == 1
    assert result.completed == 1
    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).status == "completed"


@pytest.mark.asyncio
async def test_tagging_twice_keeps_single_tag(db, business, lead, session_factory, engine_config, dispatcher):
    lead.tags = ["vip"]
    await db.commit()
    await _enroll(db, lead, await _sequence(db, business, [
        {"step_type": "add_tag", "tag_name": "vip"},
        {"step_type": "add_tag", "tag_name": "fleet"},
    ]))

    await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert (await _load(session_factory, Lead, lead.id)).tags == ["vip", "fleet"]


@pytest.mark.asyncio
async def test_batch_processes_every_enrollment(
    db, business, lead, session_factory, engine_config, dispatcher
):
    second_lead = Lead(business_id=business.id, name="Riley", phone="+15557654321", tags=[], created_at=T0)
    db.add(second_lead)
    await db.commit()
    sequence = await _sequence(db, business, [SMS])
    await _enroll(db, lead, sequence)
    await _enroll(db, second_lead, sequence)

    dispatcher.send.side_effect = [
        DispatchResult(success=True, provider_message_id="SM-1"),
        DispatchResult(success=True, provider_message_id="SM-2"),
    ]
    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert result.processed == 2
    assert result.sent == 2

    async with session_factory() as session:
        count = (await session.execute(select(func.count(SequenceStepExecution.id)))).scalar_one()
    assert count == 2


@pytest.mark.asyncio
async def test_gapped_step_orders_all_run(db, business, lead, session_factory, engine_config, dispatcher):
    sequence = await sequence_service.create_sequence(db, SequenceCreate(
        business_id=business.id,
        name="Quote chaser",
        enabled=True,
        steps=[
            {"step_order": 2, "step_type": "send_sms", "message_template": "Hi {name}, your quote is ready."},
            {"step_order": 5, "step_type": "send_sms", "message_template": "Hi {name}, any questions on the quote?"},
        ],
    ))
    enrollment = await enrollment_service.enroll(db, lead.id, sequence.id, now=T0)
    executor = _executor(engine_config, session_factory, dispatcher)

    for minute in range(3):
        await executor.run(now=T0 + timedelta(minutes=minute))

    assert dispatcher.send.await_count == 2
    assert len(await _executions(session_factory, enrollment.id)) == 2
    assert (await _load(session_factory, SequenceEnrollment, enrollment.id)).status == EnrollmentStatus.COMPLETED.value


class _LockNotAvailable(Exception):
    pgcode = "55P03"


@pytest.mark.asyncio
async def test_locked_lead_is_retried_without_sending(db, business, lead, session_factory, engine_config, dispatcher):
    enrollment = await _enroll(db, lead, await _sequence(db, business, [SMS]))
    locked = OperationalError("SELECT ... FOR UPDATE NOWAIT", {}, _LockNotAvailable())

    with patch("app.services.sequence_executor.lock_lead", new_callable=AsyncMock, side_effect=locked):
        result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert result.skipped == 1
    assert result.errors == 0
    dispatcher.send.assert_not_called()
    assert await _executions(session_factory, enrollment.id) == []

    result = await _executor(engine_config, session_factory, dispatcher).run(now=T0 + timedelta(minutes=1))
    assert result.sent == 1


@pytest.mark.asyncio
async def test_other_database_errors_are_reported(db, business, lead, session_factory, engine_config, dispatcher):
    await _enroll(db, lead, await _sequence(db, business, [SMS]))
    broken = OperationalError("SELECT", {}, Exception("connection reset"))

    with patch("app.services.sequence_executor.lock_lead", new_callable=AsyncMock, side_effect=broken):
        result = await _executor(engine_config, session_factory, dispatcher).run(now=T0)

    assert result.errors == 1
    dispatcher.send.assert_not_called()
