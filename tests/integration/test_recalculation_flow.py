"""
Recalculation orchestration against a real (SQLite) store:
triggers, audit ordering, terminal handling and failure isolation
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from dealscore.domain.errors import AuthorizationError, NotFoundError, ValidationError
from dealscore.domain.models import Channel, Communication, CommunicationSource, DealStatus, Direction
from dealscore.infrastructure.signal_store import SignalStore
from dealscore.services.audit_trail_service import AuditTrailService
from dealscore.services.recalculation_service import (
    RecalculationOutcome,
    RecalculationService,
    next_scored_at,
)
from dealscore.services.signal_service import SignalService
from dealscore.services.status_service import StatusService
from dealscore.utils.time import MIN_RESOLUTION

T0 = datetime(2026, 3, 2, 9, 0, 0)


async def _trail(session_factory, rec_id):
    async with session_factory() as session:
        return await AuditTrailService(session).get_audit_trail(rec_id)


async def _deal(session_factory, rec_id):
    async with session_factory() as session:
        return await SignalStore(session).load_deal(rec_id)


async def _change_status(session_factory, recalculator, clock, rec_id, status, reason=None, authorize=None):
    async with session_factory() as session:
        return await StatusService(session, recalculator, clock).change_status(
            rec_id, status, reason=reason, authorize=authorize
        )


# ------------------------------------------------------------------
# End-to-end scenarios
# ------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.integration
async def test_pipeline_lifecycle_scenarios(session_factory, recalculator, clock, make_deal):
    await make_deal("rec-1", status=DealStatus.DRAFT)

    # 1. fresh draft scores exactly its base
    created = await recalculator.recalculate_now("rec-1", "created")
    assert created.outcome == RecalculationOutcome.SCORED
    assert created.breakdown.base_score == 40
    assert created.breakdown.confidence_score == 40
    assert created.breakdown.total_penalties == Decimal("0")

    # 2. sent, then six silent days
    await _change_status(session_factory, recalculator, clock, "rec-1", "sent")
    await recalculator.drain()
    just_sent = (await _trail(session_factory, "rec-1"))[-1].record
    assert just_sent.trigger_source == "status_changed"
    assert just_sent.confidence_score == 40

    clock.advance(days=6)
    decayed = (await recalculator.recalculate_now("rec-1", "scheduled_decay")).breakdown
    assert Decimal("0") < decayed.penalties["email_not_opened"] <= Decimal("25")
    assert Decimal("0") < decayed.penalties["silence"] <= Decimal("35")
    assert decayed.confidence_score < just_sent.confidence_score
    assert decayed.confidence_score == 17

    # 3. inbound SMS an hour later resets silence
    clock.advance(hours=1)
    async with session_factory() as session:
        _, created_comm = await SignalService(session, recalculator, clock).log_communication(
            "rec-1",
            Communication(direction=Direction.INBOUND, channel=Channel.SMS, contact_at=clock()),
        )
    assert created_comm
    await recalculator.drain()

    trail = await _trail(session_factory, "rec-1")
    latest = trail[-1]
    assert latest.record.trigger_source == "communication_logged"
    assert latest.record.breakdown.penalties["silence"] == Decimal("0.00")
    assert latest.delta.score_delta > 0
    assert "penalty_silence" in {c.field for c in latest.delta.changes}

    # 4. sent -> draft is rejected and nothing changes
    with pytest.raises(ValidationError, match="Cannot transition from sent to draft"):
        await _change_status(session_factory, recalculator, clock, "rec-1", "draft")
    assert (await _deal(session_factory, "rec-1")).status == DealStatus.SENT

    # 6. closed as lost; later triggers are no-ops
    clock.advance(hours=1)
    await _change_status(session_factory, recalculator, clock, "rec-1", "closed_lost", reason="budget cut")
    await recalculator.drain()

    closed = await _deal(session_factory, "rec-1")
    assert closed.closed_lost_at == clock()
    assert closed.closed_lost_reason == "budget cut"
    assert closed.confidence_score == 0

    trail_at_close = await _trail(session_factory, "rec-1")
    assert trail_at_close[-1].record.status == DealStatus.CLOSED_LOST

    clock.advance(days=1)
    recalculator.recalculate("rec-1", "communication_logged")
    await recalculator.drain()
    skipped = await recalculator.recalculate_now("rec-1", "manual")
    assert skipped.outcome == RecalculationOutcome.SKIPPED

    trail_after = await _trail(session_factory, "rec-1")
    assert len(trail_after) == len(trail_at_close)
    assert (await _deal(session_factory, "rec-1")).confidence_score == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_more_invitees_score_higher(recalculator, clock, make_deal):
    await make_deal("solo", invitees=("a@acme.test",))
    await make_deal("team", invitees=("a@acme.test", "b@acme.test", "c@acme.test"))
    clock.advance(days=3)

    solo = (await recalculator.recalculate_now("solo", "manual")).breakdown
    team = (await recalculator.recalculate_now("team", "manual")).breakdown

    assert team.total_penalties == solo.total_penalties
    assert team.bonuses["multi_invite"] == Decimal("4.00")
    assert team.confidence_score > solo.confidence_score


# ------------------------------------------------------------------
# Ordering and concurrency
# ------------------------------------------------------------------

def test_next_scored_at_bumps_past_previous():
    assert next_scored_at(T0, None) == T0
    assert next_scored_at(T0 + timedelta(seconds=1), T0) == T0 + timedelta(seconds=1)
    assert next_scored_at(T0, T0) == T0 + MIN_RESOLUTION
    assert next_scored_at(T0 - timedelta(seconds=5), T0) == T0 + MIN_RESOLUTION


@pytest.mark.asyncio
@pytest.mark.integration
async def test_concurrent_triggers_on_one_deal_keep_audit_monotonic(session_factory, recalculator, make_deal):
    await make_deal("rec-1")

    results = await asyncio.gather(*(
        recalculator.recalculate_now("rec-1", f"trigger-{i}") for i in range(8)
    ))
    assert all(r.outcome == RecalculationOutcome.SCORED for r in results)

    trail = await _trail(session_factory, "rec-1")
    assert len(trail) == 8
    stamps = [entry.record.scored_at for entry in trail]
    assert all(a < b for a, b in zip(stamps, stamps[1:]))
    assert all(not entry.delta.warnings for entry in trail[1:])


@pytest.mark.asyncio
@pytest.mark.integration
async def test_queued_triggers_across_deals(session_factory, recalculator, make_deal):
    for i in range(5):
        await make_deal(f"rec-{i}")

    for i in range(5):
        recalculator.recalculate(f"rec-{i}", "email_opened")
        recalculator.recalculate(f"rec-{i}", "proposal_viewed")
    await recalculator.drain()

    for i in range(5):
        trail = await _trail(session_factory, f"rec-{i}")
        assert sorted(e.record.trigger_source for e in trail) == ["email_opened", "proposal_viewed"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_accepted_deal_records_one_closing_record(session_factory, recalculator, clock, make_deal):
    await make_deal("rec-1")
    await _change_status(session_factory, recalculator, clock, "rec-1", "accepted")
    await recalculator.drain()
    for _ in range(3):
        await recalculator.recalculate_now("rec-1", "manual")

    trail = await _trail(session_factory, "rec-1")
    assert len(trail) == 1
    assert trail[0].record.confidence_score == 100
    assert trail[0].record.weighted_monthly == Decimal("1000.00")


# ------------------------------------------------------------------
# Failure isolation
# ------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_deal_is_skipped(recalculator):
    result = await recalculator.recalculate_now("missing", "manual")
    assert result.outcome == RecalculationOutcome.SKIPPED


@pytest.mark.asyncio
async def test_store_error_is_logged_not_raised(caplog, clock):
    def broken_factory():
        raise RuntimeError("connection refused")

    service = RecalculationService(broken_factory, clock=clock)
    with caplog.at_level(logging.ERROR):
        result = await service.recalculate_now("rec-1", "communication_logged")

    assert result.outcome == RecalculationOutcome.FAILED
    assert "Recalculation failed for rec-1 (trigger=communication_logged)" in caplog.text
    assert "connection refused" in caplog.text


@pytest.mark.asyncio
async def test_slow_store_times_out(clock):
    @asynccontextmanager
    async def slow_session():
        await asyncio.sleep(1)
        yield None

    service = RecalculationService(slow_session, clock=clock, store_timeout_seconds=0.05)
    result = await service.recalculate_now("rec-1", "manual")
    assert result.outcome == RecalculationOutcome.FAILED


@pytest.mark.asyncio
async def test_full_queue_drops_trigger_without_raising(caplog, session_factory, clock):
    service = RecalculationService(session_factory, clock=clock, queue_size=1)
    with caplog.at_level(logging.WARNING):
        service.recalculate("rec-1", "email_opened")
        service.recalculate("rec-1", "proposal_viewed")
    assert "queue full" in caplog.text


# ------------------------------------------------------------------
# Status service
# ------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.integration
async def test_reopening_clears_terminal_fields_and_keeps_sent_at(session_factory, recalculator, clock, make_deal):
    await make_deal("rec-1", sent_at=T0)
    clock.advance(days=2)
    await _change_status(session_factory, recalculator, clock, "rec-1", "declined")
    clock.advance(days=1)
    view = await _change_status(session_factory, recalculator, clock, "rec-1", "sent")

    assert view.status == DealStatus.SENT
    assert view.closed_lost_at is None
    assert view.allowed_next_statuses == [DealStatus.ACCEPTED, DealStatus.DECLINED, DealStatus.CLOSED_LOST]
    deal = await _deal(session_factory, "rec-1")
    assert deal.sent_at == T0
    assert deal.closed_lost_reason is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_status_change_checks(session_factory, recalculator, clock, make_deal):
    await make_deal("rec-1", created_by="rep-1")

    with pytest.raises(NotFoundError):
        await _change_status(session_factory, recalculator, clock, "missing", "accepted")

    with pytest.raises(ValidationError, match="Invalid status"):
        await _change_status(session_factory, recalculator, clock, "rec-1", "won")

    with pytest.raises(AuthorizationError):
        await _change_status(
            session_factory, recalculator, clock, "rec-1", "accepted",
            authorize=lambda deal: deal.created_by == "rep-2",
        )
    assert (await _deal(session_factory, "rec-1")).status == DealStatus.SENT


@pytest.mark.asyncio
@pytest.mark.integration
async def test_conflicting_status_changes_accept_only_one(session_factory, recalculator, clock, make_deal):
    await make_deal("rec-1")

    results = await asyncio.gather(
        _change_status(session_factory, recalculator, clock, "rec-1", "accepted"),
        _change_status(session_factory, recalculator, clock, "rec-1", "closed_lost", reason="budget"),
        return_exceptions=True,
    )

    applied = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(applied) == 1
    assert len(rejected) == 1
    assert isinstance(rejected[0], ValidationError)

    deal = await _deal(session_factory, "rec-1")
    assert deal.status == applied[0].status
    if deal.status == DealStatus.ACCEPTED:
        assert deal.closed_lost_at is None
        assert deal.closed_lost_reason is None
    else:
        assert deal.closed_lost_reason == "budget"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sending_a_draft_stamps_sent_at(session_factory, recalculator, clock, make_deal):
    await make_deal("rec-1", status=DealStatus.DRAFT)
    clock.advance(hours=5)
    await _change_status(session_factory, recalculator, clock, "rec-1", "sent")
    assert (await _deal(session_factory, "rec-1")).sent_at == clock()


# ------------------------------------------------------------------
# Signal service
# ------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.integration
async def test_duplicate_webhook_message_is_ignored(session_factory, recalculator, clock, make_deal):
    await make_deal("rec-1")
    comm = Communication(
        direction=Direction.INBOUND,
        channel=Channel.EMAIL,
        contact_at=clock(),
        source=CommunicationSource.WEBHOOK,
        external_message_id="msg-42",
    )

    async with session_factory() as session:
        first_id, created = await SignalService(session, recalculator, clock).log_communication("rec-1", comm)
    await recalculator.drain()
    async with session_factory() as session:
        second_id, created_again = await SignalService(session, recalculator, clock).log_communication("rec-1", comm)
    await recalculator.drain()

    assert created and not created_again
    assert first_id == second_id
    assert len(await _trail(session_factory, "rec-1")) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_tracking_event_recorded_once(session_factory, recalculator, clock, make_deal):
    await make_deal("rec-1")
    clock.advance(hours=2)

    async with session_factory() as session:
        service = SignalService(session, recalculator, clock)
        assert await service.record_tracking_event("rec-1", "rec-1-inv-0", "email_opened") is True
        assert await service.record_tracking_event("rec-1", "rec-1-inv-0", "email_opened") is False
        with pytest.raises(NotFoundError):
            await service.record_tracking_event("rec-1", "unknown-invite", "proposal_viewed")
        with pytest.raises(ValidationError):
            await service.record_tracking_event("rec-1", "rec-1-inv-0", "clicked")
    await recalculator.drain()

    trail = await _trail(session_factory, "rec-1")
    assert [e.record.trigger_source for e in trail] == ["email_opened"]
    assert trail[0].record.breakdown.penalties["email_not_opened"] == Decimal("0.00")


# ------------------------------------------------------------------
# Scheduled decay
# ------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.integration
async def test_recalculate_stale_scores_active_deals_once(session_factory, recalculator, clock, make_deal):
    await make_deal("sent-1")
    await make_deal("declined-1", status=DealStatus.DECLINED)
    await make_deal("draft-1", status=DealStatus.DRAFT)
    await make_deal("won-1", status=DealStatus.ACCEPTED)
    clock.advance(days=2)

    first = await recalculator.recalculate_stale()
    assert first.processed == 2
    assert first.succeeded == 2
    assert first.failed == 0

    trail = await _trail(session_factory, "sent-1")
    assert trail[-1].record.trigger_source == "scheduled_decay"

    second = await recalculator.recalculate_stale()
    assert second.processed == 0

    clock.advance(days=1)
    third = await recalculator.recalculate_stale()
    assert third.succeeded == 2
