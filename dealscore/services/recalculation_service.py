"""
RECALCULATION ORCHESTRATOR

Turns trigger events into new audit records.

RULES:
- recalculate() is fire-and-forget and never raises into the caller
- One recalculation per recommendation at a time (per-deal lock)
- scored_at strictly increases per recommendation
- Terminal recommendations get exactly one closing record, then no-ops
- Store failures are logged and the trigger is dropped (no retry here)
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dealscore.domain.errors import NotFoundError, RecalculationFailure
from dealscore.domain.models import AuditRecord, ScoreBreakdown
from dealscore.domain.models.scoring_config import DEFAULT_SCORING_CONFIG, ScoringConfig
from dealscore.domain.services.score_calculator import compute_score
from dealscore.infrastructure.db.repositories.recommendation_repository import RecommendationRepository
from dealscore.infrastructure.signal_store import SignalStore
from dealscore.realtime.recalc_queue import (
    KeyedLock,
    RecalculationQueue,
    RecalculationRequest,
    RecalculationWorkerPool,
)
from dealscore.utils.time import MIN_RESOLUTION, utc_now_naive

logger = logging.getLogger(__name__)

SCHEDULED_TRIGGER = "scheduled_decay"


class RecalculationOutcome(str, Enum):
    SCORED = "scored"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class RecalculationResult:
    recommendation_id: str
    trigger_source: str
    outcome: RecalculationOutcome
    breakdown: Optional[ScoreBreakdown] = None
    scored_at: Optional[datetime] = None


@dataclass(frozen=True)
class BatchRecalculateResult:
    processed: int
    succeeded: int
    skipped: int
    failed: int
    duration_ms: int


def next_scored_at(now: datetime, previous: Optional[datetime]) -> datetime:
    """Current time, bumped past the previous record when the clock did not advance."""
    if previous is None or now > previous:
        return now
    return previous + MIN_RESOLUTION


class RecalculationService:
    """
    Recalculation Orchestrator
    Owns the queue, the worker pool and the per-deal locks
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: ScoringConfig = DEFAULT_SCORING_CONFIG,
        clock: Callable[[], datetime] = utc_now_naive,
        workers: int = 4,
        queue_size: int = 1000,
        store_timeout_seconds: float = 10.0,
        stale_after_hours: int = 23,
        batch_size: int = 25,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock
        self._store_timeout = store_timeout_seconds
        self._stale_after = timedelta(hours=stale_after_hours)
        self._batch_size = max(1, batch_size)
        self._locks = KeyedLock()
        self._queue = RecalculationQueue(maxsize=queue_size)
        self._pool = RecalculationWorkerPool(self._queue, self._handle, workers=workers)

    @property
    def config(self) -> ScoringConfig:
        return self._config

    @property
    def running(self) -> bool:
        return self._pool.running

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    def start(self) -> None:
        self._pool.start()
        logger.info("Recalculation workers started")

    async def stop(self) -> None:
        await self._pool.stop()
        logger.info("Recalculation workers stopped (%d requests left queued)", self._queue.size())

    async def drain(self) -> None:
        """Wait until every queued request has been handled."""
        await self._queue.join()

    # ------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------

    def recalculate(self, recommendation_id: str, trigger_source: str) -> None:
        """
        Schedule a recalculation and return immediately.

        Never raises: a full queue drops the trigger with a warning.
        """
        request = RecalculationRequest(
            recommendation_id=recommendation_id,
            trigger_source=trigger_source,
            requested_at=self._clock(),
        )
        if not self._queue.publish_nowait(request):
            logger.warning(
                "Recalculation queue full, dropping trigger %s for %s",
                trigger_source, recommendation_id,
            )
            return
        logger.debug("Queued recalculation for %s (trigger=%s)", recommendation_id, trigger_source)

    async def recalculate_now(self, recommendation_id: str, trigger_source: str) -> RecalculationResult:
        """
        Recalculate synchronously under the per-deal lock.

        Never raises; failures come back as RecalculationOutcome.FAILED.
        """
        try:
            async with self._locks.hold(recommendation_id):
                return await asyncio.wait_for(
                    self._recalculate_locked(recommendation_id, trigger_source),
                    timeout=self._store_timeout,
                )
        except NotFoundError as e:
            logger.warning("Skipping recalculation (trigger=%s): %s", trigger_source, e)
            return RecalculationResult(recommendation_id, trigger_source, RecalculationOutcome.SKIPPED)
        except Exception as e:
            failure = RecalculationFailure(recommendation_id, trigger_source, e)
            logger.error("%s", failure, exc_info=e)
            return RecalculationResult(recommendation_id, trigger_source, RecalculationOutcome.FAILED)

    async def recalculate_stale(self, now: Optional[datetime] = None) -> BatchRecalculateResult:
        """
        Re-score active deals whose score has not been refreshed recently,
        so time-based penalties keep accruing without any trigger.
        """
        started = time.monotonic()
        now = now or self._clock()

        async with self._session_factory() as session:
            ids = await RecommendationRepository(session).list_stale_active(now - self._stale_after)

        if not ids:
            logger.info("No stale recommendations to recalculate")
            return BatchRecalculateResult(0, 0, 0, 0, int((time.monotonic() - started) * 1000))

        results: List[RecalculationResult] = []
        for i in range(0, len(ids), self._batch_size):
            batch = ids[i:i + self._batch_size]
            results.extend(await asyncio.gather(
                *(self.recalculate_now(rec_id, SCHEDULED_TRIGGER) for rec_id in batch)
            ))

        summary = BatchRecalculateResult(
            processed=len(results),
            succeeded=sum(1 for r in results if r.outcome == RecalculationOutcome.SCORED),
            skipped=sum(1 for r in results if r.outcome == RecalculationOutcome.SKIPPED),
            failed=sum(1 for r in results if r.outcome == RecalculationOutcome.FAILED),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "Stale recalculation done in %dms: %d succeeded, %d skipped, %d failed",
            summary.duration_ms, summary.succeeded, summary.skipped, summary.failed,
        )
        return summary

    # ------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------

    async def _handle(self, request: RecalculationRequest) -> None:
        await self.recalculate_now(request.recommendation_id, request.trigger_source)

    async def _recalculate_locked(self, recommendation_id: str, trigger_source: str) -> RecalculationResult:
        async with self._session_factory() as session:
            store = SignalStore(session)

            deal = await store.load_deal(recommendation_id)
            if deal is None:
                raise NotFoundError("Recommendation", recommendation_id)

            previous = await store.latest_audit(recommendation_id)
            if deal.status.is_terminal and previous is not None and previous.status == deal.status:
                logger.info(
                    "Skipping %s - status %s is terminal and already recorded",
                    recommendation_id, deal.status.value,
                )
                return RecalculationResult(recommendation_id, trigger_source, RecalculationOutcome.SKIPPED)

            signals = await store.load_signals(recommendation_id)
            now = self._clock()
            breakdown = compute_score(deal, signals, now, self._config)
            scored_at = next_scored_at(now, previous.scored_at if previous else None)

            await store.append_audit(AuditRecord(
                recommendation_id=recommendation_id,
                scored_at=scored_at,
                trigger_source=trigger_source,
                status=deal.status,
                confidence_score=breakdown.confidence_score,
                confidence_percent=breakdown.confidence_percent,
                weighted_monthly=breakdown.weighted_monthly,
                weighted_onetime=breakdown.weighted_onetime,
                breakdown=breakdown,
            ))
            if not await store.save_score(recommendation_id, breakdown, scored_at):
                raise NotFoundError("Recommendation", recommendation_id)
            await store.commit()

        logger.info(
            "Scored %s: score=%d base=%d penalties=%s bonus=%s trigger=%s",
            recommendation_id,
            breakdown.confidence_score,
            breakdown.base_score,
            breakdown.total_penalties,
            breakdown.total_bonus,
            trigger_source,
        )
        return RecalculationResult(
            recommendation_id, trigger_source, RecalculationOutcome.SCORED,
            breakdown=breakdown, scored_at=scored_at,
        )
