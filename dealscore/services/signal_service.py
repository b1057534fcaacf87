# dealscore/services/signal_service.py

"""
SERVICE - SCORING SIGNALS

Write side for the inputs the confidence score reads:
communications, invite tracking milestones and call assessments.

• Each accepted write commits, then triggers a recalculation
• Duplicate webhook deliveries and repeated milestones are no-ops
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from dealscore.domain.errors import AuthorizationError, NotFoundError, ValidationError
from dealscore.domain.models import CallScores, Communication, DealSnapshot, TrackingEvent
from dealscore.infrastructure.signal_store import SignalStore
from dealscore.services.recalculation_service import RecalculationService
from dealscore.utils.time import to_utc_naive, utc_now_naive

logger = logging.getLogger(__name__)

Authorizer = Callable[[DealSnapshot], bool]

COMMUNICATION_TRIGGER = "communication_logged"
CALL_SCORE_TRIGGER = "call_score_updated"


def parse_tracking_event(value: Union[str, TrackingEvent]) -> TrackingEvent:
    if isinstance(value, TrackingEvent):
        return value
    try:
        return TrackingEvent(value)
    except ValueError:
        valid = ", ".join(e.value for e in TrackingEvent)
        raise ValidationError(f"Invalid tracking event. Must be one of: {valid}") from None


class SignalService:
    def __init__(
        self,
        session: AsyncSession,
        recalculator: RecalculationService,
        clock: Callable[[], datetime] = utc_now_naive,
    ):
        self.session = session
        self.store = SignalStore(session)
        self.recalculator = recalculator
        self.clock = clock

    async def log_communication(
        self,
        recommendation_id: str,
        communication: Communication,
        authorize: Optional[Authorizer] = None,
    ) -> Tuple[str, bool]:
        """
        Record a contact with the prospect.

        Returns:
            (communication id, created). A repeated external_message_id returns
            the stored record with created=False and triggers nothing.
        """
        await self._load(recommendation_id, authorize)

        if communication.external_message_id:
            existing = await self.store.communications.find_by_external_id(
                recommendation_id, communication.external_message_id
            )
            if existing is not None:
                logger.info(
                    "Duplicate communication %s for %s ignored",
                    communication.external_message_id, recommendation_id,
                )
                return existing.id, False

        communication_id = await self.store.communications.create(recommendation_id, communication)
        await self.store.commit()

        logger.info(
            "Logged %s %s communication for %s",
            communication.direction.value, communication.channel.value, recommendation_id,
        )
        self.recalculator.recalculate(recommendation_id, COMMUNICATION_TRIGGER)
        return communication_id, True

    async def record_tracking_event(
        self,
        recommendation_id: str,
        invite_id: str,
        event: Union[str, TrackingEvent],
        at: Optional[datetime] = None,
    ) -> bool:
        """
        Stamp an invite milestone reported by the email / portal subsystem.

        Only the first occurrence counts. Returns True when it was recorded now.
        """
        tracking_event = parse_tracking_event(event)
        await self._load(recommendation_id)

        occurred_at = to_utc_naive(at) if at is not None else self.clock()
        recorded = await self.store.invites.mark_milestone(
            recommendation_id, invite_id, tracking_event, occurred_at
        )
        if recorded is None:
            raise NotFoundError("Invite", invite_id)
        if not recorded:
            logger.debug("%s already recorded for invite %s", tracking_event.value, invite_id)
            return False

        await self.store.commit()
        logger.info("Invite %s on %s: %s", invite_id, recommendation_id, tracking_event.value)
        self.recalculator.recalculate(recommendation_id, tracking_event.value)
        return True

    async def save_call_scores(
        self,
        recommendation_id: str,
        call_scores: CallScores,
        actor_id: Optional[str] = None,
        authorize: Optional[Authorizer] = None,
    ) -> None:
        await self._load(recommendation_id, authorize)
        await self.store.call_scores.upsert(recommendation_id, call_scores, created_by=actor_id)
        await self.store.commit()

        logger.info("Call scores updated for %s", recommendation_id)
        self.recalculator.recalculate(recommendation_id, CALL_SCORE_TRIGGER)

    async def _load(self, recommendation_id: str, authorize: Optional[Authorizer] = None) -> DealSnapshot:
        deal = await self.store.load_deal(recommendation_id)
        if deal is None:
            raise NotFoundError("Recommendation", recommendation_id)
        if authorize is not None and not authorize(deal):
            raise AuthorizationError(f"Not allowed to modify recommendation {recommendation_id}")
        return deal
