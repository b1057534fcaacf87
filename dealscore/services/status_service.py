# dealscore/services/status_service.py

"""
SERVICE - RECOMMENDATION STATUS

• Every change goes through the transition table
• Terminal fields follow the status (closed_lost_at set iff closed_lost)
• Score refresh is fire-and-forget after commit
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from dealscore.domain.errors import AuthorizationError, NotFoundError, ValidationError
from dealscore.domain.models import DealSnapshot, DealStatus, StatusView
from dealscore.domain.services.transition_validator import (
    allowed_next_statuses,
    parse_status,
    require_transition,
)
from dealscore.infrastructure.db.repositories.recommendation_repository import RecommendationRepository
from dealscore.services.recalculation_service import RecalculationService
from dealscore.utils.time import utc_now_naive

logger = logging.getLogger(__name__)

Authorizer = Callable[[DealSnapshot], bool]

STATUS_CHANGED_TRIGGER = "status_changed"


class StatusService:
    def __init__(
        self,
        session: AsyncSession,
        recalculator: RecalculationService,
        clock: Callable[[], datetime] = utc_now_naive,
    ):
        self.session = session
        self.recalculator = recalculator
        self.clock = clock
        self.recommendations = RecommendationRepository(session)

    async def get_status(self, recommendation_id: str) -> StatusView:
        deal = await self._load(recommendation_id)
        return self._view(deal)

    async def change_status(
        self,
        recommendation_id: str,
        requested: Union[str, DealStatus],
        reason: Optional[str] = None,
        authorize: Optional[Authorizer] = None,
    ) -> StatusView:
        """
        Validate and apply a status change.

        Raises:
            ValidationError: unknown status or transition not in the table
            NotFoundError: recommendation does not exist
            AuthorizationError: authorize(deal) returned False
        """
        target = parse_status(requested)
        deal = await self._load(recommendation_id)

        if authorize is not None and not authorize(deal):
            raise AuthorizationError(
                f"Not allowed to change the status of recommendation {recommendation_id}"
            )

        require_transition(deal.status, target)

        now = self.clock()
        sent_at = deal.sent_at
        if target == DealStatus.SENT and sent_at is None:
            sent_at = now

        if target == DealStatus.CLOSED_LOST:
            closed_lost_at, closed_lost_reason = now, reason
        else:
            closed_lost_at, closed_lost_reason = None, None

        applied = await self.recommendations.update_status(
            recommendation_id,
            expected_status=deal.status,
            status=target,
            sent_at=sent_at,
            closed_lost_at=closed_lost_at,
            closed_lost_reason=closed_lost_reason,
        )
        if not applied:
            await self.session.rollback()
            logger.warning(
                "Status of %s changed concurrently, rejecting %s -> %s",
                recommendation_id, deal.status.value, target.value,
            )
            raise ValidationError(
                f"Status of recommendation {recommendation_id} changed from "
                f"{deal.status.value} concurrently; reload and retry"
            )
        await self.session.commit()

        logger.info(
            "Recommendation %s status %s -> %s",
            recommendation_id, deal.status.value, target.value,
        )

        self.recalculator.recalculate(recommendation_id, STATUS_CHANGED_TRIGGER)

        return StatusView(
            recommendation_id=recommendation_id,
            status=target,
            allowed_next_statuses=allowed_next_statuses(target),
            closed_lost_at=closed_lost_at,
            closed_lost_reason=closed_lost_reason,
            confidence_score=deal.confidence_score,
        )

    async def _load(self, recommendation_id: str) -> DealSnapshot:
        deal = await self.recommendations.get_by_id(recommendation_id)
        if deal is None:
            raise NotFoundError("Recommendation", recommendation_id)
        return deal

    @staticmethod
    def _view(deal: DealSnapshot) -> StatusView:
        return StatusView(
            recommendation_id=deal.id,
            status=deal.status,
            allowed_next_statuses=allowed_next_statuses(deal.status),
            closed_lost_at=deal.closed_lost_at,
            closed_lost_reason=deal.closed_lost_reason,
            confidence_score=deal.confidence_score,
        )
