"""
Recommendation Repository
Deal snapshot reads and the writes the scoring core owns
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from dealscore.domain.models import DealSnapshot, DealStatus, ScoreBreakdown
from dealscore.infrastructure.db.models import RecommendationModel


class RecommendationRepository:
    """Repository for recommendations"""

    def __init__(self, session: AsyncSession):
        """Initialize with database session"""
        self.session = session

    async def create(self, snapshot: DealSnapshot) -> str:
        """
        Insert a recommendation

        Args:
            snapshot: DealSnapshot domain object

        Returns:
            ID of created recommendation
        """
        model = RecommendationModel(
            id=snapshot.id,
            status=snapshot.status.value,
            created_by=snapshot.created_by,
            predicted_monthly=snapshot.predicted_monthly,
            predicted_onetime=snapshot.predicted_onetime,
            sent_at=snapshot.sent_at,
            closed_lost_at=snapshot.closed_lost_at,
            closed_lost_reason=snapshot.closed_lost_reason,
            snoozed_until=snapshot.snoozed_until,
            revived_at=snapshot.revived_at,
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def get_by_id(self, recommendation_id: str) -> Optional[DealSnapshot]:
        result = await self.session.execute(
            select(RecommendationModel).where(RecommendationModel.id == recommendation_id)
        )
        return self._to_domain(result.scalar_one_or_none())

    async def update_status(
        self,
        recommendation_id: str,
        expected_status: DealStatus,
        status: DealStatus,
        sent_at: Optional[datetime],
        closed_lost_at: Optional[datetime],
        closed_lost_reason: Optional[str],
    ) -> bool:
        """
        Write a validated status change together with its terminal fields.

        Only applies while the stored status is still expected_status;
        returns False when another writer changed it first.
        """
        result = await self.session.execute(
            update(RecommendationModel)
            .where(
                RecommendationModel.id == recommendation_id,
                RecommendationModel.status == expected_status.value,
            )
            .values(
                status=status.value,
                sent_at=sent_at,
                closed_lost_at=closed_lost_at,
                closed_lost_reason=closed_lost_reason,
            )
        )
        return result.rowcount > 0

    async def update_score(
        self,
        recommendation_id: str,
        breakdown: ScoreBreakdown,
        scored_at: datetime,
    ) -> bool:
        """
        Persist the current score view on the recommendation

        Returns:
            False when the recommendation no longer exists
        """
        result = await self.session.execute(
            update(RecommendationModel)
            .where(RecommendationModel.id == recommendation_id)
            .values(
                confidence_score=breakdown.confidence_score,
                confidence_percent=breakdown.confidence_percent,
                weighted_monthly=breakdown.weighted_monthly,
                weighted_onetime=breakdown.weighted_onetime,
                base_score=breakdown.base_score,
                total_penalties=breakdown.total_penalties,
                total_bonus=breakdown.total_bonus,
                last_scored_at=scored_at,
            )
        )
        return result.rowcount > 0

    async def list_stale_active(self, scored_before: datetime, limit: int = 500) -> List[str]:
        """
        IDs of active pipeline deals (sent / declined) not scored since the cutoff

        Args:
            scored_before: Deals last scored before this instant are stale
            limit: Maximum IDs returned
        """
        result = await self.session.execute(
            select(RecommendationModel.id)
            .where(RecommendationModel.status.in_([DealStatus.SENT.value, DealStatus.DECLINED.value]))
            .where(or_(
                RecommendationModel.last_scored_at.is_(None),
                RecommendationModel.last_scored_at < scored_before,
            ))
            .order_by(RecommendationModel.last_scored_at.asc().nulls_first())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    def _to_domain(model: Optional[RecommendationModel]) -> Optional[DealSnapshot]:
        """Convert database model to domain entity"""
        if model is None:
            return None

        return DealSnapshot(
            id=model.id,
            status=DealStatus(model.status),
            created_by=model.created_by,
            predicted_monthly=Decimal(model.predicted_monthly or 0),
            predicted_onetime=Decimal(model.predicted_onetime or 0),
            sent_at=model.sent_at,
            confidence_score=model.confidence_score or 0,
            confidence_percent=Decimal(model.confidence_percent or 0),
            weighted_monthly=Decimal(model.weighted_monthly or 0),
            weighted_onetime=Decimal(model.weighted_onetime or 0),
            closed_lost_at=model.closed_lost_at,
            closed_lost_reason=model.closed_lost_reason,
            snoozed_until=model.snoozed_until,
            revived_at=model.revived_at,
            last_scored_at=model.last_scored_at,
        )
