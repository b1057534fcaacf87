"""
Score History Repository
Append-only audit log of score recalculations
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealscore.domain.models import AuditRecord, DealStatus, ScoreBreakdown
from dealscore.infrastructure.db.models import ScoreHistoryModel


class ScoreHistoryRepository:
    """Repository for score audit records (insert and read only)"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, record: AuditRecord) -> int:
        """
        Append one audit record

        Args:
            record: AuditRecord domain object (id is ignored)

        Returns:
            ID of created record
        """
        model = ScoreHistoryModel(
            recommendation_id=record.recommendation_id,
            scored_at=record.scored_at,
            trigger_source=record.trigger_source,
            status=record.status.value if record.status else None,
            confidence_score=record.confidence_score,
            confidence_percent=record.confidence_percent,
            weighted_monthly=record.weighted_monthly,
            weighted_onetime=record.weighted_onetime,
            breakdown=record.breakdown.to_dict() if record.breakdown else None,
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def get_latest(self, recommendation_id: str) -> Optional[AuditRecord]:
        result = await self.session.execute(
            select(ScoreHistoryModel)
            .where(ScoreHistoryModel.recommendation_id == recommendation_id)
            .order_by(ScoreHistoryModel.scored_at.desc(), ScoreHistoryModel.id.desc())
            .limit(1)
        )
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def list_for_recommendation(self, recommendation_id: str) -> List[AuditRecord]:
        """Audit records ordered by scored_at, oldest first"""
        result = await self.session.execute(
            select(ScoreHistoryModel)
            .where(ScoreHistoryModel.recommendation_id == recommendation_id)
            .order_by(ScoreHistoryModel.scored_at.asc(), ScoreHistoryModel.id.asc())
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    @staticmethod
    def _to_domain(model: ScoreHistoryModel) -> AuditRecord:
        """Convert database model to domain entity"""
        return AuditRecord(
            id=model.id,
            recommendation_id=model.recommendation_id,
            scored_at=model.scored_at,
            trigger_source=model.trigger_source,
            status=DealStatus(model.status) if model.status else None,
            confidence_score=model.confidence_score,
            confidence_percent=Decimal(model.confidence_percent),
            weighted_monthly=Decimal(model.weighted_monthly),
            weighted_onetime=Decimal(model.weighted_onetime or 0),
            breakdown=ScoreBreakdown.from_dict(model.breakdown) if model.breakdown else None,
        )
