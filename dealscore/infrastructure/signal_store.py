"""
Signal Store
Unit-of-work facade over the repositories the scoring core reads and writes.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dealscore.domain.models import AuditRecord, DealSnapshot, ScoreBreakdown, ScoringSignals
from dealscore.infrastructure.db.repositories.recommendation_repository import RecommendationRepository
from dealscore.infrastructure.db.repositories.score_history_repository import ScoreHistoryRepository
from dealscore.infrastructure.db.repositories.signal_repository import (
    CallScoreRepository,
    CommunicationRepository,
    InviteRepository,
)


class SignalStore:
    """All scoring reads/writes for one session (one transaction)"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.recommendations = RecommendationRepository(session)
        self.invites = InviteRepository(session)
        self.communications = CommunicationRepository(session)
        self.call_scores = CallScoreRepository(session)
        self.history = ScoreHistoryRepository(session)

    async def load_deal(self, recommendation_id: str) -> Optional[DealSnapshot]:
        return await self.recommendations.get_by_id(recommendation_id)

    async def load_signals(self, recommendation_id: str) -> ScoringSignals:
        invites = await self.invites.list_for_recommendation(recommendation_id)
        communications = await self.communications.list_for_recommendation(recommendation_id)
        call_scores = await self.call_scores.get_for_recommendation(recommendation_id)
        return ScoringSignals(
            invites=tuple(invites),
            communications=tuple(communications),
            call_scores=call_scores,
        )

    async def latest_audit(self, recommendation_id: str) -> Optional[AuditRecord]:
        return await self.history.get_latest(recommendation_id)

    async def audit_trail(self, recommendation_id: str) -> List[AuditRecord]:
        return await self.history.list_for_recommendation(recommendation_id)

    async def append_audit(self, record: AuditRecord) -> int:
        return await self.history.append(record)

    async def save_score(self, recommendation_id: str, breakdown: ScoreBreakdown, scored_at: datetime) -> bool:
        return await self.recommendations.update_score(recommendation_id, breakdown, scored_at)

    async def commit(self) -> None:
        await self.session.commit()
