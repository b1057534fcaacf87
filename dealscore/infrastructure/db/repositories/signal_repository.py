"""
Signal Repositories
Invites, communications and call scores feeding the confidence score
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealscore.domain.models import (
    BudgetClarity,
    CallScores,
    Channel,
    Communication,
    CommunicationSource,
    Competition,
    Direction,
    Engagement,
    Invite,
    PlanFit,
    TrackingEvent,
)
from dealscore.infrastructure.db.models import (
    RecommendationCallScoreModel,
    RecommendationCommunicationModel,
    RecommendationInviteModel,
)

_MILESTONE_COLUMNS = {
    TrackingEvent.EMAIL_OPENED: "email_opened_at",
    TrackingEvent.ACCOUNT_CREATED: "account_created_at",
    TrackingEvent.PROPOSAL_VIEWED: "viewed_at",
}


class InviteRepository:
    """Repository for recommendation invites"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, recommendation_id: str, invite: Invite) -> str:
        model = RecommendationInviteModel(
            recommendation_id=recommendation_id,
            email=invite.email,
            sent_at=invite.sent_at,
            email_opened_at=invite.email_opened_at,
            account_created_at=invite.account_created_at,
            viewed_at=invite.viewed_at,
        )
        if invite.id:
            model.id = invite.id
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def list_for_recommendation(self, recommendation_id: str) -> List[Invite]:
        result = await self.session.execute(
            select(RecommendationInviteModel)
            .where(RecommendationInviteModel.recommendation_id == recommendation_id)
            .order_by(RecommendationInviteModel.created_at.asc())
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def mark_milestone(
        self,
        recommendation_id: str,
        invite_id: str,
        event: TrackingEvent,
        at: datetime,
    ) -> Optional[bool]:
        """
        Stamp a milestone on an invite (first occurrence only)

        Returns:
            None if the invite does not belong to the recommendation,
            False if the milestone was already recorded,
            True if it was recorded now
        """
        result = await self.session.execute(
            select(RecommendationInviteModel)
            .where(RecommendationInviteModel.id == invite_id)
            .where(RecommendationInviteModel.recommendation_id == recommendation_id)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None

        column = _MILESTONE_COLUMNS[event]
        if getattr(model, column) is not None:
            return False

        setattr(model, column, at)
        await self.session.flush()
        return True

    @staticmethod
    def _to_domain(model: RecommendationInviteModel) -> Invite:
        return Invite(
            id=model.id,
            email=model.email,
            sent_at=model.sent_at,
            email_opened_at=model.email_opened_at,
            account_created_at=model.account_created_at,
            viewed_at=model.viewed_at,
        )


class CommunicationRepository:
    """Repository for the communication log"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, recommendation_id: str, communication: Communication) -> str:
        model = RecommendationCommunicationModel(
            recommendation_id=recommendation_id,
            direction=communication.direction.value,
            channel=communication.channel.value,
            contact_at=communication.contact_at,
            source=communication.source.value,
            external_message_id=communication.external_message_id,
            notes=communication.notes,
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def find_by_external_id(
        self,
        recommendation_id: str,
        external_message_id: str,
    ) -> Optional[Communication]:
        result = await self.session.execute(
            select(RecommendationCommunicationModel)
            .where(RecommendationCommunicationModel.recommendation_id == recommendation_id)
            .where(RecommendationCommunicationModel.external_message_id == external_message_id)
        )
        model = result.scalars().first()
        return self._to_domain(model) if model else None

    async def list_for_recommendation(self, recommendation_id: str) -> List[Communication]:
        """Communications ordered by contact time, oldest first"""
        result = await self.session.execute(
            select(RecommendationCommunicationModel)
            .where(RecommendationCommunicationModel.recommendation_id == recommendation_id)
            .order_by(RecommendationCommunicationModel.contact_at.asc())
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    @staticmethod
    def _to_domain(model: RecommendationCommunicationModel) -> Communication:
        return Communication(
            id=model.id,
            direction=Direction(model.direction),
            channel=Channel(model.channel),
            contact_at=model.contact_at,
            source=CommunicationSource(model.source),
            external_message_id=model.external_message_id,
            notes=model.notes,
        )


class CallScoreRepository:
    """Repository for call assessments (one per recommendation)"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(
        self,
        recommendation_id: str,
        call_scores: CallScores,
        created_by: Optional[str] = None,
    ) -> None:
        result = await self.session.execute(
            select(RecommendationCallScoreModel)
            .where(RecommendationCallScoreModel.recommendation_id == recommendation_id)
        )
        model = result.scalar_one_or_none()
        if model is None:
            model = RecommendationCallScoreModel(
                recommendation_id=recommendation_id,
                created_by=created_by,
            )
            self.session.add(model)

        model.budget_clarity = call_scores.budget_clarity.value
        model.competition = call_scores.competition.value
        model.engagement = call_scores.engagement.value
        model.plan_fit = call_scores.plan_fit.value
        await self.session.flush()

    async def get_for_recommendation(self, recommendation_id: str) -> Optional[CallScores]:
        result = await self.session.execute(
            select(RecommendationCallScoreModel)
            .where(RecommendationCallScoreModel.recommendation_id == recommendation_id)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return CallScores(
            budget_clarity=BudgetClarity(model.budget_clarity),
            competition=Competition(model.competition),
            engagement=Engagement(model.engagement),
            plan_fit=PlanFit(model.plan_fit),
        )
