"""
Database Models (SQLAlchemy ORM)
pipeline_score_history is insert-only - NO UPDATES, NO DELETES
"""

import uuid

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime,
    ForeignKey, Text, Index, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship

from dealscore.infrastructure.db.database import Base
from dealscore.utils.time import utc_now_naive


def _new_id() -> str:
    return str(uuid.uuid4())


class RecommendationModel(Base):
    """Sales recommendation (deal) with its denormalized current score"""
    __tablename__ = "recommendations"

    id = Column(String(36), primary_key=True, default=_new_id)
    status = Column(String(20), nullable=False, default="draft", index=True)
    created_by = Column(String(64), nullable=True, index=True)

    predicted_monthly = Column(Numeric(12, 2), nullable=False, default=0)
    predicted_onetime = Column(Numeric(12, 2), nullable=False, default=0)

    # Current score (latest audit record, denormalized)
    confidence_score = Column(Integer, nullable=False, default=0)
    confidence_percent = Column(Numeric(5, 2), nullable=False, default=0)
    weighted_monthly = Column(Numeric(12, 2), nullable=False, default=0)
    weighted_onetime = Column(Numeric(12, 2), nullable=False, default=0)
    base_score = Column(Integer, nullable=True)
    total_penalties = Column(Numeric(6, 2), nullable=True)
    total_bonus = Column(Numeric(6, 2), nullable=True)
    last_scored_at = Column(DateTime, nullable=True, index=True)

    sent_at = Column(DateTime, nullable=True)
    closed_lost_at = Column(DateTime, nullable=True)
    closed_lost_reason = Column(Text, nullable=True)
    snoozed_until = Column(DateTime, nullable=True)
    revived_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now_naive)
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive, onupdate=utc_now_naive)

    # Relationships
    invites = relationship("RecommendationInviteModel", back_populates="recommendation")
    communications = relationship("RecommendationCommunicationModel", back_populates="recommendation")


class RecommendationInviteModel(Base):
    """One invitee and their engagement milestones"""
    __tablename__ = "recommendation_invites"

    id = Column(String(36), primary_key=True, default=_new_id)
    recommendation_id = Column(String(36), ForeignKey("recommendations.id"), nullable=False)
    email = Column(String(255), nullable=False)

    sent_at = Column(DateTime, nullable=True)
    email_opened_at = Column(DateTime, nullable=True)
    account_created_at = Column(DateTime, nullable=True)
    viewed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now_naive)

    recommendation = relationship("RecommendationModel", back_populates="invites")

    __table_args__ = (
        Index('ix_rec_invites_recommendation', 'recommendation_id'),
    )


class RecommendationCommunicationModel(Base):
    """Inbound / outbound contact log"""
    __tablename__ = "recommendation_communications"

    id = Column(String(36), primary_key=True, default=_new_id)
    recommendation_id = Column(String(36), ForeignKey("recommendations.id"), nullable=False)

    direction = Column(String(10), nullable=False)  # inbound, outbound
    channel = Column(String(10), nullable=False)    # email, sms, chat, call, other
    contact_at = Column(DateTime, nullable=False)
    source = Column(String(20), nullable=False, default="manual")
    external_message_id = Column(String(128), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utc_now_naive)

    recommendation = relationship("RecommendationModel", back_populates="communications")

    __table_args__ = (
        Index('ix_rec_comms_recommendation_contact', 'recommendation_id', 'contact_at'),
        UniqueConstraint('recommendation_id', 'external_message_id', name='uq_rec_comms_external_message'),
    )


class RecommendationCallScoreModel(Base):
    """Rep's call assessment (one per recommendation)"""
    __tablename__ = "recommendation_call_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recommendation_id = Column(String(36), ForeignKey("recommendations.id"), nullable=False, unique=True)

    budget_clarity = Column(String(20), nullable=False)
    competition = Column(String(20), nullable=False)
    engagement = Column(String(20), nullable=False)
    plan_fit = Column(String(20), nullable=False)

    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now_naive)
    updated_at = Column(DateTime, nullable=False, default=utc_now_naive, onupdate=utc_now_naive)


class ScoreHistoryModel(Base):
    """Score recalculation - AUDIT RECORD"""
    __tablename__ = "pipeline_score_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recommendation_id = Column(String(36), ForeignKey("recommendations.id"), nullable=False)

    scored_at = Column(DateTime, nullable=False)
    trigger_source = Column(String(64), nullable=False)
    status = Column(String(20), nullable=True)

    confidence_score = Column(Integer, nullable=False)
    confidence_percent = Column(Numeric(5, 2), nullable=False)
    weighted_monthly = Column(Numeric(12, 2), nullable=False)
    weighted_onetime = Column(Numeric(12, 2), nullable=False, default=0)

    # Full ScoreBreakdown; NULL on legacy rows
    breakdown = Column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint('recommendation_id', 'scored_at', name='uq_score_history_rec_scored_at'),
        Index('ix_score_history_rec_scored_at', 'recommendation_id', 'scored_at'),
    )
