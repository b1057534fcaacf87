"""
Recommendation Routes
Status lifecycle, scoring signals and the score audit trail
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from dealscore.api.deps import (
    Actor,
    get_actor,
    get_recalculation_service,
    to_http_error,
)
from dealscore.domain.errors import AuthorizationError, DealScoreError, NotFoundError
from dealscore.domain.models import (
    AuditDelta,
    AuditTrailEntry,
    BudgetClarity,
    CallScores,
    Channel,
    Communication,
    CommunicationSource,
    Competition,
    Direction,
    Engagement,
    PlanFit,
    StatusView,
)
from dealscore.infrastructure.db.database import get_db
from dealscore.infrastructure.signal_store import SignalStore
from dealscore.services.audit_trail_service import AuditTrailService
from dealscore.services.recalculation_service import RecalculationOutcome, RecalculationService
from dealscore.services.signal_service import SignalService
from dealscore.services.status_service import StatusService
from dealscore.utils.time import to_utc_iso, to_utc_naive, utc_now_naive

logger = logging.getLogger(__name__)
router = APIRouter()

MANUAL_TRIGGER = "manual"


# ------------------------------------------------------------------
# Request Models
# ------------------------------------------------------------------

class StatusChangeRequest(BaseModel):
    status: str = Field(..., description="draft | sent | accepted | declined | closed_lost")
    reason: Optional[str] = Field(None, description="Stored when closing as lost")


class CommunicationRequest(BaseModel):
    direction: Direction
    channel: Channel = Channel.EMAIL
    contact_at: Optional[datetime] = Field(None, description="Default: now")
    source: CommunicationSource = CommunicationSource.MANUAL
    external_message_id: Optional[str] = None
    notes: Optional[str] = None


class TrackingRequest(BaseModel):
    invite_id: str
    event: str = Field(..., description="email_opened | account_created | proposal_viewed")
    occurred_at: Optional[datetime] = Field(None, description="Default: now")


class CallScoresRequest(BaseModel):
    budget_clarity: BudgetClarity
    competition: Competition
    engagement: Engagement
    plan_fit: PlanFit


# ------------------------------------------------------------------
# Response Models
# ------------------------------------------------------------------

class StatusResponse(BaseModel):
    recommendation_id: str
    status: str
    allowed_next_statuses: List[str]
    closed_lost_at: Optional[str] = None
    closed_lost_reason: Optional[str] = None
    confidence_score: int


class FieldChangeResponse(BaseModel):
    field: str
    from_value: float
    to_value: float
    delta: float


class IntegrityWarningResponse(BaseModel):
    code: str
    message: str


class AuditDeltaResponse(BaseModel):
    score_delta: int
    weighted_mrr_delta: float
    changes: List[FieldChangeResponse]
    warnings: List[IntegrityWarningResponse]


class AuditRecordResponse(BaseModel):
    id: Optional[int]
    scored_at: str
    trigger_source: str
    status: Optional[str]
    confidence_score: int
    confidence_percent: float
    weighted_monthly: float
    weighted_onetime: float
    breakdown: Optional[Dict[str, Any]] = None
    delta: Optional[AuditDeltaResponse] = None


class ScoreHistoryPoint(BaseModel):
    scored_at: str
    confidence_score: int
    weighted_monthly: float
    trigger_source: str


class CommunicationResponse(BaseModel):
    id: str
    created: bool


class TrackingResponse(BaseModel):
    recorded: bool


class RecalculateResponse(BaseModel):
    recommendation_id: str
    outcome: str
    confidence_score: Optional[int] = None
    breakdown: Optional[Dict[str, Any]] = None


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _status_response(view: StatusView) -> StatusResponse:
    return StatusResponse(
        recommendation_id=view.recommendation_id,
        status=view.status.value,
        allowed_next_statuses=[s.value for s in view.allowed_next_statuses],
        closed_lost_at=to_utc_iso(view.closed_lost_at),
        closed_lost_reason=view.closed_lost_reason,
        confidence_score=view.confidence_score,
    )


def _delta_response(delta: Optional[AuditDelta]) -> Optional[AuditDeltaResponse]:
    if delta is None:
        return None
    return AuditDeltaResponse(
        score_delta=delta.score_delta,
        weighted_mrr_delta=float(delta.weighted_mrr_delta),
        changes=[
            FieldChangeResponse(
                field=c.field,
                from_value=float(c.from_value),
                to_value=float(c.to_value),
                delta=float(c.delta),
            )
            for c in delta.changes
        ],
        warnings=[IntegrityWarningResponse(code=w.code, message=w.message) for w in delta.warnings],
    )


def _audit_response(entry: AuditTrailEntry) -> AuditRecordResponse:
    record = entry.record
    return AuditRecordResponse(
        id=record.id,
        scored_at=to_utc_iso(record.scored_at),
        trigger_source=record.trigger_source,
        status=record.status.value if record.status else None,
        confidence_score=record.confidence_score,
        confidence_percent=float(record.confidence_percent),
        weighted_monthly=float(record.weighted_monthly),
        weighted_onetime=float(record.weighted_onetime),
        breakdown=record.breakdown.to_dict() if record.breakdown else None,
        delta=_delta_response(entry.delta),
    )


# ------------------------------------------------------------------
# STATUS
# ------------------------------------------------------------------

@router.get("/{recommendation_id}/status", response_model=StatusResponse)
async def get_status(
    recommendation_id: str,
    db: AsyncSession = Depends(get_db),
    recalculator: RecalculationService = Depends(get_recalculation_service),
):
    try:
        view = await StatusService(db, recalculator).get_status(recommendation_id)
    except DealScoreError as e:
        raise to_http_error(e) from e
    return _status_response(view)


@router.patch("/{recommendation_id}/status", response_model=StatusResponse)
async def change_status(
    recommendation_id: str,
    request: StatusChangeRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
    recalculator: RecalculationService = Depends(get_recalculation_service),
):
    """
    Change recommendation status

    Rules:
    - Only transitions in the lifecycle table are accepted
    - accepted / closed_lost are final
    - Score is refreshed in the background
    """
    try:
        view = await StatusService(db, recalculator).change_status(
            recommendation_id,
            request.status,
            reason=request.reason,
            authorize=actor.can_modify,
        )
    except DealScoreError as e:
        raise to_http_error(e) from e
    return _status_response(view)


# ------------------------------------------------------------------
# AUDIT TRAIL
# ------------------------------------------------------------------

@router.get("/{recommendation_id}/score-audit", response_model=List[AuditRecordResponse])
async def get_score_audit(
    recommendation_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Every score recalculation, oldest first, with field-level changes"""
    try:
        entries = await AuditTrailService(db).get_audit_trail(recommendation_id)
    except DealScoreError as e:
        raise to_http_error(e) from e
    return [_audit_response(entry) for entry in entries]


@router.get("/{recommendation_id}/score-history", response_model=List[ScoreHistoryPoint])
async def get_score_history(
    recommendation_id: str,
    db: AsyncSession = Depends(get_db),
):
    try:
        records = await AuditTrailService(db).get_score_history(recommendation_id)
    except DealScoreError as e:
        raise to_http_error(e) from e
    return [
        ScoreHistoryPoint(
            scored_at=to_utc_iso(r.scored_at),
            confidence_score=r.confidence_score,
            weighted_monthly=float(r.weighted_monthly),
            trigger_source=r.trigger_source,
        )
        for r in records
    ]


# ------------------------------------------------------------------
# SIGNALS
# ------------------------------------------------------------------

@router.post("/{recommendation_id}/communications", response_model=CommunicationResponse, status_code=201)
async def log_communication(
    recommendation_id: str,
    request: CommunicationRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
    recalculator: RecalculationService = Depends(get_recalculation_service),
):
    communication = Communication(
        direction=request.direction,
        channel=request.channel,
        contact_at=to_utc_naive(request.contact_at) or utc_now_naive(),
        source=request.source,
        external_message_id=request.external_message_id,
        notes=request.notes,
    )
    try:
        communication_id, created = await SignalService(db, recalculator).log_communication(
            recommendation_id, communication, authorize=actor.can_modify
        )
    except DealScoreError as e:
        raise to_http_error(e) from e
    return CommunicationResponse(id=communication_id, created=created)


@router.post("/{recommendation_id}/tracking", response_model=TrackingResponse)
async def record_tracking_event(
    recommendation_id: str,
    request: TrackingRequest,
    db: AsyncSession = Depends(get_db),
    recalculator: RecalculationService = Depends(get_recalculation_service),
):
    """Invite milestone from the email / portal subsystem (first occurrence wins)"""
    try:
        recorded = await SignalService(db, recalculator).record_tracking_event(
            recommendation_id,
            request.invite_id,
            request.event,
            at=request.occurred_at,
        )
    except DealScoreError as e:
        raise to_http_error(e) from e
    return TrackingResponse(recorded=recorded)


@router.put("/{recommendation_id}/call-scores", response_model=CallScoresRequest)
async def save_call_scores(
    recommendation_id: str,
    request: CallScoresRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
    recalculator: RecalculationService = Depends(get_recalculation_service),
):
    call_scores = CallScores(
        budget_clarity=request.budget_clarity,
        competition=request.competition,
        engagement=request.engagement,
        plan_fit=request.plan_fit,
    )
    try:
        await SignalService(db, recalculator).save_call_scores(
            recommendation_id,
            call_scores,
            actor_id=actor.user_id,
            authorize=actor.can_modify,
        )
    except DealScoreError as e:
        raise to_http_error(e) from e
    return request


# ------------------------------------------------------------------
# MANUAL RECALCULATION
# ------------------------------------------------------------------

@router.post("/{recommendation_id}/recalculate", response_model=RecalculateResponse)
async def recalculate(
    recommendation_id: str,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_actor),
    recalculator: RecalculationService = Depends(get_recalculation_service),
):
    """Recalculate now and return the fresh breakdown"""
    try:
        deal = await SignalStore(db).load_deal(recommendation_id)
        if deal is None:
            raise NotFoundError("Recommendation", recommendation_id)
        if not actor.can_modify(deal):
            raise AuthorizationError(f"Not allowed to modify recommendation {recommendation_id}")
    except DealScoreError as e:
        raise to_http_error(e) from e

    result = await recalculator.recalculate_now(recommendation_id, MANUAL_TRIGGER)
    if result.outcome == RecalculationOutcome.FAILED:
        raise HTTPException(status_code=503, detail="Score recalculation failed, see logs")

    return RecalculateResponse(
        recommendation_id=recommendation_id,
        outcome=result.outcome.value,
        confidence_score=result.breakdown.confidence_score if result.breakdown else None,
        breakdown=result.breakdown.to_dict() if result.breakdown else None,
    )
