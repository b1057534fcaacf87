"""
DOMAIN MODELS - SCORING

Score breakdowns, audit records and the read projections built on them.
This layer contains NO database or service logic.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from dealscore.domain.models.entities import DealStatus


def to_decimal(value: Any) -> Decimal:
    """Lossless conversion of stored numbers (float, int, str) to Decimal."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class ScoreBreakdown:
    """
    Result of one score computation.

    penalties and bonuses are open name -> amount maps so new signals can be
    added without touching the audit diff.
    """
    base_score: int
    penalties: Dict[str, Decimal]
    bonuses: Dict[str, Decimal]
    total_penalties: Decimal
    total_bonus: Decimal
    confidence_score: int
    confidence_percent: Decimal
    weighted_monthly: Decimal
    weighted_onetime: Decimal

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation stored with every audit record."""
        return {
            "base_score": self.base_score,
            "penalties": {k: float(v) for k, v in self.penalties.items()},
            "bonuses": {k: float(v) for k, v in self.bonuses.items()},
            "total_penalties": float(self.total_penalties),
            "total_bonus": float(self.total_bonus),
            "confidence_score": self.confidence_score,
            "confidence_percent": float(self.confidence_percent),
            "weighted_monthly": float(self.weighted_monthly),
            "weighted_onetime": float(self.weighted_onetime),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ScoreBreakdown":
        # Older rows kept the bonus inside a flat "penalty_breakdown" map
        penalties = payload.get("penalties")
        bonuses = payload.get("bonuses")
        if penalties is None and "penalty_breakdown" in payload:
            legacy = dict(payload["penalty_breakdown"] or {})
            bonus = legacy.pop("multi_invite_bonus", 0)
            penalties = legacy
            bonuses = {"multi_invite": bonus}

        return cls(
            base_score=int(payload.get("base_score", 0)),
            penalties={k: to_decimal(v) for k, v in (penalties or {}).items()},
            bonuses={k: to_decimal(v) for k, v in (bonuses or {}).items()},
            total_penalties=to_decimal(payload.get("total_penalties")),
            total_bonus=to_decimal(payload.get("total_bonus")),
            confidence_score=int(payload.get("confidence_score", 0)),
            confidence_percent=to_decimal(payload.get("confidence_percent")),
            weighted_monthly=to_decimal(payload.get("weighted_monthly")),
            weighted_onetime=to_decimal(payload.get("weighted_onetime")),
        )


@dataclass(frozen=True)
class AuditRecord:
    """Immutable snapshot of one recalculation (append-only)"""
    recommendation_id: str
    scored_at: datetime
    trigger_source: str
    confidence_score: int
    confidence_percent: Decimal
    weighted_monthly: Decimal
    weighted_onetime: Decimal = Decimal("0")
    status: Optional[DealStatus] = None
    breakdown: Optional[ScoreBreakdown] = None
    id: Optional[int] = None


@dataclass(frozen=True)
class FieldChange:
    """One breakdown leaf that differs between consecutive audit records"""
    field: str
    from_value: Decimal
    to_value: Decimal
    delta: Decimal


@dataclass(frozen=True)
class AuditIntegrityWarning:
    """
    Non-fatal anomaly found while reconstructing history.

    Codes: missing_breakdown, non_monotonic_scored_at
    """
    code: str
    message: str


@dataclass(frozen=True)
class AuditDelta:
    """What changed between an audit record and its predecessor"""
    score_delta: int
    weighted_mrr_delta: Decimal
    changes: Tuple[FieldChange, ...] = ()
    warnings: Tuple[AuditIntegrityWarning, ...] = ()


@dataclass(frozen=True)
class AuditTrailEntry:
    record: AuditRecord
    delta: Optional[AuditDelta] = None


@dataclass(frozen=True)
class StatusView:
    """Read projection: current status plus where it may go next"""
    recommendation_id: str
    status: DealStatus
    allowed_next_statuses: List[DealStatus] = field(default_factory=list)
    closed_lost_at: Optional[datetime] = None
    closed_lost_reason: Optional[str] = None
    confidence_score: int = 0
