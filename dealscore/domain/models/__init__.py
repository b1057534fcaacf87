"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    BudgetClarity,
    Channel,
    CommunicationSource,
    Competition,
    DealStatus,
    Direction,
    Engagement,
    PlanFit,
    TrackingEvent,

    # Entities
    CallScores,
    Communication,
    DealSnapshot,
    Invite,
    ScoringSignals,
)
from .scoring import (
    AuditDelta,
    AuditIntegrityWarning,
    AuditRecord,
    AuditTrailEntry,
    FieldChange,
    ScoreBreakdown,
    StatusView,
)
from .scoring_config import (
    DEFAULT_SCORING_CONFIG,
    ScoringConfig,
    load_scoring_config,
)

__all__ = [
    # Enums
    "BudgetClarity",
    "Channel",
    "CommunicationSource",
    "Competition",
    "DealStatus",
    "Direction",
    "Engagement",
    "PlanFit",
    "TrackingEvent",

    # Entities
    "CallScores",
    "Communication",
    "DealSnapshot",
    "Invite",
    "ScoringSignals",

    # Scoring
    "AuditDelta",
    "AuditIntegrityWarning",
    "AuditRecord",
    "AuditTrailEntry",
    "FieldChange",
    "ScoreBreakdown",
    "StatusView",

    # Policy
    "DEFAULT_SCORING_CONFIG",
    "ScoringConfig",
    "load_scoring_config",
]
