"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple


class DealStatus(str, Enum):
    """Recommendation lifecycle status"""
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CLOSED_LOST = "closed_lost"

    @property
    def is_terminal(self) -> bool:
        return self in (DealStatus.ACCEPTED, DealStatus.CLOSED_LOST)


class Direction(str, Enum):
    """Who initiated a communication"""
    INBOUND = "inbound"    # prospect
    OUTBOUND = "outbound"  # agency team


class Channel(str, Enum):
    """Communication channel"""
    EMAIL = "email"
    SMS = "sms"
    CHAT = "chat"
    CALL = "call"
    OTHER = "other"


class CommunicationSource(str, Enum):
    """How a communication record was created"""
    WEBHOOK = "webhook"
    MANUAL = "manual"
    SYSTEM = "system"


class TrackingEvent(str, Enum):
    """Invite milestones reported by the email / portal subsystem"""
    EMAIL_OPENED = "email_opened"
    ACCOUNT_CREATED = "account_created"
    PROPOSAL_VIEWED = "proposal_viewed"


class BudgetClarity(str, Enum):
    CLEAR = "clear"
    VAGUE = "vague"
    NONE = "none"
    NO_BUDGET = "no_budget"


class Competition(str, Enum):
    NONE = "none"
    SOME = "some"
    MANY = "many"


class Engagement(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PlanFit(str, Enum):
    STRONG = "strong"
    MEDIUM = "medium"
    WEAK = "weak"
    POOR = "poor"


@dataclass(frozen=True)
class DealSnapshot:
    """Current state of a recommendation as read from the signal store"""
    id: str
    status: DealStatus
    predicted_monthly: Decimal = Decimal("0")
    predicted_onetime: Decimal = Decimal("0")
    created_by: Optional[str] = None
    sent_at: Optional[datetime] = None
    confidence_score: int = 0
    confidence_percent: Decimal = Decimal("0")
    weighted_monthly: Decimal = Decimal("0")
    weighted_onetime: Decimal = Decimal("0")
    closed_lost_at: Optional[datetime] = None
    closed_lost_reason: Optional[str] = None
    snoozed_until: Optional[datetime] = None
    revived_at: Optional[datetime] = None
    last_scored_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("Recommendation id cannot be empty")
        if self.predicted_monthly < 0 or self.predicted_onetime < 0:
            raise ValueError("Predicted values cannot be negative")


@dataclass(frozen=True)
class Invite:
    """One invitee on a recommendation"""
    email: str
    id: Optional[str] = None
    sent_at: Optional[datetime] = None
    email_opened_at: Optional[datetime] = None
    account_created_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None


@dataclass(frozen=True)
class Communication:
    """A logged contact between the team and the prospect"""
    direction: Direction
    channel: Channel
    contact_at: datetime
    source: CommunicationSource = CommunicationSource.MANUAL
    id: Optional[str] = None
    external_message_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class CallScores:
    """Rep's assessment captured after the sales call"""
    budget_clarity: BudgetClarity
    competition: Competition
    engagement: Engagement
    plan_fit: PlanFit


def _earliest(values: List[Optional[datetime]]) -> Optional[datetime]:
    present = [v for v in values if v is not None]
    return min(present) if present else None


@dataclass(frozen=True)
class ScoringSignals:
    """
    Everything the calculator reads besides the deal itself.

    Invitees are distinct by (case-insensitive) email; an invitee counts as
    having opened/viewed when any of their invites did.
    """
    invites: Tuple[Invite, ...] = ()
    communications: Tuple[Communication, ...] = ()
    call_scores: Optional[CallScores] = None

    def _by_invitee(self) -> Dict[str, List[Invite]]:
        grouped: Dict[str, List[Invite]] = {}
        for invite in self.invites:
            grouped.setdefault(invite.email.strip().lower(), []).append(invite)
        return grouped

    # --- invite milestones ---

    @property
    def first_email_opened_at(self) -> Optional[datetime]:
        return _earliest([i.email_opened_at for i in self.invites])

    @property
    def first_account_created_at(self) -> Optional[datetime]:
        return _earliest([i.account_created_at for i in self.invites])

    @property
    def first_proposal_viewed_at(self) -> Optional[datetime]:
        return _earliest([i.viewed_at for i in self.invites])

    # --- invite stats ---

    @property
    def invitee_count(self) -> int:
        return len(self._by_invitee())

    @property
    def opened_count(self) -> int:
        return sum(
            1 for invites in self._by_invitee().values()
            if any(i.email_opened_at is not None for i in invites)
        )

    @property
    def viewed_count(self) -> int:
        return sum(
            1 for invites in self._by_invitee().values()
            if any(i.viewed_at is not None for i in invites)
        )

    # --- communications ---

    @property
    def last_inbound_at(self) -> Optional[datetime]:
        inbound = [c.contact_at for c in self.communications if c.direction == Direction.INBOUND]
        return max(inbound) if inbound else None

    @property
    def last_outbound_at(self) -> Optional[datetime]:
        outbound = [c.contact_at for c in self.communications if c.direction == Direction.OUTBOUND]
        return max(outbound) if outbound else None

    @property
    def followups_since_last_reply(self) -> int:
        """Outbound contacts after the last inbound one (all of them if never replied)."""
        last_reply = self.last_inbound_at
        return sum(
            1 for c in self.communications
            if c.direction == Direction.OUTBOUND
            and (last_reply is None or c.contact_at > last_reply)
        )
