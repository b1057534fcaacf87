"""
TRANSITION VALIDATOR

Pure state machine for recommendation status changes.

RULES:
- Only transitions in the table are allowed
- Self-transitions are rejected
- accepted / closed_lost are terminal
- The validator answers allow/deny only; side effects belong to the caller
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from dealscore.domain.errors import ValidationError
from dealscore.domain.models import DealStatus


TRANSITIONS: Dict[DealStatus, Tuple[DealStatus, ...]] = {
    DealStatus.DRAFT: (DealStatus.SENT,),
    DealStatus.SENT: (DealStatus.ACCEPTED, DealStatus.DECLINED, DealStatus.CLOSED_LOST),
    DealStatus.ACCEPTED: (),
    DealStatus.DECLINED: (DealStatus.SENT, DealStatus.CLOSED_LOST),
    DealStatus.CLOSED_LOST: (),
}


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a transition check"""
    allowed: bool
    reason: Optional[str] = None


def parse_status(value: Union[str, DealStatus]) -> DealStatus:
    """Coerce a raw status string, rejecting anything outside the lifecycle."""
    if isinstance(value, DealStatus):
        return value
    try:
        return DealStatus(value)
    except ValueError:
        valid = ", ".join(s.value for s in DealStatus)
        raise ValidationError(f"Invalid status. Must be one of: {valid}") from None


def allowed_next_statuses(current: DealStatus) -> List[DealStatus]:
    return list(TRANSITIONS.get(current, ()))


def validate_transition(current: DealStatus, requested: DealStatus) -> TransitionResult:
    if requested in TRANSITIONS.get(current, ()):
        return TransitionResult(allowed=True)
    return TransitionResult(
        allowed=False,
        reason=f"Cannot transition from {current.value} to {requested.value}",
    )


def require_transition(current: DealStatus, requested: DealStatus) -> None:
    """Raise ValidationError carrying the transition-specific message when denied."""
    result = validate_transition(current, requested)
    if not result.allowed:
        raise ValidationError(result.reason)
