"""Pipeline confidence score calculator (0-100) for recommendations."""
from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional

from dealscore.domain.models import (
    CallScores,
    DealSnapshot,
    DealStatus,
    ScoreBreakdown,
    ScoringSignals,
)
from dealscore.domain.models.scoring_config import (
    DEFAULT_SCORING_CONFIG,
    BonusPolicy,
    PenaltyPolicy,
    ScoringConfig,
)

SECONDS_PER_HOUR = 3600
HOURS_PER_DAY = 24
CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

PENALTY_KEYS = ("email_not_opened", "proposal_not_viewed", "silence")
BONUS_KEYS = ("multi_invite", "all_invitees_opened", "all_invitees_viewed")


def hours_between(start: Optional[datetime], end: datetime) -> int:
    """Whole hours from start to end; 0 when start is missing or in the future."""
    if start is None:
        return 0
    seconds = (end - start).total_seconds()
    return max(0, int(seconds // SECONDS_PER_HOUR))


def days_between(start: Optional[datetime], end: datetime) -> int:
    """Whole days from start to end; 0 when start is missing or in the future."""
    return hours_between(start, end) // HOURS_PER_DAY


def _round2(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _round_score(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _clamp(value: Decimal, low: Decimal = ZERO, high: Decimal = HUNDRED) -> Decimal:
    return max(low, min(high, value))


def _latest(*values: Optional[datetime]) -> Optional[datetime]:
    present = [v for v in values if v is not None]
    return max(present) if present else None


def _penalty_anchor(anchor: Optional[datetime], snapshot: DealSnapshot) -> Optional[datetime]:
    # Revival and snooze both restart the clock; a future snooze keeps it at zero
    if anchor is None:
        return None
    return _latest(anchor, snapshot.revived_at, snapshot.snoozed_until)


def _zero_map(keys) -> Dict[str, Decimal]:
    return {k: ZERO for k in keys}


# --- Base score ---

def compute_base_score(
    call_scores: Optional[CallScores],
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> Decimal:
    """
    Weighted sum of the rep's call factors, or the policy default when the
    call has not been scored yet.
    """
    if call_scores is None:
        return Decimal(config.default_base_score)

    w = config.call_weights
    m = config.call_score_mappings
    return (
        m.budget_clarity.get(call_scores.budget_clarity.value, ZERO) * w.budget_clarity
        + m.competition.get(call_scores.competition.value, ZERO) * w.competition
        + m.engagement.get(call_scores.engagement.value, ZERO) * w.engagement
        + m.plan_fit.get(call_scores.plan_fit.value, ZERO) * w.plan_fit
    )


# --- Penalties ---

def _hourly_decay(anchor: Optional[datetime], policy: PenaltyPolicy, now: datetime) -> Decimal:
    hours = hours_between(anchor, now)
    if anchor is None or hours <= policy.grace_period_hours:
        return ZERO
    days_past_grace = Decimal(hours - policy.grace_period_hours) / HOURS_PER_DAY
    return min(days_past_grace * policy.daily_penalty, policy.max_penalty)


def email_not_opened_penalty(
    snapshot: DealSnapshot,
    signals: ScoringSignals,
    policy: PenaltyPolicy,
    now: datetime,
) -> Decimal:
    """Grows after the grace period while no invitee has opened the email."""
    if signals.first_email_opened_at is not None:
        return ZERO
    anchor = _penalty_anchor(snapshot.sent_at, snapshot)
    return _hourly_decay(anchor, policy, now)


def proposal_not_viewed_penalty(
    snapshot: DealSnapshot,
    signals: ScoringSignals,
    policy: PenaltyPolicy,
    now: datetime,
) -> Decimal:
    """
    Grows after the grace period while no invitee has viewed the proposal.

    The clock starts at the first sign of engagement (email opened or account
    created) and falls back to sent_at, so it runs independently of the
    email-not-opened penalty.
    """
    if signals.first_proposal_viewed_at is not None:
        return ZERO
    engaged_at = min(
        (t for t in (signals.first_email_opened_at, signals.first_account_created_at) if t is not None),
        default=None,
    )
    anchor = _penalty_anchor(engaged_at or snapshot.sent_at, snapshot)
    return _hourly_decay(anchor, policy, now)


def silence_penalty(
    snapshot: DealSnapshot,
    signals: ScoringSignals,
    policy: PenaltyPolicy,
    now: datetime,
) -> Decimal:
    """
    Grows with whole days since the prospect last reached out (or since the
    deal was sent). Unanswered follow-ups past the threshold accelerate it.
    """
    if snapshot.sent_at is None:
        return ZERO
    anchor = _penalty_anchor(_latest(snapshot.sent_at, signals.last_inbound_at), snapshot)

    days = days_between(anchor, now)
    if days <= policy.grace_period_days:
        return ZERO

    daily = policy.daily_penalty
    threshold = policy.followup_acceleration_threshold
    if threshold is not None and signals.followups_since_last_reply >= threshold:
        daily = daily * policy.followup_acceleration_multiplier

    return min(Decimal(days - policy.grace_period_days) * daily, policy.max_penalty)


# --- Bonuses ---

def invite_bonuses(signals: ScoringSignals, policy: BonusPolicy) -> Dict[str, Decimal]:
    """Multi-stakeholder bonuses; a single invitee earns nothing."""
    bonuses = _zero_map(BONUS_KEYS)
    invitees = signals.invitee_count
    if invitees <= 1:
        return bonuses

    bonuses["multi_invite"] = min(
        Decimal(invitees - 1) * policy.per_additional_invitee,
        policy.max_multi_invite,
    )
    if signals.opened_count >= invitees:
        bonuses["all_invitees_opened"] = policy.all_opened_bonus
    if signals.viewed_count >= invitees:
        bonuses["all_invitees_viewed"] = policy.all_viewed_bonus
    return bonuses


# --- Main entry point ---

def _finalize(
    snapshot: DealSnapshot,
    base_score: int,
    penalties: Dict[str, Decimal],
    bonuses: Dict[str, Decimal],
) -> ScoreBreakdown:
    penalties = {k: _round2(v) for k, v in penalties.items()}
    bonuses = {k: _round2(v) for k, v in bonuses.items()}
    total_penalties = sum(penalties.values(), ZERO)
    total_bonus = sum(bonuses.values(), ZERO)

    score = _round_score(_clamp(Decimal(base_score) - total_penalties + total_bonus))
    percent = _round2(Decimal(score) / HUNDRED)

    return ScoreBreakdown(
        base_score=base_score,
        penalties=penalties,
        bonuses=bonuses,
        total_penalties=total_penalties,
        total_bonus=total_bonus,
        confidence_score=score,
        confidence_percent=percent,
        weighted_monthly=_round2(snapshot.predicted_monthly * percent),
        weighted_onetime=_round2(snapshot.predicted_onetime * percent),
    )


def compute_score(
    snapshot: DealSnapshot,
    signals: ScoringSignals,
    now: datetime,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> ScoreBreakdown:
    """
    Compute the confidence breakdown for one recommendation.

    Pure and deterministic: every time-based term is measured against the
    explicit `now`.

    Notes:
    - closed_lost scores 0 and accepted scores 100 outright.
    - draft deals get the base score only (nothing has been sent to measure).
    - sent / declined deals get base - penalties + bonuses, clamped to 0-100.
    """
    if snapshot.status == DealStatus.CLOSED_LOST:
        return _finalize(snapshot, 0, _zero_map(PENALTY_KEYS), _zero_map(BONUS_KEYS))

    if snapshot.status == DealStatus.ACCEPTED:
        return _finalize(snapshot, 100, _zero_map(PENALTY_KEYS), _zero_map(BONUS_KEYS))

    base_score = _round_score(_clamp(compute_base_score(signals.call_scores, config)))

    if snapshot.status == DealStatus.DRAFT:
        return _finalize(snapshot, base_score, _zero_map(PENALTY_KEYS), _zero_map(BONUS_KEYS))

    # 1) Time-based penalties
    penalties = {
        "email_not_opened": email_not_opened_penalty(snapshot, signals, config.email_not_opened, now),
        "proposal_not_viewed": proposal_not_viewed_penalty(snapshot, signals, config.proposal_not_viewed, now),
        "silence": silence_penalty(snapshot, signals, config.silence, now),
    }

    # 2) Engagement bonuses
    bonuses = invite_bonuses(signals, config.bonuses)

    return _finalize(snapshot, base_score, penalties, bonuses)
