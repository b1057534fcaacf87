"""
Scoring policy.

Fixed business constants for the confidence score. Defaults live here; a
deployment may override them from a YAML file that is read once at startup.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

logger = logging.getLogger(__name__)


class PenaltyPolicy(BaseModel):
    """Grace period, daily rate and cap for one time-based penalty."""

    model_config = ConfigDict(frozen=True)

    grace_period_hours: int = 0
    grace_period_days: int = 0
    daily_penalty: Decimal
    max_penalty: Decimal
    followup_acceleration_threshold: Optional[int] = None
    followup_acceleration_multiplier: Decimal = Decimal("1")

    @field_validator("max_penalty")
    @classmethod
    def _cap_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v > 100:
            raise ValueError(f"max_penalty must be within 0-100, got {v}")
        return v

    @field_validator("daily_penalty", "followup_acceleration_multiplier")
    @classmethod
    def _non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("penalty rates must be non-negative")
        return v


class CallWeights(BaseModel):
    """Points each call factor contributes at its best value (sum = 100)."""

    model_config = ConfigDict(frozen=True)

    budget_clarity: Decimal = Decimal("25")
    competition: Decimal = Decimal("20")
    engagement: Decimal = Decimal("25")
    plan_fit: Decimal = Decimal("30")


class CallScoreMappings(BaseModel):
    """0-1 multiplier for every selectable call factor value."""

    model_config = ConfigDict(frozen=True)

    budget_clarity: Dict[str, Decimal] = {
        "clear": Decimal("1.0"), "vague": Decimal("0.5"),
        "none": Decimal("0.2"), "no_budget": Decimal("0"),
    }
    competition: Dict[str, Decimal] = {
        "none": Decimal("1.0"), "some": Decimal("0.5"), "many": Decimal("0.15"),
    }
    engagement: Dict[str, Decimal] = {
        "high": Decimal("1.0"), "medium": Decimal("0.70"), "low": Decimal("0.15"),
    }
    plan_fit: Dict[str, Decimal] = {
        "strong": Decimal("1.0"), "medium": Decimal("0.65"),
        "weak": Decimal("0.25"), "poor": Decimal("0"),
    }


class BonusPolicy(BaseModel):
    """Multi-stakeholder engagement bonuses (only with more than one invitee)."""

    model_config = ConfigDict(frozen=True)

    per_additional_invitee: Decimal = Decimal("2")
    max_multi_invite: Decimal = Decimal("5")
    all_opened_bonus: Decimal = Decimal("3")
    all_viewed_bonus: Decimal = Decimal("5")


class ScoringConfig(BaseModel):
    """Complete scoring policy."""

    model_config = ConfigDict(frozen=True)

    default_base_score: int = 40
    call_weights: CallWeights = CallWeights()
    call_score_mappings: CallScoreMappings = CallScoreMappings()
    email_not_opened: PenaltyPolicy = PenaltyPolicy(
        grace_period_hours=24, daily_penalty=Decimal("2.5"), max_penalty=Decimal("25"),
    )
    proposal_not_viewed: PenaltyPolicy = PenaltyPolicy(
        grace_period_hours=48, daily_penalty=Decimal("2"), max_penalty=Decimal("20"),
    )
    silence: PenaltyPolicy = PenaltyPolicy(
        grace_period_days=5,
        daily_penalty=Decimal("3"),
        max_penalty=Decimal("35"),
        followup_acceleration_threshold=2,
        followup_acceleration_multiplier=Decimal("1.5"),
    )
    bonuses: BonusPolicy = BonusPolicy()

    @field_validator("default_base_score")
    @classmethod
    def _base_in_range(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError(f"default_base_score must be within 0-100, got {v}")
        return v

    @model_validator(mode="after")
    def _weights_bounded(self) -> "ScoringConfig":
        w = self.call_weights
        total = w.budget_clarity + w.competition + w.engagement + w.plan_fit
        if total > 100:
            raise ValueError(f"call weights sum to {total}, must not exceed 100")
        return self


DEFAULT_SCORING_CONFIG = ScoringConfig()


def load_scoring_config(path: Optional[Path | str]) -> ScoringConfig:
    """
    Load scoring policy overrides from YAML.

    A missing path or file yields the defaults; an invalid file fails fast.
    """
    if path is None:
        return DEFAULT_SCORING_CONFIG

    config_file = Path(path)
    if not config_file.exists():
        logger.info("Scoring config %s not found, using defaults", config_file)
        return DEFAULT_SCORING_CONFIG

    with open(config_file, "r") as f:
        data = yaml.safe_load(f) or {}

    config = ScoringConfig.model_validate(data.get("scoring", data))
    logger.info("Loaded scoring config from %s", config_file)
    return config
