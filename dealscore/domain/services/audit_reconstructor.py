"""
AUDIT RECONSTRUCTOR

Field-level deltas between consecutive score audit records.

The diff walks breakdown maps generically, so a new penalty or bonus shows
up in the history without changes here. Anomalies in the stored sequence are
reported as warnings on the delta; this module never raises on bad history.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from dealscore.domain.models import (
    AuditDelta,
    AuditIntegrityWarning,
    AuditRecord,
    FieldChange,
    ScoreBreakdown,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def _leaf_fields(breakdown: ScoreBreakdown) -> Dict[str, Decimal]:
    fields: Dict[str, Decimal] = {"base_score": Decimal(breakdown.base_score)}
    for name, amount in breakdown.penalties.items():
        fields[f"penalty_{name}"] = amount
    for name, amount in breakdown.bonuses.items():
        fields[f"bonus_{name}"] = amount
    fields["total_bonus"] = breakdown.total_bonus
    return fields


def diff_breakdowns(prev: ScoreBreakdown, curr: ScoreBreakdown) -> List[FieldChange]:
    """Changed leaves only; a key missing on one side counts as zero."""
    before = _leaf_fields(prev)
    after = _leaf_fields(curr)

    ordered = list(before)
    ordered += [name for name in after if name not in before]

    changes = []
    for name in ordered:
        old = before.get(name, Decimal("0"))
        new = after.get(name, Decimal("0"))
        if old != new:
            changes.append(FieldChange(field=name, from_value=old, to_value=new, delta=new - old))
    return changes


def compute_delta(prev: AuditRecord, curr: AuditRecord) -> AuditDelta:
    """
    Delta between two consecutive audit records.

    score_delta and weighted_mrr_delta are always reported, even when zero;
    field changes need a breakdown on both sides.
    """
    warnings = []

    if curr.scored_at <= prev.scored_at:
        warnings.append(AuditIntegrityWarning(
            code="non_monotonic_scored_at",
            message=(
                f"Audit record {curr.id} scored_at {curr.scored_at.isoformat()} "
                f"is not after {prev.scored_at.isoformat()}"
            ),
        ))

    if prev.breakdown is None or curr.breakdown is None:
        missing = prev if prev.breakdown is None else curr
        warnings.append(AuditIntegrityWarning(
            code="missing_breakdown",
            message=f"Audit record {missing.id} has no stored breakdown",
        ))
        changes: List[FieldChange] = []
    else:
        changes = diff_breakdowns(prev.breakdown, curr.breakdown)

    for warning in warnings:
        logger.warning(
            "Audit integrity [%s] for recommendation %s: %s",
            warning.code, curr.recommendation_id, warning.message,
        )

    return AuditDelta(
        score_delta=curr.confidence_score - prev.confidence_score,
        weighted_mrr_delta=(curr.weighted_monthly - prev.weighted_monthly).quantize(CENT),
        changes=tuple(changes),
        warnings=tuple(warnings),
    )


def diff_records(records: Sequence[AuditRecord]) -> List[Optional[AuditDelta]]:
    """One delta per record (ordered by scored_at); the first has no predecessor."""
    deltas: List[Optional[AuditDelta]] = []
    prev: Optional[AuditRecord] = None
    for record in records:
        deltas.append(compute_delta(prev, record) if prev is not None else None)
        prev = record
    return deltas
