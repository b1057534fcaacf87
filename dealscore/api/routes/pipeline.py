"""
Pipeline Routes
Bulk score maintenance across all active recommendations
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from dealscore.api.deps import ADMIN_ROLES, Actor, get_actor, get_recalculation_service
from dealscore.services.recalculation_service import RecalculationService

router = APIRouter()


class RefreshScoresResponse(BaseModel):
    processed: int
    succeeded: int
    skipped: int
    failed: int
    duration_ms: int


@router.post("/refresh-scores", response_model=RefreshScoresResponse)
async def refresh_scores(
    actor: Actor = Depends(get_actor),
    recalculator: RecalculationService = Depends(get_recalculation_service),
):
    """Re-score stale sent / declined recommendations now (admin only)"""
    if actor.role not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="Admin role required")

    result = await recalculator.recalculate_stale()
    return RefreshScoresResponse(
        processed=result.processed,
        succeeded=result.succeeded,
        skipped=result.skipped,
        failed=result.failed,
        duration_ms=result.duration_ms,
    )
