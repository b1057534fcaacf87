"""
Domain Errors
Client-facing errors block the operation; recalculation failures never do.
"""

from typing import Optional


class DealScoreError(Exception):
    """Base class for all dealscore errors"""


class ValidationError(DealScoreError):
    """Requested change is not permitted (bad transition, bad input)"""


class NotFoundError(DealScoreError):
    """Recommendation (or one of its signals) does not exist"""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class AuthorizationError(DealScoreError):
    """Actor is not allowed to modify the recommendation"""


class RecalculationFailure(DealScoreError):
    """
    Score recalculation could not complete.

    Only ever logged; never raised into the operation that triggered it.
    """

    def __init__(self, deal_id: str, trigger_source: str, cause: Optional[BaseException] = None):
        self.deal_id = deal_id
        self.trigger_source = trigger_source
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown cause"
        super().__init__(
            f"Recalculation failed for {deal_id} (trigger={trigger_source}): {detail}"
        )
