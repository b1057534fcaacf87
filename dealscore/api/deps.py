"""
API dependencies: acting user, shared services, and error mapping
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request

from dealscore.domain.errors import AuthorizationError, DealScoreError, NotFoundError, ValidationError
from dealscore.domain.models import DealSnapshot
from dealscore.services.recalculation_service import RecalculationService

ADMIN_ROLES = frozenset({"admin", "super_admin"})


@dataclass(frozen=True)
class Actor:
    user_id: Optional[str] = None
    role: Optional[str] = None

    def can_modify(self, deal: DealSnapshot) -> bool:
        """Admins modify any recommendation; everyone else only their own."""
        if self.role in ADMIN_ROLES:
            return True
        return self.user_id is not None and deal.created_by == self.user_id


async def get_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Actor:
    return Actor(user_id=x_user_id, role=x_user_role.lower() if x_user_role else None)


def get_recalculation_service(request: Request) -> RecalculationService:
    service = getattr(request.app.state, "recalculation_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Recalculation service not initialized")
    return service


def to_http_error(exc: DealScoreError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))
