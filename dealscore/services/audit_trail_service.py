"""
Audit Trail Service
Read side of the score history: records with reconstructed deltas, and the
plain series used for charts.
"""

import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from dealscore.domain.errors import NotFoundError
from dealscore.domain.models import AuditRecord, AuditTrailEntry
from dealscore.domain.services.audit_reconstructor import diff_records
from dealscore.infrastructure.signal_store import SignalStore

logger = logging.getLogger(__name__)


class AuditTrailService:
    def __init__(self, session: AsyncSession):
        self.store = SignalStore(session)

    async def get_audit_trail(self, recommendation_id: str) -> List[AuditTrailEntry]:
        """Every audit record, oldest first, each paired with its delta from the previous one"""
        records = await self._records(recommendation_id)
        deltas = diff_records(records)
        return [AuditTrailEntry(record=r, delta=d) for r, d in zip(records, deltas)]

    async def get_score_history(self, recommendation_id: str) -> List[AuditRecord]:
        return await self._records(recommendation_id)

    async def _records(self, recommendation_id: str) -> List[AuditRecord]:
        if await self.store.load_deal(recommendation_id) is None:
            raise NotFoundError("Recommendation", recommendation_id)
        records = await self.store.audit_trail(recommendation_id)
        logger.debug("Loaded %d audit records for %s", len(records), recommendation_id)
        return records
