from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from dealscore.infrastructure.db.database import get_db

router = APIRouter()


@router.get("/health")
async def health(request: Request, db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception:
        db_connected = False

    service = getattr(request.app.state, "recalculation_service", None)
    return {
        "status": "ok" if db_connected else "degraded",
        "db_connected": db_connected,
        "recalculation_workers": bool(service and service.running),
    }
