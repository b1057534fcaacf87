"""
Application startup and shutdown through dealscore.main.lifespan
"""

import pytest
from fastapi import FastAPI

from dealscore import main
from dealscore.config import settings
from dealscore.services.recalculation_service import RecalculationOutcome


@pytest.mark.asyncio
@pytest.mark.integration
async def test_lifespan_starts_workers_and_scheduler(monkeypatch, caplog, session_factory, make_deal):
    monkeypatch.setattr(main, "async_session_factory", session_factory)
    monkeypatch.setattr(settings, "SCHEDULER_ENABLED", True)
    await make_deal("rec-1")

    app = FastAPI()
    with caplog.at_level("INFO", logger="dealscore.main"):
        async with main.lifespan(app):
            service = app.state.recalculation_service
            assert service.running
            assert service.config.silence.max_penalty == 35

            scheduler = app.state.scheduler
            assert scheduler.scheduler.get_job("daily_score_decay") is not None

            result = await service.recalculate_now("rec-1", "manual")
            assert result.outcome == RecalculationOutcome.SCORED
            assert result.breakdown.confidence_score == 40

    assert "Scoring policy loaded: base=40 email_cap=25 view_cap=20 silence_cap=35" in caplog.text
    assert "Shutdown complete" in caplog.text
    assert not service.running
    assert not scheduler.scheduler.running


@pytest.mark.asyncio
@pytest.mark.integration
async def test_lifespan_without_scheduler(monkeypatch, session_factory):
    monkeypatch.setattr(main, "async_session_factory", session_factory)
    monkeypatch.setattr(settings, "SCHEDULER_ENABLED", False)

    app = FastAPI()
    async with main.lifespan(app):
        assert app.state.scheduler is None
        assert app.state.recalculation_service.running
    assert not app.state.recalculation_service.running
