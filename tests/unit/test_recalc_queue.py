import asyncio
from datetime import datetime, timezone

import pytest

from dealscore.realtime.recalc_queue import (
    KeyedLock,
    RecalculationQueue,
    RecalculationRequest,
    RecalculationWorkerPool,
)


def _request(rec_id: str, trigger: str = "communication_logged") -> RecalculationRequest:
    return RecalculationRequest(
        recommendation_id=rec_id,
        trigger_source=trigger,
        requested_at=datetime.now(tz=timezone.utc),
    )


@pytest.mark.asyncio
async def test_worker_pool_handles_requests():
    queue = RecalculationQueue()
    seen = []

    async def handler(request: RecalculationRequest):
        seen.append((request.recommendation_id, request.trigger_source))

    pool = RecalculationWorkerPool(queue, handler, workers=2)
    pool.start()

    assert queue.publish_nowait(_request("rec-1"))
    assert queue.publish_nowait(_request("rec-2", "email_opened"))

    # allow workers to process
    await queue.join()
    await pool.stop()

    assert sorted(seen) == [("rec-1", "communication_logged"), ("rec-2", "email_opened")]
    assert not pool.running


@pytest.mark.asyncio
async def test_handler_crash_does_not_stop_the_worker():
    queue = RecalculationQueue()
    seen = []

    async def handler(request: RecalculationRequest):
        if request.recommendation_id == "bad":
            raise RuntimeError("store down")
        seen.append(request.recommendation_id)

    pool = RecalculationWorkerPool(queue, handler, workers=1)
    pool.start()

    assert queue.publish_nowait(_request("bad"))
    assert queue.publish_nowait(_request("good"))
    await queue.join()
    await pool.stop()

    assert seen == ["good"]


def test_publish_nowait_reports_full_queue():
    queue = RecalculationQueue(maxsize=1)
    assert queue.publish_nowait(_request("rec-1"))
    assert not queue.publish_nowait(_request("rec-2"))
    assert queue.size() == 1


@pytest.mark.asyncio
async def test_keyed_lock_serializes_same_key():
    locks = KeyedLock()
    active = 0
    max_active = 0

    async def critical():
        nonlocal active, max_active
        async with locks.hold("rec-1"):
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            active -= 1

    await asyncio.gather(*(critical() for _ in range(5)))

    assert max_active == 1
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_keyed_lock_allows_different_keys_in_parallel():
    locks = KeyedLock()
    inside = asyncio.Event()
    release = asyncio.Event()

    async def hold_first():
        async with locks.hold("rec-1"):
            inside.set()
            await release.wait()

    task = asyncio.create_task(hold_first())
    await inside.wait()

    # a different key is not blocked by rec-1
    async with locks.hold("rec-2"):
        assert len(locks) == 2

    release.set()
    await task
    assert len(locks) == 0
