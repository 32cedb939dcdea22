import asyncio
from datetime import timedelta

from upload_engine.models import UploadSessionRecord, utcnow
from upload_engine.services import ExpirySweeper


async def age_session(app, session_id, seconds):
    async with app.state.session_maker() as db:
        record = await db.get(UploadSessionRecord, session_id)
        record.updated_at = utcnow() - timedelta(seconds=seconds)
        await db.commit()


async def test_sweep_once_removes_abandoned_session(app, manager, db, settings):
    stale = await manager.init_session(db, "stale.bin", 2000, chunk_size=1024)
    fresh = await manager.init_session(db, "fresh.bin", 2000, chunk_size=1024)
    await age_session(app, stale.session_id, settings.SESSION_TTL_SECONDS + 1)

    sweeper = ExpirySweeper(manager, app.state.session_maker, interval=3600)
    assert await sweeper.sweep_once() == 1

    assert not manager.staging.exists(stale.session_id)
    assert manager.staging.exists(fresh.session_id)


async def test_background_loop_keeps_running_after_errors(app, manager, monkeypatch):
    calls = []

    async def flaky_expire(db, now=None):
        calls.append(now)
        if len(calls) == 1:
            raise RuntimeError("database went away")
        return 0

    monkeypatch.setattr(manager, "expire_stale", flaky_expire)
    sweeper = ExpirySweeper(manager, app.state.session_maker, interval=0.01)

    sweeper.start()
    assert sweeper.running
    for _ in range(100):
        if len(calls) >= 2:
            break
        await asyncio.sleep(0.01)
    await sweeper.stop()

    assert len(calls) >= 2
    assert not sweeper.running
    await sweeper.stop()
