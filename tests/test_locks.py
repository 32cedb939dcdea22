import asyncio

from upload_engine.services.locks import SessionLockRegistry


async def test_shared_holders_run_together():
    locks = SessionLockRegistry()
    inside = 0
    peak = 0

    async def chunk_write():
        nonlocal inside, peak
        async with locks.shared("s1"):
            inside += 1
            peak = max(peak, inside)
            await asyncio.sleep(0.01)
            inside -= 1

    await asyncio.gather(*(chunk_write() for _ in range(4)))
    assert peak == 4
    assert len(locks) == 0


async def test_exclusive_waits_for_shared_and_blocks_new_shared():
    locks = SessionLockRegistry()
    events = []
    release_reader = asyncio.Event()

    async def reader(name, hold=None):
        async with locks.shared("s1"):
            events.append(f"{name}-in")
            if hold is not None:
                await hold.wait()
            events.append(f"{name}-out")

    async def writer():
        async with locks.exclusive("s1") as acquired:
            assert acquired
            events.append("writer-in")
            await asyncio.sleep(0)
            events.append("writer-out")

    first = asyncio.create_task(reader("r1", release_reader))
    await asyncio.sleep(0)
    write = asyncio.create_task(writer())
    await asyncio.sleep(0)
    late = asyncio.create_task(reader("r2"))
    await asyncio.sleep(0.01)

    assert events == ["r1-in"]
    release_reader.set()
    await asyncio.gather(first, write, late)

    assert events == ["r1-in", "r1-out", "writer-in", "writer-out", "r2-in", "r2-out"]


async def test_exclusive_without_wait_skips_busy_session():
    locks = SessionLockRegistry()
    async with locks.shared("s1"):
        assert locks.is_busy("s1")
        async with locks.exclusive("s1", wait=False) as acquired:
            assert acquired is False
        async with locks.exclusive("s2", wait=False) as acquired:
            assert acquired is True
    assert not locks.is_busy("s1")


async def test_sessions_do_not_block_each_other():
    locks = SessionLockRegistry()
    async with locks.exclusive("s1"):
        await asyncio.wait_for(_enter_shared(locks, "s2"), timeout=1)


async def _enter_shared(locks, session_id):
    async with locks.shared(session_id):
        return True
