"""
Background housekeeping: periodically drop abandoned upload sessions
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .session_manager import SessionManager

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Runs SessionManager.expire_stale every ``interval`` seconds"""

    def __init__(
        self,
        manager: SessionManager,
        session_maker: async_sessionmaker[AsyncSession],
        interval: float
    ):
        self.manager = manager
        self.session_maker = session_maker
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> int:
        async with self.session_maker() as db:
            removed = await self.manager.expire_stale(db)
        if removed:
            logger.info(f"🧹 Sweep removed {removed} stale session(s)")
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"❌ Session sweep failed: {e}")

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="upload-session-sweeper")
        logger.info(f"🧹 Session sweeper started (every {self.interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("🧹 Session sweeper stopped")
