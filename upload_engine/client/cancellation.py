"""
Cooperative cancellation shared by every task of one upload
"""
import asyncio
import logging
from typing import Callable, Optional

from .errors import Cancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Set once, observed by many.

    Callbacks registered with ``add_callback`` run exactly once, when the
    token is cancelled (immediately if it already is).
    """

    def __init__(self):
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "Upload cancelled") -> None:
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"❌ Cancellation callback failed: {e}")

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled(self._reason or "Upload cancelled")

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it"""
        if self.cancelled:
            callback()
            return lambda: None

        self._callbacks.append(callback)

        def remove():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove
