"""
Per-session mutual exclusion.

Chunk writes take the shared side of a session's gate (different indices
write disjoint byte ranges); complete, cancel and expiry take the exclusive
side. Gates of different sessions never interact, so there is no global
serialization point. The registry is per process.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class _SessionGate:
    def __init__(self):
        self.condition = asyncio.Condition()
        self.readers = 0
        self.writer = False
        self.waiting_writers = 0
        self.users = 0


class SessionLockRegistry:
    """Async reader/writer gates keyed by session id"""

    def __init__(self):
        self._gates: dict[str, _SessionGate] = {}

    def _checkout(self, session_id: str) -> _SessionGate:
        gate = self._gates.get(session_id)
        if gate is None:
            gate = self._gates[session_id] = _SessionGate()
        gate.users += 1
        return gate

    def _checkin(self, session_id: str, gate: _SessionGate) -> None:
        gate.users -= 1
        if gate.users == 0 and self._gates.get(session_id) is gate:
            del self._gates[session_id]

    def is_busy(self, session_id: str) -> bool:
        gate = self._gates.get(session_id)
        return gate is not None and (gate.writer or gate.readers > 0)

    def __len__(self) -> int:
        return len(self._gates)

    @asynccontextmanager
    async def shared(self, session_id: str) -> AsyncIterator[None]:
        gate = self._checkout(session_id)
        try:
            async with gate.condition:
                # Queued writers go first so completion is not starved
                await gate.condition.wait_for(lambda: not gate.writer and gate.waiting_writers == 0)
                gate.readers += 1
            try:
                yield
            finally:
                async with gate.condition:
                    gate.readers -= 1
                    gate.condition.notify_all()
        finally:
            self._checkin(session_id, gate)

    @asynccontextmanager
    async def exclusive(self, session_id: str, wait: bool = True) -> AsyncIterator[bool]:
        """
        Hold the session exclusively.

        Yields True once acquired. With ``wait=False`` it yields False
        immediately if anyone holds the gate, and the body must skip its work.
        """
        gate = self._checkout(session_id)
        acquired = False
        try:
            async with gate.condition:
                busy = gate.writer or gate.readers > 0
                if wait or not busy:
                    gate.waiting_writers += 1
                    try:
                        await gate.condition.wait_for(lambda: not gate.writer and gate.readers == 0)
                    finally:
                        gate.waiting_writers -= 1
                        gate.condition.notify_all()
                    gate.writer = True
                    acquired = True
            try:
                yield acquired
            finally:
                if acquired:
                    async with gate.condition:
                        gate.writer = False
                        gate.condition.notify_all()
        finally:
            self._checkin(session_id, gate)
