"""Background eviction of idle upload sessions"""

import asyncio
import time
from typing import List, Optional
import logging

from .errors import SessionNotFoundError
from .session import SessionRegistry
from .tempstore import TempChunkStore

logger = logging.getLogger(__name__)


class CleanupSweeper:
    """
    Evicts sessions idle for longer than interval, every interval seconds.
    This is the only path that reclaims uploads abandoned mid-stream.
    """

    def __init__(self, registry: SessionRegistry, store: TempChunkStore,
                 interval: float = 3600.0):
        self.registry = registry
        self.store = store
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    def _is_stale(self, last_modified: float, now: float) -> bool:
        return now - last_modified > self.interval

    async def sweep(self, now: Optional[float] = None) -> List[str]:
        """Run one eviction pass and return the evicted session ids"""
        now = time.time() if now is None else now
        evicted = []

        for session_id in self.registry.session_ids():
            session = self.registry.get(session_id)
            if session is None or not self._is_stale(session.last_modified, now):
                continue

            try:
                async with self.registry.locked(session_id) as session:
                    # Re-check: a chunk may have landed while we waited
                    if not self._is_stale(session.last_modified, now):
                        continue
                    # Every index: a failed write may have left a file behind
                    await self.store.discard(session_id, range(session.total_chunks))
                    self.registry.close(session)
            except SessionNotFoundError:
                continue

            evicted.append(session_id)
            logger.info(
                f"Evicted idle session {session_id} ({session.file_name}, "
                f"{len(session.received_chunks)}/{session.total_chunks} chunks)"
            )

        if evicted:
            logger.info(f"Cleanup sweep evicted {len(evicted)} sessions")
        return evicted

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Cleanup sweep failed: {e}", exc_info=True)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())
            logger.info(f"Cleanup sweeper running every {self.interval}s")
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
