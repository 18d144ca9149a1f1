from __future__ import annotations

import asyncio
from typing import List, Optional

from cmcimock.logging import get_logger
from cmcimock.service.result_cache import ResultCacheService

logger = get_logger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60


class ResultSetSweeper:
    """Background task that evicts expired retained result sets.

    Read paths already treat expired sets as missing, so the sweep only keeps
    memory from holding sets nobody comes back for.
    """

    def __init__(
        self,
        result_cache: ResultCacheService,
        *,
        interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self.result_cache = result_cache
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    def sweep_once(self) -> List[str]:
        expired = self.result_cache.sweep()
        if expired:
            logger.info("result_sets_swept", count=len(expired))
        return expired

    async def start(self) -> None:
        if self._running:
            logger.warning("result_set_sweeper_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("result_set_sweeper_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("result_set_sweeper_stopped")

    async def _run_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.sweep_once()
            except Exception as exc:
                logger.error(
                    "result_set_sweep_failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
