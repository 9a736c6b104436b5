"""
Cleanup sweeper for abandoned sessions.

Sessions whose loop is not running and whose state has not been touched for
longer than the staleness window are deleted from the repository. Store
TTLs already expire idle entries; the sweeper covers repositories without a
TTL (the in-process registry) and long TTL settings.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from .core.config import settings
from .core.logging_config import get_logger
from .repos import AgentLoopStateRepository

logger = get_logger(__name__)

DEFAULT_STALENESS_SECONDS = 1800
DEFAULT_SWEEP_INTERVAL_SECONDS = 600
_ERROR_BACKOFF_SECONDS = 60


async def cleanup_inactive_agent_loops(
    repository: AgentLoopStateRepository,
    staleness_seconds: int = DEFAULT_STALENESS_SECONDS,
    now: Optional[datetime] = None,
) -> int:
    """
    Delete inactive sessions not updated within the staleness window.

    Args:
        repository: Repository to sweep.
        staleness_seconds: Age after which an inactive session is removed.
        now: Reference time (defaults to the current UTC time).

    Returns:
        Number of deleted sessions. Failures are logged and never raised.
    """
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(seconds=staleness_seconds)
    try:
        states = await repository.list_states()
    except Exception as e:
        logger.error(f"[CleanupSweeper] Failed to list agent loop states: {e}")
        return 0

    cleaned = 0
    for state in states:
        if state.is_active or state.updated_at >= cutoff:
            continue
        try:
            await repository.delete(state.session_id)
            cleaned += 1
        except Exception as e:
            logger.error(f"[CleanupSweeper] Failed to delete agent loop state {state.session_id}: {e}")

    if cleaned:
        logger.info(f"[CleanupSweeper] Cleaned up {cleaned} inactive agent loops")
    return cleaned


class CleanupSweeper:
    """Periodically removes inactive sessions from a repository."""

    def __init__(
        self,
        repository: Optional[AgentLoopStateRepository] = None,
        *,
        interval_seconds: Optional[int] = None,
        staleness_seconds: Optional[int] = None,
    ) -> None:
        """
        Initialize cleanup sweeper.

        Args:
            repository: Repository to sweep (None = the process-wide default repository)
            interval_seconds: Seconds between sweeps (None = use settings)
            staleness_seconds: Staleness window in seconds (None = use settings)
        """
        self._repository = repository
        self.interval_seconds = interval_seconds or settings.sweep_interval_seconds
        self.staleness_seconds = staleness_seconds or settings.staleness_seconds

        self._running = False
        self._task: Optional[asyncio.Task] = None

        self._sweep_count = 0
        self._total_cleaned = 0
        self._last_sweep_time: Optional[datetime] = None

    @property
    def repository(self) -> AgentLoopStateRepository:
        if self._repository is None:
            from .factory import get_default_deps

            self._repository = get_default_deps().repository
        return self._repository

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic sweep."""
        if self._running:
            logger.warning("[CleanupSweeper] Already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(f"[CleanupSweeper] Started with interval={self.interval_seconds}s")

    async def stop(self) -> None:
        """Stop the periodic sweep."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("[CleanupSweeper] Stopped")

    async def sweep_now(self, now: Optional[datetime] = None) -> int:
        """Run one sweep immediately and return the number of deleted sessions."""
        cleaned = await cleanup_inactive_agent_loops(self.repository, self.staleness_seconds, now)
        self._sweep_count += 1
        self._total_cleaned += cleaned
        self._last_sweep_time = datetime.now(timezone.utc)
        return cleaned

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.sweep_now()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[CleanupSweeper] Error in sweep loop: {e}")
                await asyncio.sleep(_ERROR_BACKOFF_SECONDS)

    def get_stats(self) -> dict:
        return {
            "running": self._running,
            "sweep_count": self._sweep_count,
            "total_cleaned": self._total_cleaned,
            "last_sweep_time": self._last_sweep_time.isoformat() if self._last_sweep_time else None,
            "interval_seconds": self.interval_seconds,
            "staleness_seconds": self.staleness_seconds,
        }
