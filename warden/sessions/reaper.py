"""
WardenSessions - Background reaper.

Periodically flips sessions whose expiry has passed but are still flagged
active. Validation enforces expiry inline as well, so the reaper only
keeps listings and counts tidy.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from warden.utils.periodic import PeriodicTask

if TYPE_CHECKING:
    from .manager import SessionManager


class SessionReaper:
    """
    Hourly (by default) expiry sweep over the session store.

    Example:
        >>> reaper = SessionReaper(session_manager)
        >>> reaper.start()
        >>> ...
        >>> await reaper.stop()
    """

    def __init__(
        self,
        manager: SessionManager,
        interval: float | None = None,
        logger: logging.Logger | None = None,
    ):
        self.manager = manager
        self.logger = logger or logging.getLogger("warden.sessions.reaper")
        if interval is None:
            interval = manager.config.cleanup_interval.total_seconds()
        self.task = PeriodicTask("session-reaper", interval, self.reap, logger=self.logger)

    @property
    def running(self) -> bool:
        return self.task.running

    async def reap(self) -> int:
        """Run one sweep; returns the number of sessions expired."""
        count = await self.manager.cleanup_expired_sessions()
        self.logger.debug("Reaper sweep expired %d session(s)", count)
        return count

    def start(self) -> None:
        self.task.start()

    async def stop(self) -> None:
        await self.task.stop()
