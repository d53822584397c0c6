"""
Periodic background tasks.

A ``PeriodicTask`` runs an async job on a fixed interval until stopped.
Used by the session reaper and the password-spray sweep.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable


class PeriodicTask:
    """
    Run ``job`` every ``interval`` seconds on the running event loop.

    A failing run is logged and the loop continues with the next tick;
    ``run_once`` propagates errors to its caller.

    Example:
        >>> task = PeriodicTask("reaper", 3600, manager.cleanup_expired_sessions)
        >>> task.start()
        >>> ...
        >>> await task.stop()
    """

    def __init__(
        self,
        name: str,
        interval: float,
        job: Callable[[], Awaitable[Any]],
        logger: logging.Logger | None = None,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.name = name
        self.interval = interval
        self.job = job
        self.logger = logger or logging.getLogger("warden.tasks")
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background loop (no-op if already running)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"warden:{self.name}")
        self.logger.debug("Started periodic task %s (every %ss)", self.name, self.interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self.logger.debug("Stopped periodic task %s", self.name)

    async def run_once(self) -> Any:
        """Run the job immediately, outside the schedule."""
        return await self.job()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.job()
            except asyncio.CancelledError:
                raise
            except Exception:
                self.logger.exception("Periodic task %s failed", self.name)
