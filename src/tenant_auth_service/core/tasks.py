"""Background Task Runner

Fire-and-forget execution for best-effort side effects (welcome email,
analytics, profile creation, last-login updates). Callers never await
the work and never see its failures; failures are reported on the
"tenant_auth_service.background" logger together with the context the
caller attached.
"""

import asyncio
import logging
from typing import Any, Awaitable, Set

logger = logging.getLogger("tenant_auth_service.background")


class BackgroundTaskRunner:
    """Tracks spawned side-effect tasks so they can be drained on shutdown"""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable[Any], name: str, **context) -> asyncio.Task:
        """Schedule a coroutine without blocking the caller

        Args:
            coro: Side-effect coroutine
            name: Short task name used in log messages
            **context: Identifiers logged on failure (user_id, organization_id, ...)

        Returns:
            The scheduled task
        """
        task = asyncio.create_task(self._run(coro, name, context), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Awaitable[Any], name: str, context: dict) -> None:
        try:
            await coro
            logger.debug(f"Background task '{name}' completed {context}")
        except asyncio.CancelledError:
            logger.warning(f"Background task '{name}' cancelled {context}")
            raise
        except Exception as e:
            logger.error(f"Background task '{name}' failed {context}: {e}", exc_info=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for all in-flight tasks to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
