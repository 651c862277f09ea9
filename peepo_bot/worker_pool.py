"""
Bounded pool for command handlers.

spawn() returns immediately; the task waits for a slot on its own, so the
dispatch loop never blocks on a slow handler. A failing handler is logged
and does not affect the loop or other handlers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 32


class HandlerPool:
    """
    Supervised asyncio tasks with a concurrency limit.

    Args:
        max_concurrency: Handlers allowed to run at the same time
    """

    def __init__(self, max_concurrency: int = DEFAULT_MAX_CONCURRENCY):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._closed = False
        self.failures = 0

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        name: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        """
        Schedule func(*args) on the pool.

        Returns:
            The task, or None if the pool is already draining
        """
        if self._closed:
            logger.warning(f"Pool closed, dropping handler {name or func.__name__}")
            return None

        task = asyncio.create_task(self._run(func, *args), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    async def _run(self, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        async with self._semaphore:
            return await func(*args)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.failures += 1
            logger.error(
                f"Handler {task.get_name()} failed: {type(error).__name__}: {error}",
                exc_info=error,
            )

    async def join(self) -> None:
        """Wait until every spawned handler has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def drain(self, timeout: float) -> int:
        """
        Stop accepting handlers and wait up to timeout seconds for running ones.

        Returns:
            Number of handlers cancelled because they overran the grace period
        """
        self._closed = True
        if not self._tasks:
            return 0

        pending = list(self._tasks)
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning(f"Cancelled {len(still_running)} handler(s) after {timeout}s grace")
        return len(still_running)
