import asyncio
import logging
from typing import Awaitable, Set

logger = logging.getLogger(__name__)


class TaskDispatcher:
    """Fire-and-forget runner for side effects that must never fail a request"""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def __call__(self, coro: Awaitable, description: str) -> asyncio.Task:
        task = asyncio.ensure_future(self._guard(coro, description))
        # keep a reference until done, the loop only holds weak ones
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coro: Awaitable, description: str) -> None:
        try:
            result = await coro
            if result is False:
                logger.warning(f"{description}: not delivered")
        except Exception as e:
            logger.error(f"{description} failed: {e}")

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


dispatcher = TaskDispatcher()
