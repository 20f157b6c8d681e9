"""
Background task handoff for the webhook path.

The HTTP route classifies synchronously and submits the rest of the work
here, so the delivery is acknowledged immediately. Every task is tracked
until it finishes; failures are logged and kept for inspection.
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


class TriggerDispatcher:
    """Runs submitted coroutines as tasks and records how they ended."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()
        self._failures: list[BaseException] = []
        self.submitted = 0
        self.completed = 0

    def submit(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task:
        """Schedule ``coro`` on the running loop and return its task."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        self.submitted += 1
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background task {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            self._failures.append(error)
            logger.error(
                f"Background task {task.get_name()} failed: {error}",
                exc_info=(type(error), error, error.__traceback__),
            )
            return
        self.completed += 1
        logger.info(f"Background task {task.get_name()} completed")

    async def wait_all(self) -> None:
        """Wait for every task in flight; their errors stay in ``failures``."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    @property
    def failures(self) -> list[BaseException]:
        return list(self._failures)

    def stats(self) -> dict[str, int]:
        return {
            "submitted": self.submitted,
            "completed": self.completed,
            "failed": len(self._failures),
            "pending": self.pending,
        }
