"""
Aggregation Dispatcher

Runs tagging side effects (reaction, reply, per-tag aggregation) as tracked
background asyncio tasks with bounded concurrency. The submitting request
never waits for them; each job's outcome is logged and counted.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, asdict
from typing import Any, Awaitable, Callable, Dict, Set

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[Any]]


@dataclass
class DispatcherStats:
    submitted: int = 0
    completed: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class AggregationDispatcher:
    """Bounded fire-and-forget job runner."""

    def __init__(self, max_concurrency: int = 4):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks: Set[asyncio.Task] = set()
        self.stats = DispatcherStats()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, name: str, factory: JobFactory) -> asyncio.Task:
        """
        Schedule a job on the running event loop.

        Args:
            name: Label used in logs
            factory: Zero-argument callable returning the coroutine to run
        """
        task = asyncio.create_task(self._run(name, factory), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.stats.submitted += 1
        return task

    async def _run(self, name: str, factory: JobFactory) -> None:
        async with self._semaphore:
            start_time = time.time()
            try:
                await factory()
            except asyncio.CancelledError:
                logger.warning(f"Job {name} cancelled")
                raise
            except Exception as e:
                self.stats.failed += 1
                logger.error(f"Job {name} failed: {e}", exc_info=True)
                return
            self.stats.completed += 1
            logger.debug(f"Job {name} completed in {time.time() - start_time:.2f}s")

    async def drain(self) -> None:
        """Wait until every submitted job, including ones submitted meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
