import asyncio
import logging
from collections import deque

logger = logging.getLogger(__name__)

MAX_RECORDED_FAILURES = 100


class BackgroundTasks:
    """Fire-and-forget work kept off the resolution critical path.

    Tasks are referenced until they finish. Failures are logged, counted in
    `failure_count` and the most recent ones kept in `failures` as
    `(name, exception)` pairs.
    """

    def __init__(self, max_failures: int = MAX_RECORDED_FAILURES):
        self._tasks: set[asyncio.Task] = set()
        self.failures: deque[tuple[str, BaseException]] = deque(maxlen=max_failures)
        self.failure_count = 0

    def submit(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background task {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {type(error).__name__} - {error}"
            )
            self.failures.append((task.get_name(), error))
            self.failure_count += 1

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
