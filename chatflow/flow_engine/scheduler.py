"""
Continuation schedulers for the execution run-loop.

The engine never runs a loop iteration on the caller's behalf directly: it
asks a scheduler to (re-)enter the loop for an execution id, now or at a
given instant. Only the execution id crosses this boundary; the loop always
reloads the persisted record, so any process can pick a continuation up.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)

Runner = Callable[[str], Awaitable[object]]


class ContinuationScheduler(ABC):
    def __init__(self):
        self._runner: Optional[Runner] = None

    def bind(self, runner: Runner) -> None:
        """Attach the coroutine that runs the loop for an execution id."""
        self._runner = runner

    @property
    def runner(self) -> Runner:
        if self._runner is None:
            raise RuntimeError(f"{type(self).__name__} is not bound to an engine")
        return self._runner

    @abstractmethod
    async def enqueue(self, execution_id: str) -> None:
        """Run the loop for execution_id as soon as possible."""

    @abstractmethod
    async def enqueue_at(self, execution_id: str, run_at: datetime) -> None:
        """Run the loop for execution_id not before run_at (UTC)."""

    async def drain(self) -> None:
        """Wait for in-process work to settle. No-op for remote schedulers."""


class AsyncioScheduler(ContinuationScheduler):
    """
    Background tasks on the running event loop.

    Delays are timer tasks (asyncio.sleep), so no worker is held while an
    execution waits. Pending timers are lost with the process; the
    resume-due sweep picks those executions up again.
    """

    def __init__(self):
        super().__init__()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def enqueue(self, execution_id: str) -> None:
        self._spawn(self._run(execution_id))

    async def enqueue_at(self, execution_id: str, run_at: datetime) -> None:
        self._spawn(self._run_later(execution_id, run_at))

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_later(self, execution_id: str, run_at: datetime) -> None:
        delay = (run_at - datetime.utcnow()).total_seconds()
        if delay > 0:
            await asyncio.sleep(delay)
        await self._run(execution_id)

    async def _run(self, execution_id: str) -> None:
        try:
            await self.runner(execution_id)
        except Exception:
            logger.exception(f"Background run of execution {execution_id} failed")

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class InlineScheduler(ContinuationScheduler):
    """
    Runs the loop inside the caller's await.

    Used when no background runner is available (Temporal disabled): the
    request that starts or resumes an execution drives it until it pauses,
    completes, fails or reaches a delay. Delayed continuations are only
    persisted; `flask flows resume-due` picks them up.
    """

    async def enqueue(self, execution_id: str) -> None:
        await self.runner(execution_id)

    async def enqueue_at(self, execution_id: str, run_at: datetime) -> None:
        logger.info(f"Execution {execution_id} deferred until {run_at.isoformat()}")
