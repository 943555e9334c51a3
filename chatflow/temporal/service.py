"""
Temporal continuation scheduler.

Each continuation (immediate or delayed) is one FlowContinuationWorkflow:
a durable timer for the delay, then the continue_flow_execution activity
that runs the loop on a worker.
"""
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional
from uuid import uuid4

from temporalio.client import Client

from chatflow.flow_engine.scheduler import ContinuationScheduler
from .client import get_temporal_client
from .config import TemporalConfig, WorkflowNames, get_config

logger = logging.getLogger(__name__)


class TemporalScheduler(ContinuationScheduler):
    """
    Usage:
        engine = ExecutionEngine(flows, executions, dispatcher, scheduler=TemporalScheduler())
    """

    def __init__(
        self,
        client_factory: Callable[[], Awaitable[Client]] = get_temporal_client,
        config: Optional[TemporalConfig] = None,
    ):
        super().__init__()
        self._client_factory = client_factory
        self.config = config or get_config()

    async def enqueue(self, execution_id: str) -> None:
        await self._start(execution_id, 0)

    async def enqueue_at(self, execution_id: str, run_at: datetime) -> None:
        delay = max(0.0, (run_at - datetime.utcnow()).total_seconds())
        await self._start(execution_id, delay)

    async def _start(self, execution_id: str, delay_seconds: float) -> str:
        client = await self._client_factory()

        # Unique per continuation: one execution gets one workflow per resume/delay
        workflow_id = f"flow_exec_{execution_id}_{uuid4().hex[:8]}"

        await client.start_workflow(
            WorkflowNames.FLOW_CONTINUATION,
            args=[execution_id, delay_seconds],
            id=workflow_id,
            task_queue=self.config.task_queue,
        )

        logger.info(f"Continuation {workflow_id} scheduled in {delay_seconds:.0f}s for execution {execution_id}")
        return workflow_id
