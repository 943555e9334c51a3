"""
Flow Continuation Workflow - runs an execution's loop on a worker, optionally
after a durable delay.
"""

import asyncio
from datetime import timedelta
from typing import Dict, Any
from temporalio import workflow
from temporalio.common import RetryPolicy

# Import activities
with workflow.unsafe.imports_passed_through():
    from chatflow.temporal.activities.flow_activities import continue_flow_execution

ACTIVITY_TIMEOUT = timedelta(minutes=5)


@workflow.defn(name='FlowContinuationWorkflow')
class FlowContinuationWorkflow:
    """
    Sleeping here is a Temporal timer: no worker is held while it waits, and
    it survives worker restarts.
    """

    @workflow.run
    async def run(self, execution_id: str, delay_seconds: float = 0) -> Dict[str, Any]:
        workflow.logger.info(f"Continuation for execution {execution_id} (delay {delay_seconds}s)")

        if delay_seconds > 0:
            await asyncio.sleep(delay_seconds)

        retry_policy = RetryPolicy(
            initial_interval=timedelta(seconds=1),
            maximum_interval=timedelta(seconds=60),
            maximum_attempts=3,
            non_retryable_error_types=["ExecutionNotFound"],
        )

        return await workflow.execute_activity(
            continue_flow_execution,
            args=[execution_id],
            start_to_close_timeout=ACTIVITY_TIMEOUT,
            retry_policy=retry_policy,
        )
