"""
Flow Executor - the execution state machine and its run-loop

    running -> running   next node, checkpointed before it is dispatched
            -> paused    handler asked for user input
            -> completed no next node
            -> failed    NodeNotFound / UnknownNodeType / handler exception / cancel
    paused  -> running   resume_execution(user_input)

The loop is a loop over a persisted cursor (current_node_id + context), not a
live call stack: suspending means "checkpoint and return", and every re-entry
goes through run_execution(execution_id), which reloads the record.

Only one run of an execution id dispatches nodes at a time: runs on one
event loop queue on a per-execution lock, and every run must hold the
execution's run claim (a lease in the repository) across threads and
processes. Writes are additionally guarded by the record's optimistic version.
"""

import asyncio
import logging
import threading
import uuid
import weakref
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from chatflow.flow_engine.dispatcher import NodeDispatcher, NodeResult
from chatflow.flow_engine.exceptions import (
    ConcurrentModificationError,
    ExecutionNotFound,
    FlowEngineError,
    FlowInvalid,
    FlowNotFound,
    InvalidState,
    NodeNotFound,
)
from chatflow.flow_engine.execution import ExecutionStatus, FlowExecution, LAST_USER_INPUT
from chatflow.flow_engine.graph import Node, blocking_errors, validate_graph
from chatflow.flow_engine.repositories import ExecutionRepository, FlowRepository
from chatflow.flow_engine.scheduler import AsyncioScheduler, ContinuationScheduler

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = 'Cancelled by user'

# Cancel retries its optimistic write this many times before giving up
MAX_CANCEL_ATTEMPTS = 5

# Run claim lease; must outlast the slowest single node (API timeouts included)
RUN_CLAIM_SECONDS = 300


class ExecutionEngine:
    """
    Starts, drives, resumes and cancels flow executions.

    Usage:
        engine = ExecutionEngine(flows, executions, NodeDispatcher(messaging=...))
        execution = await engine.start_execution(flow_id, conversation_id, contact_id)
        ...
        await engine.resume_execution(execution.id, 'a@b.com')
    """

    def __init__(
        self,
        flows: FlowRepository,
        executions: ExecutionRepository,
        dispatcher: NodeDispatcher,
        scheduler: Optional[ContinuationScheduler] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
        claim_ttl: timedelta = timedelta(seconds=RUN_CLAIM_SECONDS),
    ):
        self.flows = flows
        self.executions = executions
        self.dispatcher = dispatcher
        self.scheduler = scheduler or AsyncioScheduler()
        self.scheduler.bind(self.run_execution)
        self.clock = clock
        self.claim_ttl = claim_ttl
        self._locks: 'weakref.WeakValueDictionary[tuple, asyncio.Lock]' = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, execution_id: str) -> asyncio.Lock:
        # asyncio locks belong to one event loop; runs on other loops are kept apart by the run claim
        key = (id(asyncio.get_running_loop()), execution_id)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[key] = lock
            return lock

    # ------------------------------------------------------------------
    # Produced operations
    # ------------------------------------------------------------------

    async def start_execution(
        self,
        flow_id: str,
        conversation_id: Optional[str],
        contact_id: Optional[str],
        initial_context: Optional[Dict[str, Any]] = None,
        tenant_id: Optional[str] = None,
    ) -> FlowExecution:
        """
        Create a RUNNING execution at the flow's start node and schedule it.

        Raises:
            FlowNotFound: Unknown flow id
            FlowInvalid: Graph has blocking validation errors; nothing is created
        """
        flow = await self.flows.get_flow(flow_id)
        if flow is None:
            raise FlowNotFound(flow_id)

        errors = blocking_errors(validate_graph(flow.graph))
        if errors:
            raise FlowInvalid(errors, flow_id=flow_id)

        start = flow.graph.start_node()
        now = self.clock()
        execution = FlowExecution(
            flow_id=flow.id,
            conversation_id=conversation_id,
            contact_id=contact_id,
            tenant_id=tenant_id or flow.tenant_id,
            current_node_id=start.id,
            context=dict(initial_context or {}),
            execution_path=[start.id],
            flow_version=flow.version,
            flow_snapshot=flow.snapshot(),
            created_at=now,
            updated_at=now,
        )
        await self.executions.create(execution)
        logger.info(f"Started execution {execution.id} of flow {flow.id} (v{flow.version})")

        await self.scheduler.enqueue(execution.id)
        return await self.get_execution(execution.id)

    async def resume_execution(self, execution_id: str, user_input: Any) -> FlowExecution:
        """
        Feed user input to a PAUSED execution and re-enter the loop.

        The input is stored as context.lastUserInput; the paused node consumes
        (and clears) it when re-evaluated.

        Raises:
            ExecutionNotFound: Unknown execution id
            InvalidState: Execution is not PAUSED; the record is untouched
        """
        async with self._lock_for(execution_id):
            execution = await self.get_execution(execution_id)
            if execution.status != ExecutionStatus.PAUSED.value:
                raise InvalidState(execution_id, execution.status, ExecutionStatus.PAUSED.value)

            execution.context[LAST_USER_INPUT] = user_input
            execution.status = ExecutionStatus.RUNNING.value
            await self.executions.update(execution)
            logger.info(f"Resumed execution {execution_id} at node {execution.current_node_id}")

        await self.scheduler.enqueue(execution_id)
        return await self.get_execution(execution_id)

    async def cancel_execution(self, execution_id: str) -> FlowExecution:
        """
        Force FAILED with "Cancelled by user". Terminal executions are returned
        unchanged, so cancelling twice equals cancelling once.

        Cancel does not wait for a running loop: the loop notices the status
        change after its current handler returns.
        """
        for _ in range(MAX_CANCEL_ATTEMPTS):
            execution = await self.get_execution(execution_id)
            if execution.is_terminal:
                return execution

            execution.status = ExecutionStatus.FAILED.value
            execution.error_message = CANCELLED_MESSAGE
            execution.completed_at = self.clock()
            execution.resume_at = None
            try:
                updated = await self.executions.update(execution)
            except ConcurrentModificationError:
                logger.info(f"Cancel of execution {execution_id} raced a write, retrying")
                continue
            logger.info(f"Execution {execution_id} cancelled")
            return updated

        raise ConcurrentModificationError(execution_id)

    async def get_execution(self, execution_id: str) -> FlowExecution:
        execution = await self.executions.get(execution_id)
        if execution is None:
            raise ExecutionNotFound(execution_id)
        return execution

    async def get_executions_by_conversation(self, conversation_id: str) -> List[FlowExecution]:
        return await self.executions.list_by_conversation(conversation_id)

    async def get_execution_logs(self, execution_id: str) -> Dict[str, Any]:
        execution = await self.get_execution(execution_id)

        duration_ms = None
        if execution.completed_at and execution.created_at:
            duration_ms = int((execution.completed_at - execution.created_at).total_seconds() * 1000)

        return {
            'executionId': execution.id,
            'flowId': execution.flow_id,
            'flowName': execution.flow_name,
            'flowVersion': execution.flow_version,
            'status': execution.status,
            'currentNodeId': execution.current_node_id,
            'executionPath': execution.execution_path,
            'context': execution.context,
            'errorMessage': execution.error_message,
            'startedAt': execution.created_at.isoformat() if execution.created_at else None,
            'completedAt': execution.completed_at.isoformat() if execution.completed_at else None,
            'duration': duration_ms,
            'steps': execution.step_log,
        }

    async def get_execution_replay(self, execution_id: str) -> Dict[str, Any]:
        """
        Render the execution path against the pinned flow snapshot.

        Each path step carries the node's label, type and data plus the
        dispatch attempts recorded for it (an input node retried three times
        has three attempts).
        """
        execution = await self.get_execution(execution_id)
        graph = execution.graph

        attempts: Dict[int, List[Dict[str, Any]]] = {}
        for entry in execution.step_log:
            attempts.setdefault(entry.get('pathIndex'), []).append(entry)

        steps = []
        for index, node_id in enumerate(execution.execution_path):
            node = graph.get_node(node_id)
            steps.append({
                'step': index + 1,
                'nodeId': node_id,
                'nodeType': node.type if node else None,
                'nodeLabel': node.label if node else None,
                'data': node.data if node else None,
                'attempts': attempts.get(index, []),
            })

        return {
            'execution': {
                'id': execution.id,
                'status': execution.status,
                'startedAt': execution.created_at.isoformat() if execution.created_at else None,
                'completedAt': execution.completed_at.isoformat() if execution.completed_at else None,
                'errorMessage': execution.error_message,
            },
            'flow': {
                'id': execution.flow_id,
                'name': execution.flow_name,
                'version': execution.flow_version,
            },
            'steps': steps,
        }

    async def validate_flow(self, flow_id: str) -> Dict[str, Any]:
        flow = await self.flows.get_flow(flow_id)
        if flow is None:
            raise FlowNotFound(flow_id)

        errors = validate_graph(flow.graph)
        return {
            'flowId': flow.id,
            'valid': not blocking_errors(errors),
            'errors': [error.to_dict() for error in errors],
        }

    async def resume_due_executions(self, now: Optional[datetime] = None) -> List[str]:
        """
        Re-dispatch RUNNING executions whose continuation is due.

        Picks up delays whose timer was lost and loops interrupted by a
        process restart (their claim expires with the process). Executions
        another runner holds a live claim on are left alone. Returns the ids
        handed to the scheduler.
        """
        now = now or self.clock()
        due = await self.executions.list_runnable(now)
        for execution in due:
            logger.info(f"Re-dispatching execution {execution.id} at node {execution.current_node_id}")
            await self.scheduler.enqueue(execution.id)
        return [execution.id for execution in due]

    # ------------------------------------------------------------------
    # Run-loop
    # ------------------------------------------------------------------

    async def run_execution(self, execution_id: str) -> FlowExecution:
        """
        Drive a RUNNING execution until it pauses, completes, fails or
        reaches a delay.

        Only the holder of the execution's run claim dispatches nodes; a run
        that cannot take the claim returns the record untouched.
        Handler failures are recorded on the execution, never raised.
        """
        async with self._lock_for(execution_id):
            owner = uuid.uuid4().hex
            if not await self._claim(execution_id, owner):
                execution = await self.get_execution(execution_id)
                logger.info(f"Execution {execution_id} is being run by {execution.claimed_by}, skipping")
                return execution

            try:
                execution = await self._run_claimed(execution_id, owner)
            finally:
                await self.executions.release(execution_id, owner)

        await self._hand_off(execution_id)
        return execution

    async def _claim(self, execution_id: str, owner: str) -> bool:
        now = self.clock()
        return await self.executions.claim(execution_id, owner, now + self.claim_ttl, now)

    async def _hand_off(self, execution_id: str) -> None:
        # A resume that lost the claim to this run while it was finishing left the record runnable
        current = await self.executions.get(execution_id)
        now = self.clock()
        if current is not None and current.is_due(now) and not current.is_claimed(now):
            logger.info(f"Execution {execution_id} became runnable while claimed, re-dispatching")
            await self.scheduler.enqueue(execution_id)

    async def _run_claimed(self, execution_id: str, owner: str) -> FlowExecution:
        execution = await self.get_execution(execution_id)

        if execution.status != ExecutionStatus.RUNNING.value:
            logger.info(f"Execution {execution_id} is {execution.status}, nothing to run")
            return execution

        if execution.resume_at and execution.resume_at > self.clock():
            logger.info(f"Execution {execution_id} is delayed until {execution.resume_at.isoformat()}")
            return execution

        execution.resume_at = None
        graph = execution.graph
        first = True

        while True:
            if not first and not await self._claim(execution_id, owner):
                logger.warning(f"Execution {execution_id} lost its run claim, stopping loop")
                return await self.get_execution(execution_id)
            first = False

            node = graph.get_node(execution.current_node_id)
            if node is None:
                return await self._fail(execution, NodeNotFound(execution.current_node_id).message)

            started_at = self.clock()
            try:
                result = await self.dispatcher.execute(node, execution, graph)
            except FlowEngineError as e:
                self._record_step(execution, node, started_at, 'failed', error=e.message)
                return await self._fail(execution, e.message)

            # A cancel (or any other writer) may have landed while the handler ran
            current = await self.executions.get(execution_id)
            if current is None or current.version != execution.version:
                logger.info(f"Execution {execution_id} changed during node {node.id}, stopping loop")
                return current

            outcome = self._apply(execution, result)
            self._record_step(execution, node, started_at, outcome)

            try:
                execution = await self.executions.update(execution)
            except ConcurrentModificationError:
                logger.warning(f"Stale checkpoint for execution {execution_id}, stopping loop")
                return await self.get_execution(execution_id)

            if outcome == 'paused':
                logger.info(f"Execution {execution_id} paused at node {node.id}")
                return execution
            if outcome == 'completed':
                logger.info(f"Execution {execution_id} completed")
                return execution
            if outcome == 'delayed':
                logger.info(
                    f"Execution {execution_id} delayed until {execution.resume_at.isoformat()} "
                    f"before node {execution.current_node_id}"
                )
                await self.scheduler.enqueue_at(execution_id, execution.resume_at)
                return execution

    def _apply(self, execution: FlowExecution, result: NodeResult) -> str:
        """Merge a handler's result into the execution; returns the step outcome."""
        execution.context.update(result.context_patch or {})

        if result.wait_for_input:
            execution.status = ExecutionStatus.PAUSED.value
            return 'paused'

        if result.next_node_id:
            execution.current_node_id = result.next_node_id
            execution.execution_path.append(result.next_node_id)
            if result.delay_seconds:
                execution.resume_at = self.clock() + timedelta(seconds=result.delay_seconds)
                return 'delayed'
            return 'advanced'

        execution.status = ExecutionStatus.COMPLETED.value
        execution.completed_at = self.clock()
        return 'completed'

    def _record_step(
        self,
        execution: FlowExecution,
        node: Node,
        started_at: datetime,
        outcome: str,
        error: Optional[str] = None,
    ) -> None:
        # pathIndex: position of the dispatched node in execution_path
        path_index = len(execution.execution_path) - 1
        if outcome in ('advanced', 'delayed'):
            path_index -= 1

        entry = {
            'nodeId': node.id,
            'nodeType': node.type,
            'pathIndex': path_index,
            'startedAt': started_at.isoformat(),
            'durationMs': int((self.clock() - started_at).total_seconds() * 1000),
            'outcome': outcome,
        }
        if error:
            entry['error'] = error
        execution.step_log.append(entry)

    async def _fail(self, execution: FlowExecution, message: str) -> FlowExecution:
        logger.error(f"Execution {execution.id} failed at node {execution.current_node_id}: {message}")
        execution.status = ExecutionStatus.FAILED.value
        execution.error_message = message
        execution.completed_at = self.clock()
        try:
            return await self.executions.update(execution)
        except ConcurrentModificationError:
            logger.warning(f"Execution {execution.id} changed before its failure was recorded")
            return await self.get_execution(execution.id)
