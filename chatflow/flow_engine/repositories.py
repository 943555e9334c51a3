"""
Repository interfaces for flows and executions, plus in-memory backends.

Execution writes are atomic single-record updates guarded by the record's
version: update() succeeds only if the stored version equals the caller's,
and bumps it. A stale writer gets ConcurrentModificationError.

Running an execution additionally requires its run claim: a lease
(claimed_by, claimed_until) taken with one conditional write, so two
processes never dispatch nodes of the same execution at once. Claims live
beside the versioned state; update() never reads or writes them.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

from chatflow.flow_engine.exceptions import ConcurrentModificationError, ExecutionNotFound
from chatflow.flow_engine.execution import FlowExecution
from chatflow.flow_engine.graph import Flow, FlowStatus


class FlowRepository(ABC):
    @abstractmethod
    async def get_flow(self, flow_id: str) -> Optional[Flow]: ...

    @abstractmethod
    async def list_active_flows(self, tenant_id: str) -> List[Flow]:
        """Active flows of a tenant, in a stable order (creation order)."""


class ExecutionRepository(ABC):
    @abstractmethod
    async def create(self, execution: FlowExecution) -> FlowExecution: ...

    @abstractmethod
    async def get(self, execution_id: str) -> Optional[FlowExecution]: ...

    @abstractmethod
    async def update(self, execution: FlowExecution) -> FlowExecution:
        """
        Persist execution if its version is current.

        Returns:
            The stored execution with its new version

        Raises:
            ConcurrentModificationError: If the stored version moved on
        """

    @abstractmethod
    async def claim(self, execution_id: str, owner: str, until: datetime, now: datetime) -> bool:
        """
        Take (or renew) the run claim of an execution until `until`.

        Returns:
            False if another owner holds a claim that is still live at `now`

        Raises:
            ExecutionNotFound: Unknown execution id
        """

    @abstractmethod
    async def release(self, execution_id: str, owner: str) -> None:
        """Drop the run claim if `owner` still holds it."""

    @abstractmethod
    async def list_by_conversation(self, conversation_id: str) -> List[FlowExecution]:
        """Executions of a conversation, newest first."""

    @abstractmethod
    async def list_runnable(self, now: datetime) -> List[FlowExecution]:
        """Running executions whose continuation is due at `now` and nobody is running."""


class InMemoryFlowRepository(FlowRepository):
    def __init__(self, flows: Optional[List[Flow]] = None):
        self._flows: Dict[str, Flow] = {}
        for flow in flows or []:
            self.add(flow)

    def add(self, flow: Flow) -> Flow:
        self._flows[flow.id] = flow
        return flow

    async def get_flow(self, flow_id: str) -> Optional[Flow]:
        return self._flows.get(flow_id)

    async def list_active_flows(self, tenant_id: str) -> List[Flow]:
        return [
            flow for flow in self._flows.values()
            if flow.tenant_id == tenant_id and flow.status == FlowStatus.ACTIVE.value
        ]


class InMemoryExecutionRepository(ExecutionRepository):
    """
    Stores copies so callers never share mutable state with the store.
    Safe to share between threads (one event loop per thread).
    """

    def __init__(self):
        self._executions: Dict[str, FlowExecution] = {}
        self._mutex = threading.Lock()

    async def create(self, execution: FlowExecution) -> FlowExecution:
        with self._mutex:
            self._executions[execution.id] = execution.copy()
        return execution

    async def get(self, execution_id: str) -> Optional[FlowExecution]:
        with self._mutex:
            stored = self._executions.get(execution_id)
            return stored.copy() if stored else None

    async def update(self, execution: FlowExecution) -> FlowExecution:
        with self._mutex:
            stored = self._executions.get(execution.id)
            if stored is None:
                raise ExecutionNotFound(execution.id)
            if stored.version != execution.version:
                raise ConcurrentModificationError(execution.id, expected_version=execution.version)

            execution.version += 1
            execution.updated_at = datetime.utcnow()
            replacement = execution.copy()
            replacement.claimed_by = stored.claimed_by
            replacement.claimed_until = stored.claimed_until
            self._executions[execution.id] = replacement
        return execution

    async def claim(self, execution_id: str, owner: str, until: datetime, now: datetime) -> bool:
        with self._mutex:
            stored = self._executions.get(execution_id)
            if stored is None:
                raise ExecutionNotFound(execution_id)
            if stored.is_claimed(now) and stored.claimed_by != owner:
                return False
            stored.claimed_by = owner
            stored.claimed_until = until
            return True

    async def release(self, execution_id: str, owner: str) -> None:
        with self._mutex:
            stored = self._executions.get(execution_id)
            if stored is not None and stored.claimed_by == owner:
                stored.claimed_by = None
                stored.claimed_until = None

    async def list_by_conversation(self, conversation_id: str) -> List[FlowExecution]:
        with self._mutex:
            matches = [
                execution.copy() for execution in self._executions.values()
                if execution.conversation_id == conversation_id
            ]
        return sorted(matches, key=lambda e: e.created_at, reverse=True)

    async def list_runnable(self, now: datetime) -> List[FlowExecution]:
        with self._mutex:
            return [
                execution.copy() for execution in self._executions.values()
                if execution.is_due(now) and not execution.is_claimed(now)
            ]
