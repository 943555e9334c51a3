"""
FlowExecution - the mutable run record of one flow against one conversation.

Lifecycle:
    running -> running (next node) | paused (waiting for input)
            | completed (no next node) | failed (handler error / cancel)
    paused  -> running (resume with user input)

completed and failed are terminal; a retry creates a new execution.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from chatflow.flow_engine.graph import FlowGraph


class ExecutionStatus(str, Enum):
    """Estados possíveis de uma execução de flow"""
    RUNNING = 'running'
    PAUSED = 'paused'
    COMPLETED = 'completed'
    FAILED = 'failed'


TERMINAL_STATUSES = (ExecutionStatus.COMPLETED.value, ExecutionStatus.FAILED.value)

LAST_USER_INPUT = 'lastUserInput'


@dataclass
class FlowExecution:
    flow_id: str
    conversation_id: Optional[str]
    contact_id: Optional[str]
    tenant_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: str = ExecutionStatus.RUNNING.value
    current_node_id: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    execution_path: List[str] = field(default_factory=list)
    error_message: Optional[str] = None

    # Pinned copy of the flow definition this run started against
    flow_version: int = 1
    flow_snapshot: Dict[str, Any] = field(default_factory=dict)

    # Delay continuation: the run-loop must not continue before this instant
    resume_at: Optional[datetime] = None

    # Per node: {nodeId, nodeType, startedAt, durationMs, outcome}
    step_log: List[Dict[str, Any]] = field(default_factory=list)

    # Optimistic locking version
    version: int = 1

    # Run claim: only the holder dispatches nodes. Not part of the versioned state.
    claimed_by: Optional[str] = None
    claimed_until: Optional[datetime] = None

    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_claimed(self, now: datetime) -> bool:
        return bool(self.claimed_by) and self.claimed_until is not None and self.claimed_until > now

    def is_due(self, now: datetime) -> bool:
        """Running and not held back by a delay."""
        return self.status == ExecutionStatus.RUNNING.value and (self.resume_at is None or self.resume_at <= now)

    @property
    def graph(self) -> FlowGraph:
        return FlowGraph.from_dict(self.flow_snapshot.get('graph'))

    @property
    def flow_name(self) -> Optional[str]:
        return self.flow_snapshot.get('name')

    def copy(self) -> 'FlowExecution':
        return copy.deepcopy(self)

    def to_dict(self, include_snapshot: bool = False) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'flowId': self.flow_id,
            'flowVersion': self.flow_version,
            'tenantId': self.tenant_id,
            'conversationId': self.conversation_id,
            'contactId': self.contact_id,
            'status': self.status,
            'currentNodeId': self.current_node_id,
            'context': self.context,
            'executionPath': self.execution_path,
            'errorMessage': self.error_message,
            'resumeAt': self.resume_at.isoformat() if self.resume_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
            'completedAt': self.completed_at.isoformat() if self.completed_at else None,
        }
        if include_snapshot:
            result['flowSnapshot'] = self.flow_snapshot
            result['stepLog'] = self.step_log
        return result
