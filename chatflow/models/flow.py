"""
Flow Models - persisted flow definitions and flow executions
"""
from chatflow.database import db
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
import uuid

from chatflow.flow_engine.execution import FlowExecution
from chatflow.flow_engine.graph import Flow, FlowGraph, FlowStatus, TriggerConfig

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = db.JSON().with_variant(JSONB(), 'postgresql')


def _new_id():
    return str(uuid.uuid4())


class FlowDefinition(db.Model):
    """
    Flow - chatbot flow authored in the visual builder.
    Each saved change bumps `version`; executions pin a snapshot of it.
    """
    __tablename__ = 'flows'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    tenant_id = db.Column(db.String(36), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)

    status = db.Column(db.String(20), nullable=False, default=FlowStatus.DRAFT.value)  # draft, active, inactive
    version = db.Column(db.Integer, nullable=False, default=1)

    # {nodes: [...], edges: [...]}
    graph = db.Column(JSONType, nullable=False, default=dict)
    # {type, keywords, conditions}
    trigger_config = db.Column(JSONType)

    __table_args__ = (
        db.Index('idx_flows_tenant_status', 'tenant_id', 'status'),
    )

    def to_domain(self) -> Flow:
        return Flow(
            id=self.id,
            tenant_id=self.tenant_id,
            name=self.name,
            graph=FlowGraph.from_dict(self.graph),
            status=self.status,
            version=self.version or 1,
            trigger_config=TriggerConfig.from_dict(self.trigger_config),
        )

    @classmethod
    def from_domain(cls, flow: Flow) -> 'FlowDefinition':
        return cls(
            id=flow.id,
            tenant_id=flow.tenant_id,
            name=flow.name,
            status=flow.status,
            version=flow.version,
            graph=flow.graph.to_dict(),
            trigger_config=flow.trigger_config.to_dict() if flow.trigger_config else None,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'description': self.description,
            'status': self.status,
            'version': self.version,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class FlowExecutionRecord(db.Model):
    """
    Flow Execution - one run of a flow against a conversation.
    Written once per node step; `version` guards every write (optimistic lock).
    """
    __tablename__ = 'flow_executions'

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime)

    flow_id = db.Column(db.String(36), db.ForeignKey('flows.id', ondelete='CASCADE'), nullable=False)
    flow_version = db.Column(db.Integer, nullable=False, default=1)
    flow_snapshot = db.Column(JSONType, nullable=False, default=dict)

    tenant_id = db.Column(db.String(36))
    conversation_id = db.Column(db.String(36))
    contact_id = db.Column(db.String(36))

    # running, paused, completed, failed
    status = db.Column(db.String(20), nullable=False)
    current_node_id = db.Column(db.String(255))
    context = db.Column(JSONType, nullable=False, default=dict)
    execution_path = db.Column(JSONType, nullable=False, default=list)
    step_log = db.Column(JSONType, nullable=False, default=list)
    error_message = db.Column(db.Text)

    # Delay continuation: not due before this instant
    resume_at = db.Column(db.DateTime)

    # Optimistic locking version
    version = db.Column(db.Integer, nullable=False, default=1)

    # Run claim (lease) of the runner currently dispatching nodes; outside the versioned state
    claimed_by = db.Column(db.String(64))
    claimed_until = db.Column(db.DateTime)

    flow = db.relationship('FlowDefinition')

    __table_args__ = (
        db.Index('idx_flow_executions_conversation', 'conversation_id', 'created_at'),
        db.Index('idx_flow_executions_status_resume', 'status', 'resume_at'),
        db.Index('idx_flow_executions_flow_id', 'flow_id'),
    )

    @staticmethod
    def values_from(execution: FlowExecution) -> dict:
        """Column values of an execution, for inserts and guarded updates."""
        return {
            'flow_id': execution.flow_id,
            'flow_version': execution.flow_version,
            'flow_snapshot': execution.flow_snapshot,
            'tenant_id': execution.tenant_id,
            'conversation_id': execution.conversation_id,
            'contact_id': execution.contact_id,
            'status': execution.status,
            'current_node_id': execution.current_node_id,
            'context': execution.context,
            'execution_path': execution.execution_path,
            'step_log': execution.step_log,
            'error_message': execution.error_message,
            'resume_at': execution.resume_at,
            'completed_at': execution.completed_at,
        }

    @classmethod
    def from_domain(cls, execution: FlowExecution) -> 'FlowExecutionRecord':
        return cls(
            id=execution.id,
            version=execution.version,
            created_at=execution.created_at,
            updated_at=execution.updated_at,
            **cls.values_from(execution),
        )

    def to_domain(self) -> FlowExecution:
        return FlowExecution(
            id=self.id,
            flow_id=self.flow_id,
            conversation_id=self.conversation_id,
            contact_id=self.contact_id,
            tenant_id=self.tenant_id,
            status=self.status,
            current_node_id=self.current_node_id,
            context=dict(self.context or {}),
            execution_path=list(self.execution_path or []),
            error_message=self.error_message,
            flow_version=self.flow_version,
            flow_snapshot=dict(self.flow_snapshot or {}),
            resume_at=self.resume_at,
            step_log=list(self.step_log or []),
            version=self.version,
            claimed_by=self.claimed_by,
            claimed_until=self.claimed_until,
            created_at=self.created_at,
            updated_at=self.updated_at,
            completed_at=self.completed_at,
        )
