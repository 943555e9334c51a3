"""
SQL repositories - flow and execution persistence over Flask-SQLAlchemy

Every execution write is one guarded UPDATE ... WHERE id = :id AND
version = :version, committed before the run-loop dispatches the next node.
The run claim is taken the same way: UPDATE ... WHERE id = :id AND the
current claim is empty, expired or already ours.
Must be used inside a Flask app context.
"""

import logging
from datetime import datetime
from typing import List, Optional

from chatflow.database import db
from chatflow.flow_engine.exceptions import ConcurrentModificationError, ExecutionNotFound
from chatflow.flow_engine.execution import ExecutionStatus, FlowExecution
from chatflow.flow_engine.graph import Flow, FlowStatus
from chatflow.flow_engine.repositories import ExecutionRepository, FlowRepository
from chatflow.models import FlowDefinition, FlowExecutionRecord

logger = logging.getLogger(__name__)


class SqlFlowRepository(FlowRepository):
    async def get_flow(self, flow_id: str) -> Optional[Flow]:
        record = db.session.get(FlowDefinition, flow_id)
        return record.to_domain() if record else None

    async def list_active_flows(self, tenant_id: str) -> List[Flow]:
        records = (
            FlowDefinition.query
            .filter_by(tenant_id=tenant_id, status=FlowStatus.ACTIVE.value)
            .order_by(FlowDefinition.created_at.asc(), FlowDefinition.id.asc())
            .all()
        )
        return [record.to_domain() for record in records]

    def add(self, flow: Flow) -> Flow:
        db.session.merge(FlowDefinition.from_domain(flow))
        db.session.commit()
        return flow


class SqlExecutionRepository(ExecutionRepository):
    async def create(self, execution: FlowExecution) -> FlowExecution:
        db.session.add(FlowExecutionRecord.from_domain(execution))
        db.session.commit()
        return execution

    async def get(self, execution_id: str) -> Optional[FlowExecution]:
        record = db.session.get(FlowExecutionRecord, execution_id, populate_existing=True)
        return record.to_domain() if record else None

    async def update(self, execution: FlowExecution) -> FlowExecution:
        now = datetime.utcnow()
        values = FlowExecutionRecord.values_from(execution)
        values.update(version=execution.version + 1, updated_at=now)

        updated = (
            FlowExecutionRecord.query
            .filter_by(id=execution.id, version=execution.version)
            .update(values, synchronize_session=False)
        )
        if updated == 0:
            db.session.rollback()
            if db.session.get(FlowExecutionRecord, execution.id) is None:
                raise ExecutionNotFound(execution.id)
            logger.info(f"Stale write to execution {execution.id} (version {execution.version})")
            raise ConcurrentModificationError(execution.id, expected_version=execution.version)

        db.session.commit()
        execution.version += 1
        execution.updated_at = now
        return execution

    async def claim(self, execution_id: str, owner: str, until: datetime, now: datetime) -> bool:
        claimed = (
            FlowExecutionRecord.query
            .filter(FlowExecutionRecord.id == execution_id)
            .filter(db.or_(
                FlowExecutionRecord.claimed_by.is_(None),
                FlowExecutionRecord.claimed_by == owner,
                FlowExecutionRecord.claimed_until.is_(None),
                FlowExecutionRecord.claimed_until <= now,
            ))
            .update({'claimed_by': owner, 'claimed_until': until}, synchronize_session=False)
        )
        if claimed == 0:
            db.session.rollback()
            if db.session.get(FlowExecutionRecord, execution_id) is None:
                raise ExecutionNotFound(execution_id)
            return False

        db.session.commit()
        return True

    async def release(self, execution_id: str, owner: str) -> None:
        (
            FlowExecutionRecord.query
            .filter_by(id=execution_id, claimed_by=owner)
            .update({'claimed_by': None, 'claimed_until': None}, synchronize_session=False)
        )
        db.session.commit()

    async def list_by_conversation(self, conversation_id: str) -> List[FlowExecution]:
        records = (
            FlowExecutionRecord.query
            .filter_by(conversation_id=conversation_id)
            .order_by(FlowExecutionRecord.created_at.desc())
            .execution_options(populate_existing=True)
            .all()
        )
        return [record.to_domain() for record in records]

    async def list_runnable(self, now: datetime) -> List[FlowExecution]:
        records = (
            FlowExecutionRecord.query
            .filter(FlowExecutionRecord.status == ExecutionStatus.RUNNING.value)
            .filter(db.or_(
                FlowExecutionRecord.resume_at.is_(None),
                FlowExecutionRecord.resume_at <= now,
            ))
            .filter(db.or_(
                FlowExecutionRecord.claimed_by.is_(None),
                FlowExecutionRecord.claimed_until.is_(None),
                FlowExecutionRecord.claimed_until <= now,
            ))
            .order_by(FlowExecutionRecord.created_at.asc())
            .execution_options(populate_existing=True)
            .all()
        )
        return [record.to_domain() for record in records]
