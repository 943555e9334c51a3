"""
Health check - database, continuation scheduler and execution backlog
"""
from datetime import datetime

from flask import Blueprint, jsonify
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from chatflow.database import db
from chatflow.flow_engine.execution import ExecutionStatus
from chatflow.models import FlowExecutionRecord
from chatflow.temporal.config import is_temporal_enabled

bp = Blueprint('health', __name__, url_prefix='/api')


def _execution_backlog(now: datetime) -> dict:
    """Open executions by status, plus those whose continuation is overdue."""
    counts = dict(
        db.session.query(FlowExecutionRecord.status, func.count(FlowExecutionRecord.id))
        .filter(FlowExecutionRecord.status.in_([ExecutionStatus.RUNNING.value, ExecutionStatus.PAUSED.value]))
        .group_by(FlowExecutionRecord.status)
        .all()
    )
    overdue = (
        FlowExecutionRecord.query
        .filter(FlowExecutionRecord.status == ExecutionStatus.RUNNING.value)
        .filter(FlowExecutionRecord.resume_at <= now)
        .count()
    )
    return {
        'running': counts.get(ExecutionStatus.RUNNING.value, 0),
        'paused': counts.get(ExecutionStatus.PAUSED.value, 0),
        'overdueDelays': overdue,
    }


@bp.route('/health', methods=['GET'])
def health_check():
    """Healthcheck: API online, flow tables readable, which scheduler runs continuations"""
    now = datetime.utcnow()
    scheduler = 'temporal' if is_temporal_enabled() else 'inline'
    try:
        executions = _execution_backlog(now)
    except SQLAlchemyError as e:
        db.session.rollback()
        return jsonify({
            'status': 'unhealthy',
            'message': 'API is online but the flow tables are not reachable',
            'scheduler': scheduler,
            'error': str(e),
            'timestamp': now.isoformat()
        }), 503

    return jsonify({
        'status': 'healthy',
        'scheduler': scheduler,
        'executions': executions,
        'timestamp': now.isoformat()
    }), 200
