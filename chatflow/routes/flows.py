"""
Flows API - Routes for running, inspecting and testing flow executions

Endpoints:
- POST /api/v1/flows/:flow_id/execute - Start an execution
- POST /api/v1/flows/:flow_id/test - Dry-run the flow (no side effects)
- GET  /api/v1/flows/:flow_id/validate - Graph validation report
- GET  /api/v1/flows/executions/:id - Get execution
- POST /api/v1/flows/executions/:id/resume - Resume a paused execution with user input
- POST /api/v1/flows/executions/:id/cancel - Cancel execution
- GET  /api/v1/flows/executions/:id/logs - Execution summary and step log
- GET  /api/v1/flows/executions/:id/replay - Execution path rendered against the flow
- GET  /api/v1/flows/conversations/:conversation_id/executions - Executions of a conversation
"""

from flask import Blueprint, request, jsonify
import logging

from chatflow.flow_engine.exceptions import FlowEngineError
from chatflow.services.flow_execution_service import get_flow_execution_service

logger = logging.getLogger(__name__)

flows_bp = Blueprint('flows', __name__, url_prefix='/api/v1/flows')


def _engine_error(e: FlowEngineError):
    return jsonify({'error': e.message}), e.http_status


@flows_bp.route('/<flow_id>/execute', methods=['POST'])
async def execute_flow(flow_id):
    """
    Start an execution.

    Body:
        conversationId, contactId, context (initial context, optional)
    """
    data = request.get_json(silent=True) or {}
    try:
        service = get_flow_execution_service()
        execution = await service.engine.start_execution(
            flow_id,
            data.get('conversationId'),
            data.get('contactId'),
            data.get('context') or {},
        )
        return jsonify(execution.to_dict()), 201

    except FlowEngineError as e:
        return _engine_error(e)
    except Exception as e:
        logger.error(f"Error starting flow {flow_id}: {e}")
        return jsonify({'error': str(e)}), 500


@flows_bp.route('/<flow_id>/test', methods=['POST'])
async def test_flow(flow_id):
    """Dry-run a flow. Body: testData (values for input nodes and variables)."""
    data = request.get_json(silent=True) or {}
    try:
        service = get_flow_execution_service()
        report = await service.sandbox.test_flow_execution(flow_id, data.get('testData') or {})
        return jsonify(report), 200

    except FlowEngineError as e:
        return _engine_error(e)
    except Exception as e:
        logger.error(f"Error testing flow {flow_id}: {e}")
        return jsonify({'error': str(e)}), 500


@flows_bp.route('/<flow_id>/validate', methods=['GET'])
async def validate_flow(flow_id):
    try:
        service = get_flow_execution_service()
        return jsonify(await service.engine.validate_flow(flow_id)), 200

    except FlowEngineError as e:
        return _engine_error(e)
    except Exception as e:
        logger.error(f"Error validating flow {flow_id}: {e}")
        return jsonify({'error': str(e)}), 500


@flows_bp.route('/executions/<execution_id>', methods=['GET'])
async def get_execution(execution_id):
    try:
        service = get_flow_execution_service()
        execution = await service.engine.get_execution(execution_id)
        return jsonify(execution.to_dict()), 200

    except FlowEngineError as e:
        return _engine_error(e)
    except Exception as e:
        logger.error(f"Error getting execution {execution_id}: {e}")
        return jsonify({'error': str(e)}), 500


@flows_bp.route('/executions/<execution_id>/resume', methods=['POST'])
async def resume_execution(execution_id):
    """Resume a paused execution. Body: input (the user's reply)."""
    data = request.get_json(silent=True) or {}
    if data.get('input') is None:
        return jsonify({'error': 'input is required'}), 400

    try:
        service = get_flow_execution_service()
        execution = await service.engine.resume_execution(execution_id, data['input'])
        return jsonify(execution.to_dict()), 200

    except FlowEngineError as e:
        return _engine_error(e)
    except Exception as e:
        logger.error(f"Error resuming execution {execution_id}: {e}")
        return jsonify({'error': str(e)}), 500


@flows_bp.route('/executions/<execution_id>/cancel', methods=['POST'])
async def cancel_execution(execution_id):
    try:
        service = get_flow_execution_service()
        execution = await service.engine.cancel_execution(execution_id)
        return jsonify(execution.to_dict()), 200

    except FlowEngineError as e:
        return _engine_error(e)
    except Exception as e:
        logger.error(f"Error cancelling execution {execution_id}: {e}")
        return jsonify({'error': str(e)}), 500


@flows_bp.route('/executions/<execution_id>/logs', methods=['GET'])
async def get_execution_logs(execution_id):
    try:
        service = get_flow_execution_service()
        return jsonify(await service.engine.get_execution_logs(execution_id)), 200

    except FlowEngineError as e:
        return _engine_error(e)
    except Exception as e:
        logger.error(f"Error getting logs of execution {execution_id}: {e}")
        return jsonify({'error': str(e)}), 500


@flows_bp.route('/executions/<execution_id>/replay', methods=['GET'])
async def get_execution_replay(execution_id):
    try:
        service = get_flow_execution_service()
        return jsonify(await service.engine.get_execution_replay(execution_id)), 200

    except FlowEngineError as e:
        return _engine_error(e)
    except Exception as e:
        logger.error(f"Error getting replay of execution {execution_id}: {e}")
        return jsonify({'error': str(e)}), 500


@flows_bp.route('/conversations/<conversation_id>/executions', methods=['GET'])
async def list_conversation_executions(conversation_id):
    try:
        service = get_flow_execution_service()
        executions = await service.engine.get_executions_by_conversation(conversation_id)
        return jsonify({
            'executions': [e.to_dict() for e in executions],
            'total': len(executions),
        }), 200

    except Exception as e:
        logger.error(f"Error listing executions of conversation {conversation_id}: {e}")
        return jsonify({'error': str(e)}), 500
