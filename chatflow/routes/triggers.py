"""
Triggers API - inbound events from the messaging platform

Endpoints:
- POST /api/v1/triggers/messages - Inbound text (resumes a paused execution or keyword-triggers a flow)
- POST /api/v1/triggers/welcome - New conversation
- POST /api/v1/triggers/webhooks/:tenant_id - Webhook payload matched against webhook-triggered flows
"""

from flask import Blueprint, request, jsonify
import logging

from chatflow.flow_engine.exceptions import FlowEngineError
from chatflow.services.flow_execution_service import get_flow_execution_service

logger = logging.getLogger(__name__)

triggers_bp = Blueprint('triggers', __name__, url_prefix='/api/v1/triggers')

REQUIRED_CONVERSATION_FIELDS = ('tenantId', 'conversationId', 'contactId')


def _missing(data, fields):
    return [field for field in fields if not data.get(field)]


@triggers_bp.route('/messages', methods=['POST'])
async def inbound_message():
    """
    Body:
        tenantId, conversationId, contactId, message
    """
    data = request.get_json(silent=True) or {}
    missing = _missing(data, REQUIRED_CONVERSATION_FIELDS + ('message',))
    if missing:
        return jsonify({'error': f"Missing fields: {', '.join(missing)}"}), 400

    try:
        service = get_flow_execution_service()
        execution = await service.triggers.route_inbound_message(
            data['tenantId'], data['conversationId'], data['contactId'], data['message']
        )
        return jsonify({
            'triggered': execution is not None,
            'execution': execution.to_dict() if execution else None,
        }), 200

    except FlowEngineError as e:
        return jsonify({'error': e.message}), e.http_status
    except Exception as e:
        logger.error(f"Error handling inbound message: {e}")
        return jsonify({'error': str(e)}), 500


@triggers_bp.route('/welcome', methods=['POST'])
async def welcome():
    data = request.get_json(silent=True) or {}
    missing = _missing(data, REQUIRED_CONVERSATION_FIELDS)
    if missing:
        return jsonify({'error': f"Missing fields: {', '.join(missing)}"}), 400

    try:
        service = get_flow_execution_service()
        execution = await service.triggers.handle_welcome_message(
            data['tenantId'], data['conversationId'], data['contactId']
        )
        return jsonify({
            'triggered': execution is not None,
            'execution': execution.to_dict() if execution else None,
        }), 200

    except FlowEngineError as e:
        return jsonify({'error': e.message}), e.http_status
    except Exception as e:
        logger.error(f"Error handling welcome event: {e}")
        return jsonify({'error': str(e)}), 500


@triggers_bp.route('/webhooks/<tenant_id>', methods=['POST'])
async def webhook(tenant_id):
    payload = request.get_json(silent=True) or {}
    try:
        service = get_flow_execution_service()
        flow = await service.triggers.handle_webhook_trigger(tenant_id, payload)
        return jsonify({
            'matched': flow is not None,
            'flowId': flow.id if flow else None,
        }), 200

    except FlowEngineError as e:
        return jsonify({'error': e.message}), e.http_status
    except Exception as e:
        logger.error(f"Error handling webhook for tenant {tenant_id}: {e}")
        return jsonify({'error': str(e)}), 500
