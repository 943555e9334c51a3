"""
Node Handlers - one async handler per node kind
"""

from chatflow.flow_engine.graph import NodeType
from chatflow.flow_engine.handlers.conversation import (
    handle_action,
    handle_condition,
    handle_delay,
    handle_end,
    handle_input,
    handle_message,
    handle_start,
)
from chatflow.flow_engine.handlers.integrations import (
    handle_api_request,
    handle_assign_conversation,
    handle_google_sheets,
    handle_tag_management,
    handle_update_contact,
    handle_webhook,
)

DEFAULT_HANDLERS = {
    NodeType.START: handle_start,
    NodeType.MESSAGE: handle_message,
    NodeType.INPUT: handle_input,
    NodeType.CONDITION: handle_condition,
    NodeType.DELAY: handle_delay,
    NodeType.ACTION: handle_action,
    NodeType.END: handle_end,
    NodeType.API_REQUEST: handle_api_request,
    NodeType.WEBHOOK: handle_webhook,
    NodeType.GOOGLE_SHEETS: handle_google_sheets,
    NodeType.UPDATE_CONTACT: handle_update_contact,
    NodeType.ASSIGN_CONVERSATION: handle_assign_conversation,
    NodeType.TAG_MANAGEMENT: handle_tag_management,
}

__all__ = ['DEFAULT_HANDLERS']
