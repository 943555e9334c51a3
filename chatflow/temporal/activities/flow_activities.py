"""
Flow Activities - Temporal activities for flow execution

Activities are the actual execution logic called by workflows.
"""

import logging
from typing import Dict, Any
from temporalio import activity

logger = logging.getLogger(__name__)


@activity.defn
async def continue_flow_execution(execution_id: str) -> Dict[str, Any]:
    """
    Run the loop of a RUNNING execution until it pauses, completes, fails or
    reaches its next delay.

    Args:
        execution_id: FlowExecution id

    Returns:
        {execution_id, status, current_node_id}
    """
    # Import here to avoid circular dependencies
    from flask import current_app
    from chatflow.services.flow_execution_service import get_flow_execution_service

    activity.logger.info(f"Continuing execution {execution_id}")

    with current_app.app_context():
        service = get_flow_execution_service()
        execution = await service.engine.run_execution(execution_id)

    logger.info(f"Execution {execution_id} is now {execution.status}")

    return {
        'execution_id': execution.id,
        'status': execution.status,
        'current_node_id': execution.current_node_id,
    }
