"""
Shared routing for side-effect nodes.

Side-effect nodes expose "success" and "error" exits. A failed call records
its message under the node's error key and takes the error edge, or the
untagged default edge when no error edge exists. It never takes the success
edge.
"""

import logging
from typing import Optional

from chatflow.flow_engine.collaborators import CollaboratorError
from chatflow.flow_engine.dispatcher import HandlerContext, NodeResult
from chatflow.flow_engine.graph import ERROR_HANDLE, SUCCESS_HANDLE, Node

logger = logging.getLogger(__name__)


def require(collaborator, name: str):
    """Return collaborator, or raise a routable failure when it is not wired."""
    if collaborator is None:
        raise CollaboratorError(f"{name} is not configured")
    return collaborator


def success_target(ctx: HandlerContext, node: Node) -> Optional[str]:
    return ctx.graph.follow(node.id, SUCCESS_HANDLE) or ctx.graph.follow(node.id)


def error_target(ctx: HandlerContext, node: Node) -> Optional[str]:
    target = ctx.graph.follow(node.id, ERROR_HANDLE)
    if target is not None:
        return target
    defaults = ctx.graph.outgoing_edges(node.id)
    return defaults[0].target if defaults else None


def route_failure(ctx: HandlerContext, node: Node, error_key: str, error: Exception) -> NodeResult:
    message = getattr(error, 'message', None) or str(error)
    logger.error(f"Node {node.id} ({node.type}) failed: {message}")
    return NodeResult(
        next_node_id=error_target(ctx, node),
        context_patch={error_key: message},
    )
