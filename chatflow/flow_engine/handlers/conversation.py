"""
Conversation node handlers: start, message, input, condition, delay, action, end.
"""

import logging

from chatflow.flow_engine.branching import BranchingHandler
from chatflow.flow_engine.dispatcher import HandlerContext, NodeResult
from chatflow.flow_engine.execution import FlowExecution, LAST_USER_INPUT
from chatflow.flow_engine.graph import DEFAULT_HANDLE, Node
from chatflow.flow_engine.handlers.common import require, route_failure
from chatflow.flow_engine.validation import validate_input

logger = logging.getLogger(__name__)

DEFAULT_INPUT_ERROR = 'Invalid input. Please try again.'

DELAY_UNITS = {
    'seconds': 1,
    'minutes': 60,
    'hours': 3600,
    'days': 86400,
}


async def handle_start(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    return NodeResult(next_node_id=ctx.graph.follow(node.id))


async def handle_message(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    """Send the interpolated message; send failures fail the execution."""
    text = ctx.resolver.interpolate(node.data.get('message'))

    messaging = require(ctx.messaging, 'Messaging service')
    await messaging.send_outbound_message(execution.tenant_id, execution.conversation_id, text)

    return NodeResult(next_node_id=ctx.graph.follow(node.id))


async def handle_input(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    """
    Wait for a reply, validate it, store it.

    An invalid reply sends the node's error message and waits again on the
    same node. There is no retry counter: the contact may retry forever.
    """
    user_input = execution.context.get(LAST_USER_INPUT)
    if user_input is None or user_input == '':
        return NodeResult(wait_for_input=True)

    validation_type = node.data.get('validationType')
    if not validate_input(user_input, validation_type):
        logger.info(f"Input rejected by {validation_type} validation on node {node.id}")
        messaging = require(ctx.messaging, 'Messaging service')
        await messaging.send_outbound_message(
            execution.tenant_id,
            execution.conversation_id,
            node.data.get('errorMessage') or DEFAULT_INPUT_ERROR,
        )
        return NodeResult(wait_for_input=True)

    variable_name = node.data.get('variableName') or 'userInput'
    return NodeResult(
        next_node_id=ctx.graph.follow(node.id),
        context_patch={
            variable_name: user_input,
            LAST_USER_INPUT: None,
        },
    )


async def handle_condition(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    """Follow the edge of the first matching rule, else the "default" edge."""
    rule = BranchingHandler(ctx.resolver).evaluate_rules(node.data)
    handle = str(rule.get('id')) if rule else DEFAULT_HANDLE
    return NodeResult(next_node_id=ctx.graph.follow(node.id, handle))


def delay_seconds(data) -> float:
    """
    Delay length from node data: delaySeconds, or duration + unit.

    Raises:
        ValueError: On a non-numeric duration or unknown unit
    """
    if data.get('delaySeconds') is not None:
        return float(data['delaySeconds'])

    duration = float(data.get('duration') or 0)
    unit = data.get('unit') or 'seconds'
    if unit not in DELAY_UNITS:
        raise ValueError(f"Unknown delay unit: {unit}")
    return duration * DELAY_UNITS[unit]


async def handle_delay(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    """
    Ask the run-loop to continue with the next node later.

    The handler never sleeps; the loop checkpoints and hands the
    continuation to the scheduler.
    """
    seconds = delay_seconds(node.data)
    return NodeResult(
        next_node_id=ctx.graph.follow(node.id),
        delay_seconds=seconds if seconds > 0 else None,
    )


async def handle_action(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    """Dispatch updateContact / addTag / assignAgent sub-actions."""
    action_type = node.data.get('actionType')
    action_data = ctx.resolver.resolve(node.data.get('actionData') or {})

    try:
        if action_type == 'updateContact':
            contacts = require(ctx.contacts, 'Contact service')
            await contacts.update_contact(execution.tenant_id, execution.contact_id, action_data)
        elif action_type == 'addTag':
            conversations = require(ctx.conversations, 'Conversation service')
            await conversations.add_tag(execution.tenant_id, execution.conversation_id, action_data.get('tag'))
        elif action_type == 'assignAgent':
            conversations = require(ctx.conversations, 'Conversation service')
            await conversations.assign_conversation(
                execution.tenant_id, execution.conversation_id, action_data.get('agentId')
            )
        else:
            logger.warning(f"Unknown action type: {action_type}")
    except Exception as e:
        return route_failure(ctx, node, 'actionError', e)

    return NodeResult(next_node_id=ctx.graph.follow(node.id))


async def handle_end(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    return NodeResult()

