"""
Integration node handlers: apiRequest, webhook, googleSheets, updateContact,
assignConversation, tagManagement.

Failures of the external call are routed (see handlers.common); only errors
in the handler itself fail the execution.
"""

import logging
from typing import Any, List

from chatflow.flow_engine.dispatcher import HandlerContext, NodeResult
from chatflow.flow_engine.execution import FlowExecution
from chatflow.flow_engine.graph import Node
from chatflow.flow_engine.handlers.common import require, route_failure, success_target

logger = logging.getLogger(__name__)

DEFAULT_API_RESPONSE_VARIABLE = 'apiResponse'
DEFAULT_SHEET_VARIABLE = 'sheetData'


def _timeout(node: Node, ctx: HandlerContext) -> float:
    raw = node.data.get('timeout')
    try:
        return float(raw) if raw else ctx.http_timeout
    except (TypeError, ValueError):
        return ctx.http_timeout


async def handle_api_request(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    """
    Call an external API and store its response body.

    node.data:
        url, method (GET), headers, body, timeout, responseVariable (apiResponse)
    """
    data = node.data
    url = ctx.resolver.interpolate(data.get('url') or '')
    method = (data.get('method') or 'GET').upper()
    headers = ctx.resolver.resolve(data.get('headers') or {})
    body = ctx.resolver.resolve(data.get('body')) if data.get('body') is not None else None

    try:
        http = require(ctx.http, 'HTTP client')
        response = await http.request(method, url, headers=headers, body=body, timeout=_timeout(node, ctx))
    except Exception as e:
        return route_failure(ctx, node, 'apiError', e)

    logger.info(f"API request {method} {url} answered {response.status_code}")
    variable = data.get('responseVariable') or DEFAULT_API_RESPONSE_VARIABLE
    return NodeResult(next_node_id=success_target(ctx, node), context_patch={variable: response.data})


async def handle_webhook(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    """Fire an outbound webhook (POST by default). The response is kept only if asked."""
    data = node.data
    url = ctx.resolver.interpolate(data.get('webhookUrl') or data.get('url') or '')
    method = (data.get('method') or 'POST').upper()
    headers = ctx.resolver.resolve(data.get('headers') or {'Content-Type': 'application/json'})
    payload = ctx.resolver.resolve(data.get('payload', data.get('body', {})))

    try:
        http = require(ctx.http, 'HTTP client')
        response = await http.request(method, url, headers=headers, body=payload, timeout=_timeout(node, ctx))
    except Exception as e:
        return route_failure(ctx, node, 'webhookError', e)

    patch = {}
    if data.get('responseVariable'):
        patch[data['responseVariable']] = response.data
    return NodeResult(next_node_id=success_target(ctx, node), context_patch=patch)


def _sheet_range(data) -> str:
    sheet_name = data.get('sheetName')
    cell_range = data.get('range')
    if sheet_name and cell_range:
        return f"{sheet_name}!{cell_range}"
    return sheet_name or cell_range or 'A1'


def _rows(values: Any) -> List[List[Any]]:
    if not values:
        return []
    if isinstance(values, list) and all(isinstance(row, list) for row in values):
        return values
    if isinstance(values, list):
        return [values]
    return [[values]]


async def handle_google_sheets(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    """
    Append, update or read a spreadsheet range.

    node.data:
        action: append | update | read
        spreadsheetId, sheetName, range
        values: row or list of rows (append/update)
        responseVariable: where read rows are stored (sheetData)
    """
    data = node.data
    action = data.get('action') or 'append'
    spreadsheet_id = ctx.resolver.interpolate(data.get('spreadsheetId') or '')
    range_ = ctx.resolver.interpolate(_sheet_range(data))
    patch = {}

    try:
        sheets = require(ctx.sheets, 'Sheets service')
        if action == 'append':
            await sheets.append_rows(spreadsheet_id, range_, _rows(ctx.resolver.resolve(data.get('values'))))
        elif action == 'update':
            await sheets.update_range(spreadsheet_id, range_, _rows(ctx.resolver.resolve(data.get('values'))))
        elif action == 'read':
            rows = await sheets.read_range(spreadsheet_id, range_)
            patch[data.get('responseVariable') or data.get('variableName') or DEFAULT_SHEET_VARIABLE] = rows
        else:
            raise ValueError(f"Unknown Google Sheets action: {action}")
    except Exception as e:
        return route_failure(ctx, node, 'sheetsError', e)

    patch['sheetsActionCompleted'] = True
    return NodeResult(next_node_id=success_target(ctx, node), context_patch=patch)


async def handle_update_contact(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    fields = ctx.resolver.resolve(node.data.get('fields') or {})

    try:
        contacts = require(ctx.contacts, 'Contact service')
        await contacts.update_contact(execution.tenant_id, execution.contact_id, fields)
    except Exception as e:
        return route_failure(ctx, node, 'updateError', e)

    return NodeResult(next_node_id=success_target(ctx, node))


async def handle_assign_conversation(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    agent_id = ctx.resolver.interpolate(node.data.get('agentId') or '')

    try:
        conversations = require(ctx.conversations, 'Conversation service')
        await conversations.assign_conversation(execution.tenant_id, execution.conversation_id, agent_id)
    except Exception as e:
        return route_failure(ctx, node, 'assignError', e)

    return NodeResult(next_node_id=success_target(ctx, node))


async def handle_tag_management(node: Node, execution: FlowExecution, ctx: HandlerContext) -> NodeResult:
    """Add or remove every tag listed in node.data.tags."""
    action = node.data.get('action') or 'add'
    tags = [ctx.resolver.interpolate(tag) for tag in node.data.get('tags') or []]

    try:
        conversations = require(ctx.conversations, 'Conversation service')
        for tag in tags:
            if action == 'add':
                await conversations.add_tag(execution.tenant_id, execution.conversation_id, tag)
            elif action == 'remove':
                await conversations.remove_tag(execution.tenant_id, execution.conversation_id, tag)
            else:
                raise ValueError(f"Unknown tag action: {action}")
    except Exception as e:
        return route_failure(ctx, node, 'tagError', e)

    return NodeResult(next_node_id=success_target(ctx, node))
