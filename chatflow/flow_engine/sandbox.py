"""
Sandbox Executor - side-effect-free dry run of a flow for authors

Walks the graph like the run-loop but never touches a collaborator:
messages are rendered, inputs come from test data, HTTP calls get a fixed
mock response. On a node with several outgoing edges the first authored edge
is taken, whatever the condition rules say. A hard iteration cap guarantees
termination on cyclic graphs.
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from chatflow.flow_engine.branching import BranchingHandler
from chatflow.flow_engine.exceptions import (
    FlowEngineError,
    FlowInvalid,
    FlowNotFound,
    MaxIterationsExceeded,
    NodeNotFound,
    UnknownNodeType,
)
from chatflow.flow_engine.graph import Flow, Node, NodeType, blocking_errors, validate_graph
from chatflow.flow_engine.handlers.conversation import delay_seconds
from chatflow.flow_engine.repositories import FlowRepository
from chatflow.flow_engine.validation import validate_input
from chatflow.flow_engine.variable_resolver import VariableResolver

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 100

MOCK_HTTP_RESPONSE = {'status': 200, 'data': {'success': True}}

SIMULATED_INPUT = 'test-input'


class SandboxExecutor:
    """
    Usage:
        sandbox = SandboxExecutor(flow_repository)
        report = await sandbox.test_flow_execution(flow_id, {'email': 'a@b.com'})
    """

    def __init__(self, flows: FlowRepository, max_iterations: int = DEFAULT_MAX_ITERATIONS):
        self.flows = flows
        self.max_iterations = max_iterations
        self._simulators: Dict[NodeType, Callable[[Node, Dict[str, Any], Dict[str, Any]], Dict[str, Any]]] = {
            NodeType.START: self._simulate_start,
            NodeType.MESSAGE: self._simulate_message,
            NodeType.INPUT: self._simulate_input,
            NodeType.CONDITION: self._simulate_condition,
            NodeType.DELAY: self._simulate_delay,
            NodeType.ACTION: self._simulate_action,
            NodeType.API_REQUEST: self._simulate_api_request,
            NodeType.WEBHOOK: self._simulate_webhook,
            NodeType.GOOGLE_SHEETS: self._simulate_google_sheets,
            NodeType.UPDATE_CONTACT: self._simulate_mutation,
            NodeType.ASSIGN_CONVERSATION: self._simulate_mutation,
            NodeType.TAG_MANAGEMENT: self._simulate_mutation,
            NodeType.END: self._simulate_end,
        }

    async def test_flow_execution(self, flow_id: str, test_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Dry-run a flow.

        Returns:
            {success, executionPath, logs, finalContext, iterations, error?}

        Raises:
            FlowNotFound: Unknown flow id. Every other problem is reported
            in the returned dict with success False.
        """
        flow = await self.flows.get_flow(flow_id)
        if flow is None:
            raise FlowNotFound(flow_id)
        return self.run(flow, test_data or {})

    def run(self, flow: Flow, test_data: Dict[str, Any]) -> Dict[str, Any]:
        test_data = dict(test_data)
        context = dict(test_data)
        logs: List[Dict[str, Any]] = []
        path: List[str] = []
        iterations = 0

        errors = blocking_errors(validate_graph(flow.graph))
        if errors:
            return self._report(False, path, logs, context, iterations, FlowInvalid(errors, flow.id).message)

        graph = flow.graph
        current_id = graph.start_node().id
        path.append(current_id)

        try:
            while current_id:
                if iterations >= self.max_iterations:
                    raise MaxIterationsExceeded(self.max_iterations)
                iterations += 1

                node = graph.get_node(current_id)
                if node is None:
                    raise NodeNotFound(current_id)

                started = time.monotonic()
                logs.append(self._log(node, 'enter', {'nodeData': node.data}))

                simulator = self._simulators.get(node.kind)
                if simulator is None:
                    raise UnknownNodeType(node.type, node_id=node.id)
                payload = simulator(node, context, test_data)
                logs.append(self._log(node, 'execute', payload, started))

                if node.kind == NodeType.END:
                    break

                edges = graph.edges_from(node.id)
                if not edges:
                    logs.append(self._log(node, 'exit', {'message': 'No outgoing connections, flow ends'}))
                    break

                current_id = edges[0].target
                if len(edges) > 1:
                    logs.append(self._log(node, 'branch', {
                        'message': 'Multiple paths available, taking first path in test mode',
                        'selectedPath': current_id,
                    }))
                path.append(current_id)

        except (FlowEngineError, ValueError) as e:
            message = e.message if isinstance(e, FlowEngineError) else str(e)
            logger.error(f"Test execution of flow {flow.id} failed: {message}")
            return self._report(False, path, logs, context, iterations, message)

        return self._report(True, path, logs, context, iterations)

    @staticmethod
    def _report(success, path, logs, context, iterations, error=None) -> Dict[str, Any]:
        report = {
            'success': success,
            'executionPath': path,
            'logs': logs,
            'finalContext': context,
            'iterations': iterations,
        }
        if error:
            report['error'] = error
        return report

    @staticmethod
    def _log(node: Node, action: str, data: Dict[str, Any], started: Optional[float] = None) -> Dict[str, Any]:
        return {
            'timestamp': datetime.utcnow().isoformat(),
            'nodeId': node.id,
            'nodeName': node.label,
            'nodeType': node.type,
            'action': action,
            'data': data,
            'duration': int((time.monotonic() - started) * 1000) if started is not None else 0,
        }

    # Simulators: each returns the payload of the node's "execute" log entry
    # and may write to context.

    def _simulate_start(self, node, context, test_data):
        return {'message': 'Flow started'}

    def _simulate_message(self, node, context, test_data):
        resolver = VariableResolver(context)
        template = node.data.get('message') or ''
        return {
            'message': template or 'No message configured',
            'rendered': resolver.interpolate(template),
            'unresolved': resolver.unresolved(template),
        }

    def _simulate_input(self, node, context, test_data):
        variable_name = node.data.get('variableName') or 'userInput'
        value = test_data.get(variable_name) or SIMULATED_INPUT
        context[variable_name] = value
        return {
            'variableName': variable_name,
            'validationType': node.data.get('validationType'),
            'value': value,
            'valid': validate_input(value, node.data.get('validationType')),
        }

    def _simulate_condition(self, node, context, test_data):
        branching = BranchingHandler(VariableResolver(context))
        rule = branching.evaluate_rules(node.data)
        return {
            'conditions': branching.get_rules(node.data),
            'matchedRule': rule.get('id') if rule else None,
            'context': dict(context),
        }

    def _simulate_delay(self, node, context, test_data):
        seconds = delay_seconds(node.data)
        return {
            'delaySeconds': seconds,
            'message': f"Delay of {seconds:g} seconds (simulated)",
        }

    def _simulate_action(self, node, context, test_data):
        return {
            'actionType': node.data.get('actionType'),
            'actionData': VariableResolver(context).resolve(node.data.get('actionData') or {}),
            'message': 'Action simulated in test mode',
        }

    def _simulate_api_request(self, node, context, test_data):
        context[node.data.get('responseVariable') or 'apiResponse'] = MOCK_HTTP_RESPONSE
        return {
            'method': (node.data.get('method') or 'GET').upper(),
            'url': VariableResolver(context).interpolate(node.data.get('url') or ''),
            'response': MOCK_HTTP_RESPONSE,
            'message': 'API call simulated in test mode',
        }

    def _simulate_webhook(self, node, context, test_data):
        if node.data.get('responseVariable'):
            context[node.data['responseVariable']] = MOCK_HTTP_RESPONSE
        return {
            'method': (node.data.get('method') or 'POST').upper(),
            'url': VariableResolver(context).interpolate(node.data.get('webhookUrl') or node.data.get('url') or ''),
            'response': MOCK_HTTP_RESPONSE,
            'message': 'Webhook simulated in test mode',
        }

    def _simulate_google_sheets(self, node, context, test_data):
        action = node.data.get('action') or 'append'
        if action == 'read':
            context[node.data.get('responseVariable') or node.data.get('variableName') or 'sheetData'] = []
        context['sheetsActionCompleted'] = True
        return {
            'action': action,
            'spreadsheetId': node.data.get('spreadsheetId'),
            'message': 'Google Sheets call simulated in test mode',
        }

    def _simulate_mutation(self, node, context, test_data):
        return {'message': f"{node.type} simulated in test mode"}

    def _simulate_end(self, node, context, test_data):
        return {'message': 'Flow completed'}
