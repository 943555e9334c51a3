"""
Node Dispatcher - routes a node to the handler registered for its kind

Each handler reads the node configuration and the execution context,
performs at most its own side effect through the injected collaborators and
returns a NodeResult telling the run-loop where to go next.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from chatflow.flow_engine.collaborators import (
    ContactService,
    ConversationService,
    HttpClient,
    MessagingService,
    SheetsService,
)
from chatflow.flow_engine.exceptions import FlowEngineError, HandlerError, UnknownNodeType
from chatflow.flow_engine.execution import FlowExecution
from chatflow.flow_engine.graph import FlowGraph, Node, NodeType
from chatflow.flow_engine.variable_resolver import VariableResolver

logger = logging.getLogger(__name__)


@dataclass
class NodeResult:
    """
    Transition directive returned by a handler.

    next_node_id: node to continue with (None and no wait means the run ends)
    wait_for_input: pause the execution on the current node
    context_patch: merged into the context; patch wins on key conflicts
    delay_seconds: continue with next_node_id only after this delay
    """
    next_node_id: Optional[str] = None
    wait_for_input: bool = False
    context_patch: Dict[str, Any] = field(default_factory=dict)
    delay_seconds: Optional[float] = None


@dataclass
class HandlerContext:
    """Everything a handler may touch besides the node and the execution."""
    graph: FlowGraph
    resolver: VariableResolver
    messaging: Optional[MessagingService] = None
    contacts: Optional[ContactService] = None
    conversations: Optional[ConversationService] = None
    http: Optional[HttpClient] = None
    sheets: Optional[SheetsService] = None
    http_timeout: float = 30.0


Handler = Callable[[Node, FlowExecution, HandlerContext], Awaitable[NodeResult]]


class NodeDispatcher:
    """
    Routing table from node kind to handler.

    Usage:
        dispatcher = NodeDispatcher(messaging=..., http=...)
        result = await dispatcher.execute(node, execution)
    """

    def __init__(
        self,
        handlers: Optional[Dict[NodeType, Handler]] = None,
        messaging: Optional[MessagingService] = None,
        contacts: Optional[ContactService] = None,
        conversations: Optional[ConversationService] = None,
        http: Optional[HttpClient] = None,
        sheets: Optional[SheetsService] = None,
        http_timeout: float = 30.0,
    ):
        if handlers is None:
            from chatflow.flow_engine.handlers import DEFAULT_HANDLERS
            handlers = DEFAULT_HANDLERS
        self._handlers: Dict[NodeType, Handler] = dict(handlers)
        self.messaging = messaging
        self.contacts = contacts
        self.conversations = conversations
        self.http = http
        self.sheets = sheets
        self.http_timeout = http_timeout

    def register(self, kind: NodeType, handler: Handler) -> None:
        self._handlers[NodeType(kind)] = handler

    def handler_for(self, node: Node) -> Handler:
        """
        Raises:
            UnknownNodeType: If the node's type has no registered handler
        """
        kind = node.kind
        if kind is None or kind not in self._handlers:
            raise UnknownNodeType(node.type, node_id=node.id)
        return self._handlers[kind]

    def build_context(self, execution: FlowExecution, graph: FlowGraph) -> HandlerContext:
        return HandlerContext(
            graph=graph,
            resolver=VariableResolver(execution.context),
            messaging=self.messaging,
            contacts=self.contacts,
            conversations=self.conversations,
            http=self.http,
            sheets=self.sheets,
            http_timeout=self.http_timeout,
        )

    async def execute(
        self,
        node: Node,
        execution: FlowExecution,
        graph: Optional[FlowGraph] = None,
    ) -> NodeResult:
        """
        Execute one node.

        Raises:
            UnknownNodeType: If no handler is registered for node.type
            HandlerError: If the handler raised anything else
        """
        handler = self.handler_for(node)
        ctx = self.build_context(execution, graph or execution.graph)

        logger.info(f"Executing node {node.id} of type {node.type} (execution {execution.id})")

        try:
            result = await handler(node, execution, ctx)
        except FlowEngineError:
            raise
        except Exception as e:
            raise HandlerError(str(e), node_id=node.id, node_type=node.type) from e

        return result if result is not None else NodeResult()
