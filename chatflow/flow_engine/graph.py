"""
Flow Graph Model - In-memory view over a flow's nodes and edges

A flow is authored in the visual builder as:
{
    "nodes": [{"id": "n1", "type": "start", "position": {...}, "data": {...}}],
    "edges": [{"id": "e1", "source": "n1", "target": "n2", "sourceHandle": null}]
}

Branching nodes (condition, apiRequest, ...) tag their outgoing edges with a
sourceHandle ("r1", "default", "success", "error") to choose between exits.
"""

import copy
import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from chatflow.flow_engine.exceptions import NodeNotFound

logger = logging.getLogger(__name__)

DEFAULT_HANDLE = 'default'
SUCCESS_HANDLE = 'success'
ERROR_HANDLE = 'error'


class NodeType(str, Enum):
    """Node kinds understood by the engine"""
    START = "start"
    MESSAGE = "message"
    INPUT = "input"
    CONDITION = "condition"
    DELAY = "delay"
    ACTION = "action"
    API_REQUEST = "apiRequest"
    WEBHOOK = "webhook"
    GOOGLE_SHEETS = "googleSheets"
    UPDATE_CONTACT = "updateContact"
    ASSIGN_CONVERSATION = "assignConversation"
    TAG_MANAGEMENT = "tagManagement"
    END = "end"


class FlowStatus(str, Enum):
    """Flow status"""
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"


class TriggerType(str, Enum):
    """How an inbound event selects a flow"""
    KEYWORD = "keyword"
    WELCOME = "welcome"
    MANUAL = "manual"
    WEBHOOK = "webhook"


@dataclass
class Node:
    id: str
    type: str
    data: Dict[str, Any] = field(default_factory=dict)
    position: Optional[Dict[str, Any]] = None

    @property
    def kind(self) -> Optional[NodeType]:
        """NodeType for this node, or None when the type is not a known kind."""
        try:
            return NodeType(self.type)
        except ValueError:
            return None

    @property
    def label(self) -> str:
        return self.data.get('label') or self.type

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Node':
        return cls(
            id=str(raw.get('id')),
            type=raw.get('type'),
            data=dict(raw.get('data') or {}),
            position=raw.get('position'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'position': self.position,
            'data': self.data,
        }


@dataclass
class Edge:
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Edge':
        return cls(
            id=str(raw.get('id') or f"{raw.get('source')}->{raw.get('target')}"),
            source=str(raw.get('source')),
            target=str(raw.get('target')),
            source_handle=raw.get('sourceHandle'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'source': self.source,
            'target': self.target,
            'sourceHandle': self.source_handle,
        }


@dataclass
class GraphError:
    """One validation finding. Non-blocking findings do not prevent a start."""
    code: str
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    blocking: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'nodeId': self.node_id,
            'edgeId': self.edge_id,
            'blocking': self.blocking,
        }


class FlowGraph:
    """
    Read-only graph over a flow's nodes and edges.

    Edge order is preserved as authored; "first" always means first in the
    authored list.
    """

    def __init__(self, nodes: List[Node], edges: List[Edge]):
        self.nodes = list(nodes)
        self.edges = list(edges)
        self._by_id: Dict[str, Node] = {}
        for node in self.nodes:
            # First definition wins; duplicates are reported by validate_graph
            self._by_id.setdefault(node.id, node)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> 'FlowGraph':
        raw = raw or {}
        return cls(
            nodes=[Node.from_dict(n) for n in raw.get('nodes') or []],
            edges=[Edge.from_dict(e) for e in raw.get('edges') or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'nodes': [node.to_dict() for node in self.nodes],
            'edges': [edge.to_dict() for edge in self.edges],
        }

    def get_node(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        return self._by_id.get(node_id)

    def find_node(self, node_id: Optional[str]) -> Node:
        """
        Look up a node by id.

        Raises:
            NodeNotFound: If no node has this id
        """
        node = self.get_node(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    def start_nodes(self) -> List[Node]:
        return [node for node in self.nodes if node.type == NodeType.START.value]

    def start_node(self) -> Optional[Node]:
        starts = self.start_nodes()
        return starts[0] if starts else None

    def edges_from(self, source_id: str) -> List[Edge]:
        """All outgoing edges of a node, whatever their handle."""
        return [edge for edge in self.edges if edge.source == source_id]

    def outgoing_edges(self, source_id: str, handle: Optional[str] = None) -> List[Edge]:
        """
        Outgoing edges of a node filtered by handle.

        With no handle, matches the node's default exit: edges without a
        handle or tagged "default". With a handle, matches that tag exactly.
        """
        if handle is None:
            return [
                edge for edge in self.edges_from(source_id)
                if edge.source_handle in (None, '', DEFAULT_HANDLE)
            ]
        return [edge for edge in self.edges_from(source_id) if edge.source_handle == handle]

    def follow(self, source_id: str, handle: Optional[str] = None) -> Optional[str]:
        """
        Target node id reached from source_id, or None when there is no exit.

        An explicit handle only follows edges with that tag. The default exit
        falls back to any non-error edge so single-exit nodes wired with a
        stray handle still advance.
        """
        if handle is not None:
            edges = self.outgoing_edges(source_id, handle)
        else:
            edges = self.outgoing_edges(source_id) or [
                edge for edge in self.edges_from(source_id)
                if edge.source_handle != ERROR_HANDLE
            ]
        return edges[0].target if edges else None

    def reachable_from(self, node_id: str) -> List[str]:
        seen = {node_id}
        order = [node_id]
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for edge in self.edges_from(current):
                if edge.target not in seen and edge.target in self._by_id:
                    seen.add(edge.target)
                    order.append(edge.target)
                    queue.append(edge.target)
        return order


def validate_graph(graph: FlowGraph) -> List[GraphError]:
    """
    Validate a flow graph.

    Blocking findings: missing or repeated start node, duplicate node ids,
    edges referencing unknown nodes. Unreachable nodes are reported as
    non-blocking findings.

    Returns:
        List of GraphError (empty if the graph is valid)
    """
    errors: List[GraphError] = []

    starts = graph.start_nodes()
    if not starts:
        errors.append(GraphError('missing_start', 'Flow has no start node'))
    elif len(starts) > 1:
        for node in starts[1:]:
            errors.append(GraphError(
                'multiple_start',
                f"Flow has more than one start node ({node.id})",
                node_id=node.id,
            ))

    seen = set()
    for node in graph.nodes:
        if node.id in seen:
            errors.append(GraphError(
                'duplicate_node_id',
                f"Duplicate node id: {node.id}",
                node_id=node.id,
            ))
        seen.add(node.id)

    for edge in graph.edges:
        if graph.get_node(edge.source) is None:
            errors.append(GraphError(
                'dangling_edge',
                f"Edge {edge.id} references unknown source node {edge.source}",
                edge_id=edge.id,
            ))
        if graph.get_node(edge.target) is None:
            errors.append(GraphError(
                'dangling_edge',
                f"Edge {edge.id} references unknown target node {edge.target}",
                edge_id=edge.id,
            ))

    if len(starts) == 1:
        reachable = set(graph.reachable_from(starts[0].id))
        for node in graph.nodes:
            if node.id not in reachable:
                errors.append(GraphError(
                    'unreachable_node',
                    f"Node {node.id} is not reachable from the start node",
                    node_id=node.id,
                    blocking=False,
                ))

    return errors


def blocking_errors(errors: List[GraphError]) -> List[GraphError]:
    return [error for error in errors if error.blocking]


@dataclass
class TriggerConfig:
    type: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    conditions: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> Optional['TriggerConfig']:
        if not raw:
            return None
        return cls(
            type=raw.get('type'),
            keywords=list(raw.get('keywords') or []),
            conditions=raw.get('conditions'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'keywords': self.keywords,
            'conditions': self.conditions,
        }


@dataclass
class Flow:
    """Versioned flow definition; immutable for the life of a version."""
    id: str
    tenant_id: str
    name: str
    graph: FlowGraph
    status: str = FlowStatus.DRAFT.value
    version: int = 1
    trigger_config: Optional[TriggerConfig] = None

    @property
    def is_active(self) -> bool:
        return self.status == FlowStatus.ACTIVE.value

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'Flow':
        return cls(
            id=str(raw.get('id')),
            tenant_id=str(raw.get('tenantId')),
            name=raw.get('name') or '',
            graph=FlowGraph.from_dict(raw.get('graph') or raw.get('flowData')),
            status=raw.get('status') or FlowStatus.DRAFT.value,
            version=int(raw.get('version') or 1),
            trigger_config=TriggerConfig.from_dict(raw.get('triggerConfig')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'tenantId': self.tenant_id,
            'name': self.name,
            'status': self.status,
            'version': self.version,
            'graph': self.graph.to_dict(),
            'triggerConfig': self.trigger_config.to_dict() if self.trigger_config else None,
        }

    def snapshot(self) -> Dict[str, Any]:
        """Frozen copy of the definition an execution pins itself to."""
        return copy.deepcopy(self.to_dict())
