"""
Flow Engine - resumable chatbot flow execution

Walks a flow graph node by node, checkpointing the execution after every
step so it can pause for user input (or a delay) and resume from any process.
"""

from chatflow.flow_engine.dispatcher import NodeDispatcher, NodeResult
from chatflow.flow_engine.execution import ExecutionStatus, FlowExecution
from chatflow.flow_engine.executor import ExecutionEngine
from chatflow.flow_engine.graph import Flow, FlowGraph, validate_graph
from chatflow.flow_engine.sandbox import SandboxExecutor
from chatflow.flow_engine.trigger import FlowTriggerService, TriggerMatcher
from chatflow.flow_engine.variable_resolver import VariableResolver, interpolate

__all__ = [
    'ExecutionEngine',
    'ExecutionStatus',
    'Flow',
    'FlowExecution',
    'FlowGraph',
    'FlowTriggerService',
    'NodeDispatcher',
    'NodeResult',
    'SandboxExecutor',
    'TriggerMatcher',
    'VariableResolver',
    'interpolate',
    'validate_graph',
]
