"""
Flow engine exceptions.

Every error raised by the engine derives from FlowEngineError and carries the
HTTP status the API layer answers with.
"""

from typing import List, Optional


class FlowEngineError(Exception):
    """Base class for flow engine errors"""

    http_status = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class FlowNotFound(FlowEngineError):
    """Flow id does not exist in the flow repository"""

    http_status = 404

    def __init__(self, flow_id: str):
        self.flow_id = flow_id
        super().__init__(f"Flow not found: {flow_id}")


class ExecutionNotFound(FlowEngineError):
    """Execution id does not exist in the execution repository"""

    http_status = 404

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution not found: {execution_id}")


class FlowInvalid(FlowEngineError):
    """Flow graph failed validation; raised before any execution is created"""

    http_status = 422

    def __init__(self, errors: List["GraphError"], flow_id: Optional[str] = None):
        self.errors = errors
        self.flow_id = flow_id
        details = '; '.join(error.message for error in errors) or 'invalid graph'
        super().__init__(f"Flow is invalid: {details}")


class NodeNotFound(FlowEngineError):
    """Execution cursor points at a node missing from the graph"""

    http_status = 404

    def __init__(self, node_id: Optional[str]):
        self.node_id = node_id
        super().__init__(f"Node {node_id} not found")


class UnknownNodeType(FlowEngineError):
    """No handler is registered for the node's type"""

    def __init__(self, node_type: Optional[str], node_id: Optional[str] = None):
        self.node_type = node_type
        self.node_id = node_id
        super().__init__(f"Unknown node type: {node_type}")


class HandlerError(FlowEngineError):
    """Unexpected exception raised inside a node handler"""

    http_status = 500

    def __init__(self, message: str, node_id: Optional[str] = None, node_type: Optional[str] = None):
        self.node_id = node_id
        self.node_type = node_type
        super().__init__(message)


class InvalidState(FlowEngineError):
    """Operation is not legal for the execution's current status"""

    http_status = 409

    def __init__(self, execution_id: str, status: str, expected: str):
        self.execution_id = execution_id
        self.status = status
        self.expected = expected
        super().__init__(
            f"Execution {execution_id} is {status}, expected {expected}"
        )


class MaxIterationsExceeded(FlowEngineError):
    """Sandbox run hit its iteration cap"""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__('Maximum iteration limit reached - possible infinite loop')


class ConcurrentModificationError(FlowEngineError):
    """Execution row changed since it was read (optimistic lock conflict)"""

    http_status = 409

    def __init__(self, execution_id: str, expected_version: Optional[int] = None):
        self.execution_id = execution_id
        self.expected_version = expected_version
        message = f"Execution {execution_id} was modified concurrently"
        if expected_version is not None:
            message += f" (expected version {expected_version})"
        super().__init__(message)
