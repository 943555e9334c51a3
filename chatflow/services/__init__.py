from .flow_execution_service import FlowExecutionService, get_flow_execution_service

__all__ = ['FlowExecutionService', 'get_flow_execution_service']
