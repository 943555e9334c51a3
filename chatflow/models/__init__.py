from .flow import FlowDefinition, FlowExecutionRecord

__all__ = [
    'FlowDefinition',
    'FlowExecutionRecord',
]
