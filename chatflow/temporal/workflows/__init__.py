from .flow_workflow import FlowContinuationWorkflow

__all__ = ['FlowContinuationWorkflow']
