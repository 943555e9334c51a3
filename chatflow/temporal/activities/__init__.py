from .flow_activities import continue_flow_execution

ALL_ACTIVITIES = [
    continue_flow_execution,
]

__all__ = ['ALL_ACTIVITIES', 'continue_flow_execution']
