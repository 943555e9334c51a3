"""
Temporal integration: durable continuations (delays, background runs) for
flow executions.
"""
from .config import get_config, is_temporal_enabled

__all__ = ['get_config', 'is_temporal_enabled']
