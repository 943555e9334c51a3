"""
Configurações do Temporal.
"""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class TemporalConfig:
    """Configurações do Temporal Server"""

    # Endereço do Temporal Server (gRPC)
    address: str = os.getenv('TEMPORAL_ADDRESS', 'localhost:7233')

    # Namespace (default para desenvolvimento)
    namespace: str = os.getenv('TEMPORAL_NAMESPACE', 'default')

    # Task Queue for flow continuations
    task_queue: str = os.getenv('TEMPORAL_TASK_QUEUE', 'chatflow-executions')

    # One activity runs the loop until the execution pauses, completes or is delayed
    default_activity_timeout: int = int(os.getenv('TEMPORAL_ACTIVITY_TIMEOUT', '300'))  # 5 min

    # Retry policy defaults
    max_activity_retries: int = int(os.getenv('TEMPORAL_MAX_RETRIES', '3'))
    initial_retry_interval_seconds: int = 1
    max_retry_interval_seconds: int = 60
    retry_backoff_coefficient: float = 2.0

    @classmethod
    def from_env(cls) -> 'TemporalConfig':
        """Cria config a partir de variáveis de ambiente"""
        return cls()


class WorkflowNames:
    """Nomes dos workflows"""
    FLOW_CONTINUATION = 'FlowContinuationWorkflow'


# Singleton da config
_config: Optional[TemporalConfig] = None


def get_config() -> TemporalConfig:
    """Retorna singleton da configuração"""
    global _config
    if _config is None:
        _config = TemporalConfig.from_env()
    return _config


def is_temporal_enabled() -> bool:
    """
    Verifica se Temporal está habilitado (variáveis de ambiente configuradas).
    """
    return bool(os.getenv('TEMPORAL_ADDRESS'))
