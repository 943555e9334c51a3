"""
Cliente Temporal usado para agendar continuações de execuções de flow.

Flask executa cada view async no seu próprio event loop, então o cliente é
mantido por event loop: uma conexão criada num loop nunca é aguardada em outro.
"""
import asyncio
import logging
import weakref
from typing import Optional

from temporalio.client import Client

from .config import TemporalConfig, get_config

logger = logging.getLogger(__name__)

# Um cliente por event loop vivo
_clients: 'weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Client]' = weakref.WeakKeyDictionary()


async def connect(config: Optional[TemporalConfig] = None) -> Client:
    config = config or get_config()
    logger.info(f"Conectando ao Temporal Server: {config.address} (namespace {config.namespace})")
    return await Client.connect(config.address, namespace=config.namespace)


async def get_temporal_client() -> Client:
    """
    Retorna o cliente Temporal do event loop corrente.
    Cria a conexão na primeira chamada em cada loop.
    """
    loop = asyncio.get_running_loop()
    client = _clients.get(loop)
    if client is None:
        client = await connect()
        _clients[loop] = client
    return client
