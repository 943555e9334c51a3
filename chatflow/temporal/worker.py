"""
Worker Temporal - Executa workflows e activities.

Para executar:
    python -m chatflow.temporal.worker

Ou via módulo:
    from chatflow.temporal.worker import run_worker
    asyncio.run(run_worker())
"""
import asyncio
import logging
import sys

from temporalio.worker import Worker

from .client import get_temporal_client
from .config import get_config
from .workflows import FlowContinuationWorkflow
from .activities import ALL_ACTIVITIES

# Configurar logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def run_worker():
    """Inicia o worker Temporal (requer contexto Flask ativo)."""
    config = get_config()

    logger.info(f"Task Queue: {config.task_queue}")

    # Mesmo cliente que o TemporalScheduler usa nas activities deste loop
    client = await get_temporal_client()

    logger.info("Conexão estabelecida com sucesso!")

    async with Worker(
        client,
        task_queue=config.task_queue,
        workflows=[FlowContinuationWorkflow],
        activities=ALL_ACTIVITIES,
    ):
        logger.info(f"Worker iniciado na task queue: {config.task_queue}")
        logger.info(f"Activities registradas: {len(ALL_ACTIVITIES)}")

        # Manter worker rodando
        await asyncio.Future()


def main():
    """Entry point para execução via CLI"""
    from chatflow import create_app
    app = create_app()

    # Rodar worker dentro do contexto Flask
    with app.app_context():
        try:
            asyncio.run(run_worker())
        except KeyboardInterrupt:
            logger.info("Worker interrompido pelo usuário")
        except Exception as e:
            logger.exception(f"Erro no worker: {e}")
            sys.exit(1)


if __name__ == "__main__":
    main()
