"""
Flow Execution Service - wires the flow engine for the Flask application

Builds the execution engine, sandbox and trigger service against the SQL
repositories and the configured collaborators. Continuations run on Temporal
when TEMPORAL_ADDRESS is set; otherwise the request that starts or resumes an
execution drives it inline.
"""

import logging
from typing import Any, Mapping, Optional

from chatflow.flow_engine.dispatcher import NodeDispatcher
from chatflow.flow_engine.executor import ExecutionEngine
from chatflow.flow_engine.repositories import ExecutionRepository, FlowRepository
from chatflow.flow_engine.sandbox import DEFAULT_MAX_ITERATIONS, SandboxExecutor
from chatflow.flow_engine.scheduler import ContinuationScheduler, InlineScheduler
from chatflow.flow_engine.trigger import FlowTriggerService, WebhookExecutionStarter
from chatflow.services.google_sheets import GoogleSheetsService
from chatflow.services.http_client import HttpxClient
from chatflow.services.platform_client import PlatformClient
from chatflow.services.sql_repositories import SqlExecutionRepository, SqlFlowRepository
from chatflow.temporal.config import is_temporal_enabled
from chatflow.temporal.service import TemporalScheduler

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'flow_execution_service'


class FlowExecutionService:
    """
    Usage:
        service = get_flow_execution_service()
        execution = await service.engine.start_execution(flow_id, conversation_id, contact_id)
        report = await service.sandbox.test_flow_execution(flow_id, test_data)
        await service.triggers.route_inbound_message(tenant_id, conversation_id, contact_id, text)
    """

    def __init__(
        self,
        flows: Optional[FlowRepository] = None,
        executions: Optional[ExecutionRepository] = None,
        dispatcher: Optional[NodeDispatcher] = None,
        scheduler: Optional[ContinuationScheduler] = None,
        sandbox_max_iterations: int = DEFAULT_MAX_ITERATIONS,
        webhook_execution_starter: Optional[WebhookExecutionStarter] = None,
    ):
        self.flows = flows or SqlFlowRepository()
        self.executions = executions or SqlExecutionRepository()
        self.dispatcher = dispatcher or NodeDispatcher()
        self.engine = ExecutionEngine(self.flows, self.executions, self.dispatcher, scheduler or InlineScheduler())
        self.sandbox = SandboxExecutor(self.flows, max_iterations=sandbox_max_iterations)
        self.triggers = FlowTriggerService(
            self.flows, self.engine, webhook_execution_starter=webhook_execution_starter
        )

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'FlowExecutionService':
        timeout = float(config.get('FLOW_HTTP_TIMEOUT_SECONDS', 30))

        platform = None
        if config.get('PLATFORM_API_URL'):
            platform = PlatformClient(config['PLATFORM_API_URL'], config.get('PLATFORM_API_TOKEN', ''), timeout=timeout)
        else:
            logger.warning("PLATFORM_API_URL not set: message, contact and conversation nodes cannot reach the platform")

        sheets = None
        if config.get('GOOGLE_SERVICE_ACCOUNT_FILE'):
            sheets = GoogleSheetsService(config['GOOGLE_SERVICE_ACCOUNT_FILE'])

        dispatcher = NodeDispatcher(
            messaging=platform,
            contacts=platform,
            conversations=platform,
            http=HttpxClient(timeout=timeout),
            sheets=sheets,
            http_timeout=timeout,
        )

        if is_temporal_enabled():
            scheduler = TemporalScheduler()
        else:
            scheduler = InlineScheduler()

        return cls(
            dispatcher=dispatcher,
            scheduler=scheduler,
            sandbox_max_iterations=int(config.get('FLOW_SANDBOX_MAX_ITERATIONS', DEFAULT_MAX_ITERATIONS)),
        )


def get_flow_execution_service() -> FlowExecutionService:
    """Service of the current Flask app, built on first use."""
    from flask import current_app

    service = current_app.extensions.get(EXTENSION_KEY)
    if service is None:
        service = FlowExecutionService.from_config(current_app.config)
        current_app.extensions[EXTENSION_KEY] = service
    return service
