"""
Flow Triggers - decide which flow (if any) an inbound event starts

At most one flow starts per event: active flows are scanned in repository
order and the first match wins.
"""

import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from chatflow.flow_engine.executor import ExecutionEngine
from chatflow.flow_engine.execution import ExecutionStatus, FlowExecution
from chatflow.flow_engine.graph import Flow, TriggerType
from chatflow.flow_engine.repositories import FlowRepository

logger = logging.getLogger(__name__)

WebhookExecutionStarter = Callable[[Flow, Dict[str, Any]], Awaitable[Optional[FlowExecution]]]


def match_keywords(keywords: Optional[List[str]], message: Optional[str]) -> bool:
    """
    Case-insensitive keyword match.

    A keyword matches when it equals the whole trimmed message or appears in
    it as a whole word.
    """
    if not keywords or not message:
        return False

    normalized = message.strip().lower()
    for keyword in keywords:
        if not keyword or not keyword.strip():
            continue
        candidate = keyword.strip().lower()
        if normalized == candidate:
            return True
        if re.search(rf'\b{re.escape(candidate)}\b', message, re.IGNORECASE):
            return True
    return False


def match_webhook_conditions(conditions: Optional[Dict[str, Any]], payload: Optional[Dict[str, Any]]) -> bool:
    """Every declared key must equal the payload's value. No conditions match everything."""
    if not conditions:
        return True
    payload = payload or {}
    return all(key in payload and payload[key] == value for key, value in conditions.items())


class TriggerMatcher:
    """Pure selection over a list of active flows."""

    @staticmethod
    def _of_type(flows: List[Flow], trigger_type: TriggerType) -> List[Flow]:
        return [
            flow for flow in flows
            if flow.is_active and flow.trigger_config and flow.trigger_config.type == trigger_type.value
        ]

    def select_for_message(self, flows: List[Flow], message: str) -> Optional[Flow]:
        for flow in self._of_type(flows, TriggerType.KEYWORD):
            if match_keywords(flow.trigger_config.keywords, message):
                return flow
        return None

    def select_for_welcome(self, flows: List[Flow]) -> Optional[Flow]:
        welcome = self._of_type(flows, TriggerType.WELCOME)
        return welcome[0] if welcome else None

    def select_for_webhook(self, flows: List[Flow], payload: Dict[str, Any]) -> Optional[Flow]:
        for flow in self._of_type(flows, TriggerType.WEBHOOK):
            if match_webhook_conditions(flow.trigger_config.conditions, payload):
                return flow
        return None


class FlowTriggerService:
    """
    Entry points for inbound events.

    Webhook matches have no conversation or contact to run against. Unless a
    webhook_execution_starter is given (it decides how to find or create
    them), a webhook match is only logged.
    """

    def __init__(
        self,
        flows: FlowRepository,
        engine: ExecutionEngine,
        matcher: Optional[TriggerMatcher] = None,
        webhook_execution_starter: Optional[WebhookExecutionStarter] = None,
    ):
        self.flows = flows
        self.engine = engine
        self.matcher = matcher or TriggerMatcher()
        self.webhook_execution_starter = webhook_execution_starter

    async def handle_incoming_message(
        self,
        tenant_id: str,
        conversation_id: str,
        contact_id: str,
        message: str,
    ) -> Optional[FlowExecution]:
        flows = await self.flows.list_active_flows(tenant_id)
        flow = self.matcher.select_for_message(flows, message)
        if flow is None:
            return None

        logger.info(f"Triggering flow {flow.id} for conversation {conversation_id}")
        return await self.engine.start_execution(
            flow.id, conversation_id, contact_id, {'triggerMessage': message}, tenant_id=tenant_id
        )

    async def handle_welcome_message(
        self,
        tenant_id: str,
        conversation_id: str,
        contact_id: str,
    ) -> Optional[FlowExecution]:
        flows = await self.flows.list_active_flows(tenant_id)
        flow = self.matcher.select_for_welcome(flows)
        if flow is None:
            return None

        logger.info(f"Triggering welcome flow {flow.id} for conversation {conversation_id}")
        return await self.engine.start_execution(
            flow.id, conversation_id, contact_id, {'isWelcome': True}, tenant_id=tenant_id
        )

    async def trigger_manual_flow(
        self,
        flow_id: str,
        conversation_id: str,
        contact_id: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> FlowExecution:
        logger.info(f"Manually triggering flow {flow_id} for conversation {conversation_id}")
        return await self.engine.start_execution(flow_id, conversation_id, contact_id, context or {})

    async def handle_webhook_trigger(self, tenant_id: str, payload: Dict[str, Any]) -> Optional[Flow]:
        """
        Returns:
            The matched flow, or None
        """
        flows = await self.flows.list_active_flows(tenant_id)
        flow = self.matcher.select_for_webhook(flows, payload)
        if flow is None:
            return None

        if self.webhook_execution_starter is None:
            logger.info(f"Webhook matched flow {flow.id}; no execution starter configured")
        else:
            logger.info(f"Webhook matched flow {flow.id}, starting execution")
            await self.webhook_execution_starter(flow, payload)
        return flow

    async def route_inbound_message(
        self,
        tenant_id: str,
        conversation_id: str,
        contact_id: str,
        message: str,
    ) -> Optional[FlowExecution]:
        """
        Deliver an inbound message: it resumes the conversation's newest
        paused execution, or else goes through keyword matching.
        """
        executions = await self.engine.get_executions_by_conversation(conversation_id)
        paused = [e for e in executions if e.status == ExecutionStatus.PAUSED.value]
        if paused:
            logger.info(f"Routing message for conversation {conversation_id} to execution {paused[0].id}")
            return await self.engine.resume_execution(paused[0].id, message)

        return await self.handle_incoming_message(tenant_id, conversation_id, contact_id, message)
