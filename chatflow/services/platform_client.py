"""
Messaging platform client - messages, contacts and conversations over its REST API

Implements the messaging, contact and conversation collaborators the node
handlers use. Every call carries the tenant in the X-Tenant-ID header.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from chatflow.flow_engine.collaborators import (
    CollaboratorError,
    ContactService,
    ConversationService,
    MessagingService,
)
from chatflow.services.http_client import parse_body

logger = logging.getLogger(__name__)


class PlatformClient(MessagingService, ContactService, ConversationService):
    def __init__(
        self,
        base_url: str,
        token: str = '',
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self._transport = transport

    def _headers(self, tenant_id: Optional[str]) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.token:
            headers['Authorization'] = f'Bearer {self.token}'
        if tenant_id:
            headers['X-Tenant-ID'] = str(tenant_id)
        return headers

    async def _request(self, method: str, path: str, tenant_id: Optional[str], json: Any = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, json=json, headers=self._headers(tenant_id))
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise CollaboratorError(f"Platform API {method} {path} answered {status_code}", status_code=status_code) from e
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Platform API {method} {path} failed: {e}") from e

        return parse_body(response)

    async def send_outbound_message(self, tenant_id: str, conversation_id: str, text: str) -> str:
        result = await self._request(
            'POST',
            f"/conversations/{conversation_id}/messages",
            tenant_id,
            json={'content': text, 'direction': 'outbound'},
        )
        message_id = result.get('id') if isinstance(result, dict) else None
        logger.info(f"Sent message {message_id} to conversation {conversation_id}")
        return message_id

    async def update_contact(self, tenant_id: str, contact_id: str, fields: Dict[str, Any]) -> None:
        await self._request('PATCH', f"/contacts/{contact_id}", tenant_id, json=fields)

    async def assign_conversation(self, tenant_id: str, conversation_id: str, agent_id: str) -> None:
        await self._request('POST', f"/conversations/{conversation_id}/assign", tenant_id, json={'agentId': agent_id})

    async def add_tag(self, tenant_id: str, conversation_id: str, tag: str) -> None:
        await self._request('POST', f"/conversations/{conversation_id}/tags", tenant_id, json={'tag': tag})

    async def remove_tag(self, tenant_id: str, conversation_id: str, tag: str) -> None:
        await self._request('DELETE', f"/conversations/{conversation_id}/tags/{quote(tag, safe='')}", tenant_id)
