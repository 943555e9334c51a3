"""
Collaborator interfaces consumed by node handlers.

The engine never talks to the messaging platform, the contact store or
external APIs directly: handlers receive these through HandlerContext, and
the application wires concrete implementations (see chatflow.services).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class CollaboratorError(Exception):
    """A side effect failed in a way the flow author can route around"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class MessagingService(ABC):
    @abstractmethod
    async def send_outbound_message(self, tenant_id: str, conversation_id: str, text: str) -> str:
        """Send text to the conversation; returns the created message id."""


class ContactService(ABC):
    @abstractmethod
    async def update_contact(self, tenant_id: str, contact_id: str, fields: Dict[str, Any]) -> None: ...


class ConversationService(ABC):
    @abstractmethod
    async def assign_conversation(self, tenant_id: str, conversation_id: str, agent_id: str) -> None: ...

    @abstractmethod
    async def add_tag(self, tenant_id: str, conversation_id: str, tag: str) -> None: ...

    @abstractmethod
    async def remove_tag(self, tenant_id: str, conversation_id: str, tag: str) -> None: ...


@dataclass
class HttpResponse:
    status_code: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)


class HttpClient(ABC):
    """Outbound HTTP for apiRequest and webhook nodes."""

    @abstractmethod
    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """
        Perform a request.

        Raises:
            CollaboratorError: On transport errors, timeouts and non-2xx answers
        """


class SheetsService(ABC):
    """Google Sheets operations used by googleSheets nodes."""

    @abstractmethod
    async def append_rows(self, spreadsheet_id: str, range_: str, values: List[List[Any]]) -> Dict[str, Any]: ...

    @abstractmethod
    async def update_range(self, spreadsheet_id: str, range_: str, values: List[List[Any]]) -> Dict[str, Any]: ...

    @abstractmethod
    async def read_range(self, spreadsheet_id: str, range_: str) -> List[List[Any]]: ...
