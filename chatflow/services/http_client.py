"""
Outbound HTTP for apiRequest and webhook nodes, over httpx.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from chatflow.flow_engine.collaborators import CollaboratorError, HttpClient, HttpResponse

logger = logging.getLogger(__name__)

BODYLESS_METHODS = ('GET', 'HEAD', 'OPTIONS')


def parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpxClient(HttpClient):
    """
    Usage:
        client = HttpxClient(timeout=30)
        response = await client.request('POST', url, body={'a': 1})

    Non-2xx answers, timeouts and transport errors all raise CollaboratorError.
    """

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        method = method.upper()
        kwargs: Dict[str, Any] = {}
        if body is not None and method not in BODYLESS_METHODS:
            if isinstance(body, (dict, list)):
                kwargs['json'] = body
            else:
                kwargs['content'] = str(body)

        try:
            async with httpx.AsyncClient(timeout=timeout or self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=headers or None, **kwargs)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.warning(f"{method} {url} answered {status_code}")
            raise CollaboratorError(f"Request failed with status code {status_code}", status_code=status_code) from e
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {url} timed out")
            raise CollaboratorError(f"Request to {url} timed out") from e
        except httpx.HTTPError as e:
            logger.warning(f"{method} {url} failed: {e}")
            raise CollaboratorError(f"Request to {url} failed: {e}") from e

        return HttpResponse(
            status_code=response.status_code,
            data=parse_body(response),
            headers=dict(response.headers),
        )
