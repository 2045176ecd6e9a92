"""Authenticated dispatcher for the ChatGPT Codex backend."""

import uuid
from typing import Any, Dict, Optional

import httpx

from codex_openai_proxy.core.auth import CodexCredentials
from codex_openai_proxy.core.exceptions import UpstreamAuthRejected, UpstreamError
from codex_openai_proxy.utils.logger import get_logger

logger = get_logger(__name__)


class CodexClient:
    """Sends Responses API requests with Codex credentials attached."""

    def __init__(
        self,
        credentials: CodexCredentials,
        url: str,
        timeout: float = 600,
        user_agent: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.credentials = credentials
        self.url = url
        self.timeout = timeout
        self.user_agent = user_agent
        self.transport = transport

    def build_headers(self, stream: bool) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if stream else "application/json",
            "OpenAI-Beta": "responses=experimental",
            "originator": "codex_cli_rs",
            "session_id": str(uuid.uuid4()),
        }
        if self.user_agent:
            headers["User-Agent"] = self.user_agent
        headers.update(self.credentials.auth_headers())
        return headers

    def new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def send(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> httpx.Response:
        """
        Send a request and return the response with its body still unread.

        The caller owns the response and must close it.

        Raises:
            UpstreamAuthRejected: backend answered 401 or 403
            UpstreamError: any other non-success status or a transport failure
        """
        stream = bool(payload.get("stream"))
        request = client.build_request(
            "POST", self.url, json=payload, headers=self.build_headers(stream)
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.error(f"Codex backend request failed: {e}")
            raise UpstreamError(f"Failed to reach Codex backend: {e}") from e

        if response.is_success:
            return response

        try:
            body = (await response.aread()).decode("utf-8", errors="replace")
        finally:
            await response.aclose()

        logger.error(f"Codex backend returned {response.status_code}: {body[:500]}")
        if response.status_code in (401, 403):
            raise UpstreamAuthRejected(
                response.status_code, f"Codex backend rejected credentials: {body[:500]}"
            )
        raise UpstreamError(f"Codex backend returned {response.status_code} with body: {body[:500]}")
