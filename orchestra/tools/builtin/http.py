"""
HTTP request tools.

This module provides ``http_get`` and ``http_post`` tools. Secret tokens
(``${{NAME}}``) in the URL, body and headers are resolved right before the
request is sent, so secret values never pass through the model.
"""

import json
import logging
from typing import Any
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel, Field

from orchestra.constants import DEFAULT_HTTP_TIMEOUT
from orchestra.tools.base import Tool, ToolInvocation
from orchestra.tools.models import ToolResult
from orchestra.tools.secrets import SecretStore

logger = logging.getLogger(__name__)

MAX_RESPONSE_CHARS: int = 50_000


class HttpGetParams(BaseModel):
    """Parameters for the http_get tool."""

    url: str = Field(..., description="URL to fetch. May contain ${{SECRET_NAME}} tokens")


class HttpPostParams(BaseModel):
    """
    Parameters for the http_post tool.

    Parameters
    ----------
    url : str
        URL to post to.
    body : str
        Request body, usually JSON text.
    headers : str | None, optional
        JSON object of extra headers.
    """

    url: str = Field(..., description="URL to post to. May contain ${{SECRET_NAME}} tokens")
    body: str = Field(..., min_length=1, description="Request body (usually JSON)")
    headers: str | None = Field(
        None,
        description="Optional JSON object of extra headers. May contain ${{SECRET_NAME}} tokens",
    )


class _HttpTool(Tool):
    """Shared request handling for the HTTP tools."""

    def __init__(
        self,
        secrets: SecretStore,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.secrets: SecretStore = secrets
        self._transport: httpx.AsyncBaseTransport | None = transport

    async def _request(
        self,
        call_id: str,
        method: str,
        url: str,
        content: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> ToolResult:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            return ToolResult.error_result(call_id, "URL must be http:// or https://")

        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(DEFAULT_HTTP_TIMEOUT),
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.request(method, url, content=content, headers=headers)
        except httpx.TimeoutException:
            return ToolResult.error_result(
                call_id,
                f"Request timed out after {DEFAULT_HTTP_TIMEOUT:.0f} seconds",
            )
        except httpx.HTTPError as e:
            logger.warning(f"{method} request to {parsed.netloc} failed: {e}")
            return ToolResult.error_result(call_id, f"HTTP request failed: {e}")

        if not response.is_success:
            return ToolResult.error_result(
                call_id,
                f"HTTP error: {response.status_code} {response.reason_phrase}",
            )

        text: str
        if "application/json" in response.headers.get("content-type", ""):
            try:
                text = json.dumps(response.json(), indent=2)
            except ValueError:
                text = response.text
        else:
            text = response.text

        if len(text) > MAX_RESPONSE_CHARS:
            text = text[:MAX_RESPONSE_CHARS] + "\n\n[Content truncated...]"

        return ToolResult.success_result(call_id, text)


class HttpGetTool(_HttpTool):
    """Tool for HTTP GET requests."""

    name: str = "http_get"
    description: str = (
        "Make an HTTP GET request and return the response body. "
        "Use ${{SECRET_NAME}} tokens for API keys"
    )
    schema: type[HttpGetParams] = HttpGetParams

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = HttpGetParams(**invocation.params)
        url: str = self.secrets.resolve_tokens(params.url)
        return await self._request(invocation.call_id, "GET", url)


class HttpPostTool(_HttpTool):
    """Tool for HTTP POST requests with a JSON content type by default."""

    name: str = "http_post"
    description: str = (
        "Make an HTTP POST request and return the response body. "
        "Use ${{SECRET_NAME}} tokens for API keys"
    )
    schema: type[HttpPostParams] = HttpPostParams

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        params = HttpPostParams(**invocation.params)
        headers: dict[str, str] = {"Content-Type": "application/json"}

        if params.headers:
            try:
                custom: Any = json.loads(self.secrets.resolve_tokens(params.headers))
            except json.JSONDecodeError:
                return ToolResult.error_result(invocation.call_id, "Invalid headers JSON format")
            if not isinstance(custom, dict):
                return ToolResult.error_result(invocation.call_id, "Invalid headers JSON format")
            headers.update({str(k): str(v) for k, v in custom.items()})

        return await self._request(
            invocation.call_id,
            "POST",
            self.secrets.resolve_tokens(params.url),
            content=self.secrets.resolve_tokens(params.body),
            headers=headers,
        )
