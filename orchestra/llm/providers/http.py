"""
Shared HTTP streaming helpers for adapters built directly on ``httpx``.

The Anthropic, Gemini and Ollama adapters talk to their vendors over plain
HTTP. This module opens streaming responses (failing fast on error status
codes so the retry strategy can classify them) and iterates server-sent
event and newline-delimited JSON payloads.
"""

import json
import logging
from typing import Any, AsyncIterator

import httpx

from orchestra.exceptions import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT: httpx.Timeout = httpx.Timeout(60.0, read=300.0)


class VendorHTTPError(Exception):
    """
    An error status returned by a vendor before streaming started.

    Parameters
    ----------
    status_code : int
        HTTP status code.
    body : str
        Response body, used to classify overload signals.
    """

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"HTTP {status_code}: {body[:500]}")
        self.status_code: int = status_code
        self.body: str = body


async def open_stream(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str] | None = None,
) -> httpx.Response:
    """
    POST a JSON payload and return the streaming response.

    Parameters
    ----------
    client : httpx.AsyncClient
        Client to send the request with.
    url : str
        Endpoint URL.
    payload : dict[str, Any]
        JSON request body.
    headers : dict[str, str] | None, optional
        Extra request headers.

    Returns
    -------
    httpx.Response
        An open response; the caller must close it.

    Raises
    ------
    VendorHTTPError
        If the vendor answered with a status code of 400 or above.
    """
    request: httpx.Request = client.build_request("POST", url, json=payload, headers=headers)
    response: httpx.Response = await client.send(request, stream=True)
    if response.status_code >= 400:
        body: bytes = await response.aread()
        await response.aclose()
        raise VendorHTTPError(response.status_code, body.decode("utf-8", errors="replace"))
    return response


async def iter_sse_events(response: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """
    Iterate JSON payloads of a server-sent event stream.

    Only ``data:`` lines are read; ``[DONE]`` sentinels and payloads that
    are not JSON objects are skipped.

    Parameters
    ----------
    response : httpx.Response
        Open streaming response.

    Yields
    ------
    dict[str, Any]
        Decoded event payloads.
    """
    async for line in response.aiter_lines():
        if not line.startswith("data:"):
            continue
        data: str = line[5:].strip()
        if not data or data == "[DONE]":
            continue
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Skipping malformed stream event: {data[:200]}")
            continue
        if isinstance(event, dict):
            yield event


async def iter_json_lines(response: httpx.Response) -> AsyncIterator[dict[str, Any]]:
    """Iterate newline-delimited JSON objects from a streaming response."""
    async for line in response.aiter_lines():
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            logger.warning(f"Skipping malformed stream line: {line[:200]}")
            continue
        if isinstance(event, dict):
            yield event


def wrap_http_error(error: Exception, provider: str, display_name: str) -> ProviderError:
    """
    Convert a transport or status failure into a ``ProviderError``.

    Parameters
    ----------
    error : Exception
        The ``VendorHTTPError`` or ``httpx.HTTPError`` raised.
    provider : str
        Provider type.
    display_name : str
        Vendor name for the message.

    Returns
    -------
    ProviderError
        Error to raise, chained to ``error``.
    """
    status_code: int | None = getattr(error, "status_code", None)
    if isinstance(error, httpx.ConnectError):
        message = f"Could not connect to {display_name}: {error}"
    else:
        message = f"{display_name} API error: {error}"
    return ProviderError(message, provider=provider, status_code=status_code, cause=error)
