"""
Ollama provider adapter.

This module streams chat responses from a local Ollama server
(``/api/chat`` newline-delimited JSON) and discovers installed models via
``/api/tags``. Ollama is text-only here: it does not replay tool rounds.
"""

import logging
import re
from typing import Any

import httpx

from orchestra.constants import TITLE_FALLBACK_LENGTH
from orchestra.exceptions import ConfigurationError, ProviderError
from orchestra.llm.models import (
    ChatOptions,
    ChatResult,
    Message,
    ModelInfo,
    StopReason,
    TokenUsage,
)
from orchestra.llm.providers.base import ProviderAdapter
from orchestra.llm.providers.http import (
    DEFAULT_TIMEOUT,
    VendorHTTPError,
    iter_json_lines,
    open_stream,
    wrap_http_error,
)

logger = logging.getLogger(__name__)

CONNECTION_TIMEOUT: float = 5.0


def format_model_name(name: str) -> str:
    """
    Format an Ollama model tag for display.

    Examples
    --------
    >>> format_model_name("llama3:8b")
    'Llama 3 (8B)'
    >>> format_model_name("mistral")
    'Mistral'
    """
    base, _, tag = name.partition(":")
    formatted: str = re.sub(r"([a-z])(\d)", r"\1 \2", base)
    formatted = formatted[:1].upper() + formatted[1:]
    if tag:
        formatted += f" ({tag.upper()})"
    return formatted


class OllamaProvider(ProviderAdapter):
    """
    Adapter for a local Ollama server.

    The credential is the server base URL.

    Parameters
    ----------
    client : httpx.AsyncClient | None, optional
        HTTP client to use; one is created on first use otherwise.
    """

    provider_type: str = "ollama"
    display_name: str = "Ollama"

    def __init__(self, *args: Any, client: httpx.AsyncClient | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._client: httpx.AsyncClient | None = client
        self._base_url: str | None = None
        self._cached_models: list[ModelInfo] = []

    def _on_initialize(self, credential: str) -> None:
        self._base_url = credential.rstrip("/")

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_available_models(self) -> list[ModelInfo]:
        return list(self._cached_models)

    async def discover_models(self) -> list[ModelInfo]:
        """
        Query the server for installed models and cache them.

        Returns
        -------
        list[ModelInfo]
            Installed models; empty if the server cannot be reached.

        Raises
        ------
        ConfigurationError
            If the adapter has no base URL.
        """
        if self._base_url is None:
            raise ConfigurationError(
                "Ollama not initialized. Please provide a base URL.",
                config_key="providers.ollama_base_url",
            )

        try:
            response = await self._http().get(f"{self._base_url}/api/tags")
            response.raise_for_status()
            data: dict[str, Any] = response.json()
        except httpx.HTTPError as e:
            logger.error(f"Failed to discover Ollama models: {e}")
            return []

        self._cached_models = [
            ModelInfo(key=f"{self.provider_type}/{m['name']}", name=format_model_name(m["name"]))
            for m in data.get("models", [])
            if m.get("name")
        ]
        logger.debug(f"Discovered {len(self._cached_models)} Ollama models")
        return list(self._cached_models)

    async def test_connection(self) -> tuple[bool, str | None]:
        """
        Check that the server answers.

        Returns
        -------
        tuple[bool, str | None]
            Success flag and an error description on failure.
        """
        if self._base_url is None:
            return False, "Not initialized"
        try:
            response = await self._http().get(
                f"{self._base_url}/api/tags",
                timeout=CONNECTION_TIMEOUT,
            )
        except httpx.TimeoutException:
            return False, "Connection timeout"
        except httpx.HTTPError:
            return False, "Cannot connect to Ollama server"
        if response.is_success:
            return True, None
        return False, f"HTTP {response.status_code}"

    async def generate_title(self, user_message: str, assistant_response: str) -> str:
        """Truncate the user message; local models are not asked for titles."""
        truncated: str = user_message[:TITLE_FALLBACK_LENGTH]
        last_space: int = truncated.rfind(" ")
        return truncated[:last_space] if last_space > 20 else truncated

    async def send_message(
        self,
        messages: list[Message],
        options: ChatOptions,
    ) -> ChatResult:
        base_url: str = self._require_initialized().rstrip("/")

        payload_messages: list[dict[str, Any]] = []
        if options.system_prompt:
            payload_messages.append({"role": "system", "content": options.system_prompt})
        for message in self.provider_messages(messages):
            payload_messages.append({"role": message.role.value, "content": message.content})

        payload: dict[str, Any] = {
            "model": options.model,
            "messages": payload_messages,
            "stream": True,
        }

        try:
            response = await open_stream(self._http(), f"{base_url}/api/chat", payload)
        except (VendorHTTPError, httpx.HTTPError) as e:
            raise wrap_http_error(e, self.provider_type, self.display_name) from e

        content: str = ""
        stop_reason: StopReason = StopReason.END_TURN
        usage: TokenUsage | None = None

        try:
            async for chunk in iter_json_lines(response):
                if options.is_cancelled:
                    logger.debug("Ollama stream cancelled")
                    return ChatResult(content=content, stop_reason=StopReason.END_TURN)
                if chunk.get("error"):
                    raise ProviderError(
                        f"Ollama error: {chunk['error']}",
                        provider=self.provider_type,
                    )
                text: str = chunk.get("message", {}).get("content", "")
                if text:
                    content += text
                    if options.on_chunk:
                        options.on_chunk(text)
                if chunk.get("done"):
                    if chunk.get("done_reason") == "length":
                        stop_reason = StopReason.MAX_TOKENS
                    usage = TokenUsage(
                        input_tokens=chunk.get("prompt_eval_count", 0),
                        output_tokens=chunk.get("eval_count", 0),
                    )
        except httpx.HTTPError as e:
            raise wrap_http_error(e, self.provider_type, self.display_name) from e
        finally:
            await response.aclose()

        return ChatResult(content=content, stop_reason=stop_reason, usage=usage)
