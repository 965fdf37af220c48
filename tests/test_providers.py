import json
from typing import Any, Callable

import httpx
import pytest
from openai import AsyncOpenAI

from orchestra.exceptions import (
    ProviderError,
    ProviderNotInitializedError,
    ProviderOverloadedError,
    ValidationError,
)
from orchestra.llm.models import (
    CancellationToken,
    ChatOptions,
    Message,
    MessageRole,
    StopReason,
    ToolRound,
)
from orchestra.llm.providers.anthropic import AnthropicProvider
from orchestra.llm.providers.base import ToolCallAccumulator
from orchestra.llm.providers.gemini import GeminiProvider, to_gemini_schema
from orchestra.llm.providers.ollama import OllamaProvider, format_model_name
from orchestra.llm.providers.openai import OpenAIProvider, map_finish_reason
from orchestra.tools.models import ToolCall, ToolDefinition, ToolResult

Handler = Callable[[httpx.Request], httpx.Response]


def _sse(*events: dict[str, Any]) -> str:
    return "".join(f"event: {e.get('type', 'message')}\ndata: {json.dumps(e)}\n\n" for e in events)


def _client(handler: Handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _messages(text: str = "Hi") -> list[Message]:
    return [
        Message(role=MessageRole.USER, content=text),
        Message(role=MessageRole.LOG, content="trigger checked"),
    ]


ANTHROPIC_TEXT_STREAM = _sse(
    {"type": "message_start", "message": {"id": "msg_1", "usage": {"input_tokens": 12}}},
    {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Hello"}},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": " there"}},
    {"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {"output_tokens": 4}},
    {"type": "message_stop"},
)

ANTHROPIC_TOOL_STREAM = _sse(
    {"type": "message_start", "message": {"id": "msg_2", "usage": {"input_tokens": 20}}},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Let me check."}},
    {
        "type": "content_block_start",
        "index": 1,
        "content_block": {"type": "tool_use", "id": "toolu_1", "name": "http_get", "input": {}},
    },
    {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": '{"url": '}},
    {
        "type": "content_block_delta",
        "index": 1,
        "delta": {"type": "input_json_delta", "partial_json": '"https://example.com"}'},
    },
    {"type": "message_delta", "delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 30}},
)


@pytest.mark.asyncio
async def test_anthropic_streams_text_and_usage():
    seen: list[httpx.Request] = []
    chunks: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=ANTHROPIC_TEXT_STREAM)

    provider = AnthropicProvider(client=_client(handler))
    provider.initialize("sk-ant-test")

    result = await provider.send_message(
        _messages(),
        ChatOptions(model="claude-sonnet-4-5-20250929", system_prompt="Be brief.", on_chunk=chunks.append),
    )

    assert result.content == "Hello there"
    assert chunks == ["Hello", " there"]
    assert result.stop_reason == StopReason.END_TURN
    assert result.usage.input_tokens == 12
    assert result.usage.output_tokens == 4
    assert result.usage.response_id == "msg_1"

    request = seen[0]
    body = json.loads(request.content)
    assert request.headers["x-api-key"] == "sk-ant-test"
    assert body["system"] == "Be brief."
    assert body["stream"] is True
    assert body["messages"] == [{"role": "user", "content": "Hi"}]


@pytest.mark.asyncio
async def test_anthropic_accumulates_tool_calls():
    announced: list[str] = []
    provider = AnthropicProvider(client=_client(lambda request: httpx.Response(200, text=ANTHROPIC_TOOL_STREAM)))
    provider.initialize("sk-ant-test")

    result = await provider.send_message(
        _messages(),
        ChatOptions(model="claude-sonnet-4-5-20250929", on_tool_use=lambda t: announced.append(t.name)),
    )

    assert result.stop_reason == StopReason.TOOL_USE
    assert result.content == "Let me check."
    assert announced == ["http_get"]
    assert [(c.id, c.name, c.input) for c in result.tool_calls] == [
        ("toolu_1", "http_get", {"url": "https://example.com"})
    ]


@pytest.mark.asyncio
async def test_anthropic_replays_tool_rounds():
    bodies: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, text=ANTHROPIC_TEXT_STREAM)

    provider = AnthropicProvider(client=_client(handler))
    provider.initialize("sk-ant-test")
    history = [
        ToolRound(
            text_content="Let me check.",
            tool_calls=[ToolCall(id="toolu_1", name="http_get", input={"url": "https://example.com"})],
            tool_results=[ToolResult.error_result("toolu_1", "HTTP error: 500")],
        )
    ]

    await provider.send_message_with_tool_results(
        _messages(),
        history,
        ChatOptions(
            model="claude-sonnet-4-5-20250929",
            tools=[ToolDefinition(name="http_get", description="Fetch a URL")],
        ),
    )

    body = bodies[0]
    assert body["tools"][0]["name"] == "http_get"
    assert body["messages"][1] == {
        "role": "assistant",
        "content": [
            {"type": "text", "text": "Let me check."},
            {"type": "tool_use", "id": "toolu_1", "name": "http_get", "input": {"url": "https://example.com"}},
        ],
    }
    assert body["messages"][2] == {
        "role": "user",
        "content": [
            {"type": "tool_result", "tool_use_id": "toolu_1", "content": "HTTP error: 500", "is_error": True}
        ],
    }


@pytest.mark.asyncio
async def test_anthropic_retries_overloaded_responses():
    delays: list[float] = []
    attempts: list[int] = []

    async def record_sleep(seconds: float) -> None:
        delays.append(seconds)

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) == 1:
            return httpx.Response(529, json={"type": "error", "error": {"type": "overloaded_error"}})
        return httpx.Response(200, text=ANTHROPIC_TEXT_STREAM)

    provider = AnthropicProvider(sleep=record_sleep, client=_client(handler))
    provider.initialize("sk-ant-test")

    result = await provider.send_message(_messages(), ChatOptions(model="claude-haiku-4-5-20251001"))

    assert result.content == "Hello there"
    assert delays == [1.0]


@pytest.mark.asyncio
async def test_anthropic_gives_up_after_three_overloads():
    async def no_sleep(seconds: float) -> None:
        return None

    provider = AnthropicProvider(
        sleep=no_sleep,
        client=_client(lambda request: httpx.Response(529, text="overloaded_error")),
    )
    provider.initialize("sk-ant-test")

    with pytest.raises(ProviderOverloadedError, match="Anthropic API is overloaded"):
        await provider.send_message(_messages(), ChatOptions(model="claude-haiku-4-5-20251001"))


@pytest.mark.asyncio
async def test_anthropic_permanent_errors_are_not_retried():
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        return httpx.Response(401, json={"error": {"type": "authentication_error"}})

    provider = AnthropicProvider(client=_client(handler))
    provider.initialize("bad-key")

    with pytest.raises(ProviderError) as exc_info:
        await provider.send_message(_messages(), ChatOptions(model="claude-haiku-4-5-20251001"))

    assert exc_info.value.status_code == 401
    assert len(attempts) == 1


@pytest.mark.asyncio
async def test_anthropic_stream_error_event_raises():
    stream = _sse({"type": "error", "error": {"type": "api_error", "message": "Internal failure"}})
    provider = AnthropicProvider(client=_client(lambda request: httpx.Response(200, text=stream)))
    provider.initialize("sk-ant-test")

    with pytest.raises(ProviderError, match="Internal failure"):
        await provider.send_message(_messages(), ChatOptions(model="claude-haiku-4-5-20251001"))


@pytest.mark.asyncio
async def test_anthropic_cancellation_returns_partial_content():
    token = CancellationToken()
    provider = AnthropicProvider(client=_client(lambda request: httpx.Response(200, text=ANTHROPIC_TEXT_STREAM)))
    provider.initialize("sk-ant-test")

    def on_chunk(text: str) -> None:
        token.cancel()

    result = await provider.send_message(
        _messages(),
        ChatOptions(model="claude-haiku-4-5-20251001", on_chunk=on_chunk, cancellation=token),
    )

    assert result.content == "Hello"
    assert result.stop_reason == StopReason.END_TURN
    assert result.tool_calls == []


@pytest.mark.asyncio
async def test_uninitialized_provider_raises():
    provider = AnthropicProvider(client=_client(lambda request: httpx.Response(200)))

    with pytest.raises(ProviderNotInitializedError):
        await provider.send_message(_messages(), ChatOptions(model="claude-haiku-4-5-20251001"))


@pytest.mark.asyncio
async def test_title_falls_back_to_user_message_on_failure():
    provider = AnthropicProvider(client=_client(lambda request: httpx.Response(400, text="bad")))
    provider.initialize("sk-ant-test")

    title = await provider.generate_title("x" * 80, "answer")

    assert title == "x" * 50


@pytest.mark.asyncio
async def test_gemini_synthesizes_call_ids_and_keeps_signatures():
    stream = _sse(
        {
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {"text": "Searching."},
                            {"functionCall": {"name": "web_search", "args": {"query": "news"}}, "thoughtSignature": "sig=="},
                        ]
                    },
                    "finishReason": "STOP",
                }
            ],
            "usageMetadata": {"promptTokenCount": 7, "candidatesTokenCount": 3},
        }
    )
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=stream)

    provider = GeminiProvider(client=_client(handler))
    provider.initialize("gem-key")

    result = await provider.send_message(_messages(), ChatOptions(model="gemini-2.5-flash"))

    assert result.content == "Searching."
    assert result.stop_reason == StopReason.TOOL_USE
    call = result.tool_calls[0]
    assert call.id.startswith("gemini-call-")
    assert call.input == {"query": "news"}
    assert call.provider_data == {"thought_signature": "sig=="}
    assert result.usage.output_tokens == 3
    assert "models/gemini-2.5-flash:streamGenerateContent" in str(seen[0].url)
    assert seen[0].headers["x-goog-api-key"] == "gem-key"


def test_gemini_replays_thought_signature():
    history = [
        ToolRound(
            tool_calls=[
                ToolCall(
                    id="gemini-call-1-0",
                    name="web_search",
                    input={"query": "news"},
                    provider_data={"thought_signature": "sig=="},
                )
            ],
            tool_results=[ToolResult.success_result("gemini-call-1-0", "results")],
        )
    ]

    contents = GeminiProvider._convert_tool_history(history)

    assert contents[0]["parts"][0]["thoughtSignature"] == "sig=="
    assert contents[1]["parts"][0]["functionResponse"] == {
        "name": "web_search",
        "response": {"content": "results"},
    }


def test_gemini_schema_conversion():
    schema = {
        "type": "object",
        "title": "Params",
        "additionalProperties": False,
        "properties": {
            "query": {"type": "string", "title": "Query"},
            "tags": {"type": "array", "items": {"type": "string", "title": "Tag"}},
        },
        "required": ["query"],
    }

    assert to_gemini_schema(schema) == {
        "type": "OBJECT",
        "properties": {
            "query": {"type": "STRING"},
            "tags": {"type": "ARRAY", "items": {"type": "STRING"}},
        },
        "required": ["query"],
    }


@pytest.mark.asyncio
async def test_ollama_streams_json_lines():
    lines = "\n".join(
        json.dumps(chunk)
        for chunk in [
            {"message": {"role": "assistant", "content": "Hel"}, "done": False},
            {"message": {"role": "assistant", "content": "lo"}, "done": False},
            {"message": {"content": ""}, "done": True, "done_reason": "stop", "prompt_eval_count": 5, "eval_count": 2},
        ]
    )
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=lines)

    provider = OllamaProvider(client=_client(handler))
    provider.initialize("http://localhost:11434/")

    result = await provider.send_message(_messages(), ChatOptions(model="llama3:8b", system_prompt="Be brief."))

    assert result.content == "Hello"
    assert result.usage.input_tokens == 5
    assert str(seen[0].url) == "http://localhost:11434/api/chat"
    assert json.loads(seen[0].content)["messages"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "Hi"},
    ]


@pytest.mark.asyncio
async def test_ollama_discovers_models():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"models": [{"name": "llama3:8b"}, {"name": "mistral"}]})

    provider = OllamaProvider(client=_client(handler))
    provider.initialize("http://localhost:11434")

    models = await provider.discover_models()

    assert [(m.key, m.name) for m in models] == [
        ("ollama/llama3:8b", "Llama 3 (8B)"),
        ("ollama/mistral", "Mistral"),
    ]
    assert await provider.get_available_models() == models


@pytest.mark.asyncio
async def test_ollama_unreachable_server_has_no_models():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    provider = OllamaProvider(client=_client(handler))
    provider.initialize("http://localhost:11434")

    assert await provider.discover_models() == []


@pytest.mark.parametrize(
    ("tag", "expected"),
    [
        ("llama3:8b", "Llama 3 (8B)"),
        ("mistral", "Mistral"),
        ("qwen2.5:14b", "Qwen 2.5 (14B)"),
    ],
)
def test_format_model_name(tag, expected):
    assert format_model_name(tag) == expected


@pytest.mark.asyncio
async def test_openai_streams_text_and_tool_calls():
    chunks = [
        {"choices": [{"index": 0, "delta": {"role": "assistant", "content": "Checking"}, "finish_reason": None}]},
        {
            "choices": [
                {
                    "index": 0,
                    "delta": {
                        "tool_calls": [
                            {"index": 0, "id": "call_1", "type": "function", "function": {"name": "http_get", "arguments": '{"url"'}}
                        ]
                    },
                    "finish_reason": None,
                }
            ]
        },
        {
            "choices": [
                {
                    "index": 0,
                    "delta": {"tool_calls": [{"index": 0, "function": {"arguments": ': "https://example.com"}'}}]},
                    "finish_reason": None,
                }
            ]
        },
        {"choices": [{"index": 0, "delta": {}, "finish_reason": "tool_calls"}]},
        {"choices": [], "usage": {"prompt_tokens": 9, "completion_tokens": 6, "total_tokens": 15}},
    ]
    body = "".join(
        "data: " + json.dumps({"id": "chatcmpl-1", "object": "chat.completion.chunk", "created": 1, "model": "gpt-4o", **chunk}) + "\n\n"
        for chunk in chunks
    ) + "data: [DONE]\n\n"
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    client = AsyncOpenAI(api_key="sk-test", max_retries=0, http_client=_client(handler))
    provider = OpenAIProvider(client=client)

    result = await provider.send_message(
        _messages(),
        ChatOptions(model="gpt-4o", system_prompt="Be brief."),
    )

    assert result.content == "Checking"
    assert result.stop_reason == StopReason.TOOL_USE
    assert [(c.id, c.name, c.input) for c in result.tool_calls] == [
        ("call_1", "http_get", {"url": "https://example.com"})
    ]
    assert result.usage.input_tokens == 9
    request_body = json.loads(seen[0].content)
    assert request_body["messages"][0] == {"role": "system", "content": "Be brief."}
    assert len(request_body["messages"]) == 2


def test_openai_replays_tool_rounds_as_tool_messages():
    history = [
        ToolRound(
            tool_calls=[ToolCall(id="call_1", name="http_get", input={"url": "https://example.com"})],
            tool_results=[ToolResult.success_result("call_1", "<html>")],
        )
    ]

    converted = OpenAIProvider._convert_tool_history(history)

    assert converted[0]["content"] is None
    assert converted[0]["tool_calls"][0]["function"]["arguments"] == '{"url": "https://example.com"}'
    assert converted[1] == {"role": "tool", "tool_call_id": "call_1", "content": "<html>"}


def test_map_finish_reason():
    assert map_finish_reason("stop", False) == StopReason.END_TURN
    assert map_finish_reason("tool_calls", False) == StopReason.END_TURN
    assert map_finish_reason(None, True) == StopReason.TOOL_USE
    assert map_finish_reason("length", False) == StopReason.MAX_TOKENS


def test_accumulator_drops_calls_with_invalid_arguments():
    accumulator = ToolCallAccumulator()
    accumulator.start(0, "call_1", "http_get")
    accumulator.append_arguments(0, '{"url": ')
    accumulator.start(1, "call_2", "web_search")
    accumulator.append_arguments(1, '{"query": "news"}')

    calls = accumulator.finish()

    assert [c.id for c in calls] == ["call_2"]
    assert [t.name for t in accumulator.tool_uses] == ["http_get", "web_search"]


def test_tool_round_requires_one_result_per_call():
    with pytest.raises(ValidationError):
        ToolRound(
            tool_calls=[ToolCall(id="a", name="echo"), ToolCall(id="b", name="echo")],
            tool_results=[ToolResult.success_result("a", "ok")],
        )


def test_accumulator_names_calls_without_vendor_ids():
    accumulator = ToolCallAccumulator()
    accumulator.start(0, "", "http_get")
    accumulator.append_arguments(0, '{"url": "https://example.com"}')
    accumulator.start(1, "", "web_search")
    accumulator.append_arguments(1, '{"query": "news"}')

    calls = accumulator.finish()

    assert [c.id for c in calls] == ["call-0", "call-1"]
    ToolRound(
        tool_calls=calls,
        tool_results=[ToolResult.success_result(c.id, "ok") for c in calls],
    )


ANTHROPIC_OVERLOADED_STREAM = _sse(
    {"type": "message_start", "message": {"id": "msg_0", "usage": {"input_tokens": 12}}},
    {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}},
)


@pytest.mark.asyncio
async def test_anthropic_retries_overload_reported_inside_stream():
    delays: list[float] = []
    attempts: list[int] = []

    async def record_sleep(seconds: float) -> None:
        delays.append(seconds)

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) <= 2:
            return httpx.Response(200, text=ANTHROPIC_OVERLOADED_STREAM)
        return httpx.Response(200, text=ANTHROPIC_TEXT_STREAM)

    provider = AnthropicProvider(sleep=record_sleep, client=_client(handler))
    provider.initialize("sk-ant-test")

    result = await provider.send_message(_messages(), ChatOptions(model="claude-haiku-4-5-20251001"))

    assert result.content == "Hello there"
    assert len(attempts) == 3
    assert delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_anthropic_stream_overloads_exhaust_retries():
    async def no_sleep(seconds: float) -> None:
        return None

    provider = AnthropicProvider(
        sleep=no_sleep,
        client=_client(lambda request: httpx.Response(200, text=ANTHROPIC_OVERLOADED_STREAM)),
    )
    provider.initialize("sk-ant-test")

    with pytest.raises(ProviderOverloadedError, match="Anthropic API is overloaded"):
        await provider.send_message(_messages(), ChatOptions(model="claude-haiku-4-5-20251001"))


@pytest.mark.asyncio
async def test_gemini_retries_unavailable_error_event():
    attempts: list[int] = []
    good = _sse({"candidates": [{"content": {"parts": [{"text": "Sunny."}]}, "finishReason": "STOP"}]})
    unavailable = _sse({"error": {"code": 503, "status": "UNAVAILABLE", "message": "The model is overloaded."}})

    async def no_sleep(seconds: float) -> None:
        return None

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        return httpx.Response(200, text=unavailable if len(attempts) == 1 else good)

    provider = GeminiProvider(sleep=no_sleep, client=_client(handler))
    provider.initialize("gem-key")

    result = await provider.send_message(_messages(), ChatOptions(model="gemini-2.5-flash"))

    assert result.content == "Sunny."
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_openai_retries_overload_error_chunk():
    attempts: list[int] = []
    delays: list[float] = []
    overloaded = 'data: {"error": {"message": "Overloaded", "type": "server_error"}}\n\n'
    good = (
        "data: "
        + json.dumps(
            {
                "id": "chatcmpl-2",
                "object": "chat.completion.chunk",
                "created": 1,
                "model": "gpt-4o",
                "choices": [{"index": 0, "delta": {"content": "Done"}, "finish_reason": "stop"}],
            }
        )
        + "\n\ndata: [DONE]\n\n"
    )

    async def record_sleep(seconds: float) -> None:
        delays.append(seconds)

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        body = overloaded if len(attempts) == 1 else good
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    client = AsyncOpenAI(api_key="sk-test", max_retries=0, http_client=_client(handler))
    provider = OpenAIProvider(client=client, sleep=record_sleep)

    result = await provider.send_message(_messages(), ChatOptions(model="gpt-4o"))

    assert result.content == "Done"
    assert result.stop_reason == StopReason.END_TURN
    assert len(attempts) == 2
    assert delays == [1.0]
