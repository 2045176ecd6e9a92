"""Tests for the Codex translator against a mock backend."""

import asyncio
import json

import httpx
import pytest

from codex_openai_proxy.core.exceptions import (
    MalformedUpstream,
    ModelNotAllowed,
    UpstreamAuthRejected,
    UpstreamError,
)
from codex_openai_proxy.core.response_converter import DONE_LINE
from codex_openai_proxy.models.openai import ChatCompletionRequest, ChatMessage

from conftest import (
    completed_response,
    event_stream_response,
    parse_sse_lines,
    simple_stream,
    sse_event,
    tool_call_stream,
)


@pytest.fixture
def sample_request():
    """Create a sample chat completion request."""
    return ChatCompletionRequest(
        model="gpt-5.2-high",
        messages=[
            ChatMessage(role="system", content="You are a helpful assistant."),
            ChatMessage(role="user", content="Hello, how are you?"),
        ],
        temperature=0.7,
        max_tokens=150,
    )


def streaming(request: ChatCompletionRequest) -> ChatCompletionRequest:
    return request.model_copy(update={"stream": True})


async def drain(translator, request):
    stream = await translator.create_chat_completion_stream(request)
    return [line async for line in stream]


def test_non_streaming_over_event_stream(make_translator, sample_request):
    """Backend streams even for non-streaming requests; deltas are joined."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return event_stream_response(simple_stream("I'm ", "fine."))

    translator = make_translator(handler)
    response = asyncio.run(translator.create_chat_completion(sample_request))

    assert response.choices[0].message.content == "I'm fine."
    assert response.choices[0].finish_reason == "stop"
    assert response.model == "gpt-5.2-high"

    backend_request = seen[0]
    payload = json.loads(backend_request.content)
    assert payload["model"] == "gpt-5.2"
    assert payload["reasoning"] == {"effort": "high"}
    assert payload["instructions"] == "You are a helpful assistant."
    assert payload["stream"] is False
    assert payload["store"] is False
    assert backend_request.headers["authorization"] == "Bearer test-token"
    assert backend_request.headers["chatgpt-account-id"] == "acct-1"
    assert backend_request.headers["openai-beta"] == "responses=experimental"
    assert backend_request.headers["originator"] == "codex_cli_rs"
    assert backend_request.headers["session_id"]


def test_non_streaming_over_json(make_translator, sample_request):
    usage = {"input_tokens": 7, "output_tokens": 2, "total_tokens": 9}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=completed_response("Fine, thanks", usage=usage))

    response = asyncio.run(make_translator(handler).create_chat_completion(sample_request))

    assert response.choices[0].message.content == "Fine, thanks"
    assert response.usage.total_tokens == 9


def test_non_streaming_without_content_type(make_translator, sample_request):
    """An event stream missing its content type is decoded on both paths."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=simple_stream("No ", "header").encode("utf-8"))

    response = asyncio.run(make_translator(handler).create_chat_completion(sample_request))
    lines = asyncio.run(drain(make_translator(handler), streaming(sample_request)))

    assert response.choices[0].message.content == "No header"
    assert "".join(c["choices"][0]["delta"].get("content", "") for c in parse_sse_lines(lines)) == "No header"


def test_non_streaming_tool_call_answer(make_translator, sample_request):
    def handler(request: httpx.Request) -> httpx.Response:
        return event_stream_response(tool_call_stream('{"city": "Paris"}'))

    response = asyncio.run(make_translator(handler).create_chat_completion(sample_request))

    assert response.choices[0].finish_reason == "tool_calls"
    assert response.choices[0].message.tool_calls[0]["id"] == "call_1"


def test_non_streaming_html_page(make_translator, sample_request):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<html>challenge</html>")

    with pytest.raises(MalformedUpstream):
        asyncio.run(make_translator(handler).create_chat_completion(sample_request))


@pytest.mark.parametrize("status", [401, 403])
def test_auth_rejection_passes_status_through(make_translator, sample_request, status):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"detail": "token expired"})

    with pytest.raises(UpstreamAuthRejected) as exc_info:
        asyncio.run(make_translator(handler).create_chat_completion(sample_request))

    assert exc_info.value.status_code == status
    assert "token expired" in exc_info.value.message


def test_backend_error_status(make_translator, sample_request):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="internal")

    with pytest.raises(UpstreamError):
        asyncio.run(make_translator(handler).create_chat_completion(sample_request))


def test_transport_failure(make_translator, sample_request):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamError):
        asyncio.run(make_translator(handler).create_chat_completion(streaming(sample_request)))


def test_model_rejected_before_dispatch(make_translator, sample_request):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return event_stream_response(simple_stream("x"))

    request = sample_request.model_copy(update={"model": "totally-unknown"})

    with pytest.raises(ModelNotAllowed):
        asyncio.run(make_translator(handler).create_chat_completion(request))
    assert calls == []


def test_streaming_relay(make_translator, sample_request):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return event_stream_response(simple_stream("Hel", "lo"))

    lines = asyncio.run(drain(make_translator(handler), streaming(sample_request)))
    chunks = parse_sse_lines(lines)

    assert lines[-1] == DONE_LINE
    assert "".join(c["choices"][0]["delta"].get("content", "") for c in chunks) == "Hello"
    assert chunks[-1]["choices"][0]["finish_reason"] == "stop"
    assert json.loads(seen[0].content)["stream"] is True
    assert seen[0].headers["accept"] == "text/event-stream"


def test_streaming_with_small_queue(make_translator, sample_request):
    """More chunks than queue slots still arrive in order."""
    deltas = [f"{i} " for i in range(50)]

    def handler(request: httpx.Request) -> httpx.Response:
        return event_stream_response(simple_stream(*deltas))

    lines = asyncio.run(drain(make_translator(handler, queue_size=1), streaming(sample_request)))
    chunks = parse_sse_lines(lines)

    assert "".join(c["choices"][0]["delta"].get("content", "") for c in chunks) == "".join(deltas)


def test_streaming_html_page_raises_before_stream(make_translator, sample_request):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/html; charset=utf-8"}, content=b"<html></html>")

    with pytest.raises(MalformedUpstream):
        asyncio.run(drain(make_translator(handler), streaming(sample_request)))


def test_streaming_json_answer_is_replayed(make_translator, sample_request):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=completed_response("Whole"))

    lines = asyncio.run(drain(make_translator(handler), streaming(sample_request)))
    chunks = parse_sse_lines(lines)

    assert lines[-1] == DONE_LINE
    assert [c["choices"][0]["delta"] for c in chunks] == [
        {"role": "assistant", "content": ""},
        {"content": "Whole"},
        {},
    ]


def test_streaming_backend_error_event(make_translator, sample_request):
    def handler(request: httpx.Request) -> httpx.Response:
        body = sse_event("response.created", response={"id": "r"}) + sse_event("error", message="quota")
        return event_stream_response(body)

    lines = asyncio.run(drain(make_translator(handler), streaming(sample_request)))
    chunks = parse_sse_lines(lines)

    assert DONE_LINE not in lines
    assert chunks[-1]["error"]["message"] == "quota"


def test_client_disconnect_aborts_backend(make_translator, sample_request):
    """Closing the consumer cancels the backend read instead of draining it."""
    backend_state = {"cancelled": False, "finished": False}

    async def body():
        yield sse_event("response.created", response={"id": "r"}).encode()
        try:
            await asyncio.sleep(3600)
            backend_state["finished"] = True
        except asyncio.CancelledError:
            backend_state["cancelled"] = True
            raise

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

    async def scenario():
        stream = await make_translator(handler).create_chat_completion_stream(streaming(sample_request))
        first = await stream.__anext__()
        await stream.aclose()
        return first

    first = asyncio.run(scenario())

    assert parse_sse_lines([first])[0]["choices"][0]["delta"]["role"] == "assistant"
    assert backend_state == {"cancelled": True, "finished": False}
