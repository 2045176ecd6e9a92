"""Shared fixtures: allowlist, backend event builders and a mock Codex backend."""

import json
from typing import Callable, List

import httpx
import pytest

from codex_openai_proxy.core.auth import CodexCredentials
from codex_openai_proxy.core.codex_client import CodexClient
from codex_openai_proxy.core.model_router import ModelRouter
from codex_openai_proxy.core.request_converter import RequestConverter
from codex_openai_proxy.core.translator import Translator

ALLOWLIST = ["gpt-5", "gpt-5.2", "gpt-5.3-codex"]
BACKEND_URL = "https://backend.test/codex/responses"
DEFAULT_INSTRUCTIONS = "You are a test assistant."


def sse_event(event_type: str, **fields) -> str:
    """Render one backend event the way the Codex backend frames it."""
    payload = {"type": event_type, **fields}
    return f"event: {event_type}\ndata: {json.dumps(payload)}\n\n"


def completed_response(text: str = "Hi", status: str = "completed", usage=None) -> dict:
    response = {
        "id": "resp_123",
        "object": "response",
        "status": status,
        "output": [
            {
                "id": "msg_1",
                "type": "message",
                "role": "assistant",
                "content": [{"type": "output_text", "text": text}],
            }
        ],
    }
    if usage is not None:
        response["usage"] = usage
    return response


def simple_stream(*deltas: str, status: str = "completed") -> str:
    """created, one delta event per argument, then a terminal event."""
    events = [sse_event("response.created", response={"id": "resp_123", "status": "in_progress"})]
    for delta in deltas:
        events.append(sse_event("response.output_text.delta", item_id="msg_1", delta=delta))
    events.append(sse_event("response.completed", response=completed_response("".join(deltas), status)))
    return "".join(events)


def function_call_item(arguments: str = '{"city": "Paris"}') -> dict:
    return {
        "id": "fc_1",
        "type": "function_call",
        "status": "completed",
        "call_id": "call_1",
        "name": "lookup",
        "arguments": arguments,
    }


def tool_call_stream(*argument_deltas: str) -> str:
    """created, a function call announced and its arguments streamed, then completed."""
    arguments = "".join(argument_deltas)
    events = [
        sse_event("response.created", response={"id": "resp_123", "status": "in_progress"}),
        sse_event("response.output_item.added", item={**function_call_item(""), "status": "in_progress"}),
    ]
    for delta in argument_deltas:
        events.append(sse_event("response.function_call_arguments.delta", item_id="fc_1", delta=delta))
    events.append(sse_event("response.function_call_arguments.done", item_id="fc_1", arguments=arguments))
    events.append(sse_event("response.output_item.done", item=function_call_item(arguments)))
    events.append(sse_event(
        "response.completed",
        response={"id": "resp_123", "status": "completed", "output": [function_call_item(arguments)]},
    ))
    return "".join(events)


def event_stream_response(body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        content=body.encode("utf-8"),
    )


def parse_sse_lines(lines: List[str]) -> List[dict]:
    """Decode rendered 'data: {...}' lines, skipping the [DONE] sentinel."""
    chunks = []
    for line in lines:
        assert line.startswith("data: ") and line.endswith("\n\n")
        data = line[len("data: "):-2]
        if data != "[DONE]":
            chunks.append(json.loads(data))
    return chunks


@pytest.fixture
def router() -> ModelRouter:
    return ModelRouter(ALLOWLIST)


@pytest.fixture
def credentials() -> CodexCredentials:
    return CodexCredentials(access_token="test-token", account_id="acct-1")


@pytest.fixture
def make_translator(router, credentials) -> Callable[[Callable], Translator]:
    """Build a translator whose backend is the given MockTransport handler."""

    def factory(handler: Callable, queue_size: int = 8) -> Translator:
        client = CodexClient(
            credentials,
            url=BACKEND_URL,
            timeout=5,
            transport=httpx.MockTransport(handler),
        )
        return Translator(router, RequestConverter(DEFAULT_INSTRUCTIONS), client, queue_size=queue_size)

    return factory
