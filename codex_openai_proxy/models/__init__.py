"""Data models for the Codex proxy."""

from codex_openai_proxy.models.codex import InputItem, Reasoning, ResponsesRequest
from codex_openai_proxy.models.openai import (
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    ChoiceDelta,
    ResponseMessage,
    Usage,
)

__all__ = [
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatCompletionChunk",
    "ChatMessage",
    "Choice",
    "ChoiceDelta",
    "ResponseMessage",
    "Usage",
    "InputItem",
    "Reasoning",
    "ResponsesRequest",
]
