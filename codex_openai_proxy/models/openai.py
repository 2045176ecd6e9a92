"""OpenAI Chat Completions data models."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class ChatMessage(BaseModel):
    """
    Chat message model.

    ``content`` may arrive as a bare string, a list of parts or null. It is
    normalized here, once, into a list of part dicts so that downstream code
    only ever handles the list form.
    """

    model_config = {"extra": "allow"}

    role: Literal["system", "developer", "user", "assistant", "tool"]
    content: List[Dict[str, Any]] = Field(default_factory=list)
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[Dict[str, Any]]] = None

    @field_validator("content", mode="before")
    @classmethod
    def normalize_content(cls, v: Any) -> List[Dict[str, Any]]:
        if v is None:
            return []
        if isinstance(v, str):
            return [{"type": "text", "text": v}]
        if isinstance(v, list):
            parts = []
            for part in v:
                if isinstance(part, str):
                    parts.append({"type": "text", "text": part})
                elif isinstance(part, dict):
                    parts.append(part)
                else:
                    raise ValueError(f"Unsupported content part: {part!r}")
            return parts
        raise ValueError("content must be a string, a list of parts or null")

    @property
    def text(self) -> str:
        """Concatenated text of all text parts."""
        return "\n".join(
            part.get("text", "")
            for part in self.content
            if part.get("type") in ("text", "input_text", "output_text")
        )


class ChatCompletionRequest(BaseModel):
    """Chat completion request model."""

    model_config = {"extra": "allow"}  # Clients send many fields we don't forward

    model: str
    messages: List[ChatMessage]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: bool = False
    tools: Optional[List[Dict[str, Any]]] = None
    tool_choice: Optional[Any] = None


class ResponseMessage(BaseModel):
    """Assistant message in a non-streaming response."""

    role: Literal["assistant"] = "assistant"
    content: str
    tool_calls: Optional[List[Dict[str, Any]]] = None


class Choice(BaseModel):
    """Chat completion choice."""

    index: int = 0
    message: ResponseMessage
    finish_reason: Optional[str] = None


class Usage(BaseModel):
    """Token usage information."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """Chat completion response model."""

    id: str
    object: str = "chat.completion"
    created: int
    model: str
    choices: List[Choice]
    usage: Optional[Usage] = None


class ChoiceDelta(BaseModel):
    """Streaming choice delta."""

    index: int = 0
    delta: Dict[str, Any] = Field(default_factory=dict)
    finish_reason: Optional[str] = None


class ChatCompletionChunk(BaseModel):
    """Streaming chat completion chunk."""

    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: List[ChoiceDelta]
    usage: Optional[Usage] = None
    error: Optional[Dict[str, Any]] = None
