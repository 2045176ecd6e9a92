"""Codex Responses API data models (what we send to the ChatGPT backend)."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class InputItem(BaseModel):
    """One conversation message in the ``input`` array."""

    type: Literal["message"] = "message"
    role: str
    content: List[Dict[str, Any]]


class Reasoning(BaseModel):
    effort: str


class ResponsesRequest(BaseModel):
    """Responses API request body."""

    model: str
    instructions: str
    input: List[InputItem]
    tools: List[Dict[str, Any]] = Field(default_factory=list)
    tool_choice: Optional[Any] = None
    parallel_tool_calls: bool = False
    reasoning: Optional[Reasoning] = None
    store: bool = False
    stream: bool = False
    include: List[str] = Field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize for the wire; unset optionals are omitted, never null."""
        payload = self.model_dump()
        # Only top-level optionals are dropped; tool schemas pass through as-is
        return {key: value for key, value in payload.items() if value is not None}
