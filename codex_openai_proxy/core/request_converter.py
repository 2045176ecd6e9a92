"""Chat Completions request -> Codex Responses request."""

from typing import Any, Dict, List, Optional

from codex_openai_proxy.core.model_router import ModelSpec
from codex_openai_proxy.models.codex import InputItem, Reasoning, ResponsesRequest
from codex_openai_proxy.models.openai import ChatCompletionRequest, ChatMessage
from codex_openai_proxy.utils.logger import get_logger

logger = get_logger(__name__)

# Sampling parameters the Codex backend does not accept
DROPPED_PARAMS = ("temperature", "max_tokens")


def convert_part(part: Dict[str, Any]) -> Dict[str, Any]:
    """Map one chat content part to the Responses API part shape."""
    kind = part.get("type")
    if kind == "text":
        return {"type": "input_text", "text": part.get("text", "")}
    if kind == "image_url":
        image = part.get("image_url")
        url = image.get("url", "") if isinstance(image, dict) else image
        return {"type": "input_image", "image_url": url}
    # Unknown kinds and parts already in backend shape pass through
    return part


class RequestConverter:
    """Builds backend requests; pure, holds only immutable configuration."""

    def __init__(self, default_instructions: str):
        self.default_instructions = default_instructions

    def to_backend(self, request: ChatCompletionRequest, spec: ModelSpec) -> ResponsesRequest:
        """
        Convert a chat completion request into a Responses API request.

        Args:
            request: Validated chat completion request
            spec: Resolved model and reasoning effort

        Returns:
            The backend request
        """
        messages = list(request.messages)
        instructions = self.default_instructions
        if messages and messages[0].role == "system":
            instructions = messages.pop(0).text

        for name in DROPPED_PARAMS:
            if getattr(request, name) is not None:
                logger.debug(f"Not forwarding unsupported parameter '{name}'")

        tools = list(request.tools or [])
        tool_choice: Optional[Any] = request.tool_choice
        if tool_choice is None and tools:
            tool_choice = "auto"

        return ResponsesRequest(
            model=spec.base_model,
            instructions=instructions,
            input=self.convert_messages(messages),
            tools=tools,
            tool_choice=tool_choice,
            reasoning=Reasoning(effort=spec.effort.value) if spec.has_reasoning else None,
            store=False,
            stream=request.stream,
        )

    def convert_messages(self, messages: List[ChatMessage]) -> List[InputItem]:
        return [
            InputItem(role=message.role, content=[convert_part(part) for part in message.content])
            for message in messages
        ]
