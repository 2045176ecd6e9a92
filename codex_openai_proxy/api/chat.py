"""Chat completions API endpoint."""

from typing import Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse

from codex_openai_proxy.core.exceptions import BackendUnavailable
from codex_openai_proxy.core.translator import Translator
from codex_openai_proxy.models.openai import ChatCompletionRequest
from codex_openai_proxy.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


def get_translator(request: Request) -> Translator:
    """Translator built at startup and stored on the application state."""
    translator = request.app.state.translator
    if translator is None:
        raise BackendUnavailable("Codex credentials not loaded")
    return translator


@router.post("/chat/completions", response_model=None)
async def create_chat_completion(
    request: ChatCompletionRequest,
    translator: Translator = Depends(get_translator),
) -> Union[JSONResponse, StreamingResponse]:
    """
    Create a chat completion through the Codex backend.

    The model name selects the backend model and, through its suffix, the
    reasoning effort (e.g. 'gpt-5.2-high').
    """
    logger.info(
        f"Processing chat completion request for model: {request.model} "
        f"({len(request.messages)} messages, stream={request.stream})"
    )

    if request.stream:
        stream = await translator.create_chat_completion_stream(request)
        return StreamingResponse(
            stream,
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    response = await translator.create_chat_completion(request)
    return JSONResponse(content=response.model_dump(exclude_none=True))
