"""Models API endpoint."""

import time

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from codex_openai_proxy.core.model_router import ModelRouter
from codex_openai_proxy.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter()


def get_router(request: Request) -> ModelRouter:
    return request.app.state.model_router


def model_object(model_id: str, created: int) -> dict:
    return {
        "id": model_id,
        "object": "model",
        "created": created,
        "owned_by": "openai",
    }


@router.get("/models")
async def list_models(model_router: ModelRouter = Depends(get_router)):
    """
    List available models.

    Every allowlisted base model is listed together with its reasoning-effort
    variants.
    """
    created_time = int(time.time())
    return {
        "object": "list",
        "data": [model_object(model_id, created_time) for model_id in model_router.list_available()],
    }


@router.get("/models/{model_id}")
async def get_model(model_id: str, model_router: ModelRouter = Depends(get_router)):
    """
    Get a specific model.

    Args:
        model_id: The ID of the model to retrieve

    Returns:
        Model information in OpenAI format
    """
    if not model_router.is_listed(model_id):
        return JSONResponse(
            status_code=404,
            content={
                "error": {
                    "message": f"Model '{model_id}' not found. "
                    f"Available models: {', '.join(model_router.list_available())}",
                    "type": "invalid_request_error",
                    "code": "model_not_found",
                }
            },
        )

    return model_object(model_id, int(time.time()))
