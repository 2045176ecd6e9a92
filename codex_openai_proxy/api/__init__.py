"""API route handlers for the Codex proxy."""

from codex_openai_proxy.api.chat import router as chat_router
from codex_openai_proxy.api.models import router as models_router

__all__ = ["chat_router", "models_router"]
