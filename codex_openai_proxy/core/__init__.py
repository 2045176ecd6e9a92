"""Core business logic for the Codex proxy."""

from codex_openai_proxy.core.config import settings
from codex_openai_proxy.core.model_router import ModelRouter, ModelSpec, ReasoningEffort
from codex_openai_proxy.core.request_converter import RequestConverter
from codex_openai_proxy.core.translator import Translator

__all__ = [
    "settings",
    "ModelRouter",
    "ModelSpec",
    "ReasoningEffort",
    "RequestConverter",
    "Translator",
]
