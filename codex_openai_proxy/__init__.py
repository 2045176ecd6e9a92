"""Codex OpenAI Proxy - Translate OpenAI Chat Completions to the ChatGPT Codex Responses API."""

__version__ = "0.1.0"

from codex_openai_proxy.core.config import settings

__all__ = ["settings", "__version__"]
