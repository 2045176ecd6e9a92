"""Shared helpers."""

from codex_openai_proxy.utils.logger import get_logger, mask_secret

__all__ = ["get_logger", "mask_secret"]
