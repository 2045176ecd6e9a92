"""Logging configuration for the Codex OpenAI Proxy."""

import logging
import re
import sys
from typing import Optional

BEARER_TOKEN = re.compile(r"(Bearer\s+)([A-Za-z0-9._~+/=-]+)")


def mask_secret(value: Optional[str], visible: int = 8) -> str:
    """Return a log-safe prefix of a secret."""
    if not value:
        return "<none>"
    return f"{value[:visible]}***"


class RedactBearerTokens(logging.Filter):
    """Masks bearer tokens in messages, e.g. a backend error body echoing our request."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = BEARER_TOKEN.sub(lambda m: m.group(1) + mask_secret(m.group(2)), message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger instance.

    Every handler installed here redacts bearer tokens, since backend error
    bodies are logged verbatim.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name or "codex_proxy")

    if not logger.hasHandlers():
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handler.addFilter(RedactBearerTokens())
        logger.addHandler(handler)

        from codex_openai_proxy.core.config import settings

        logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    return logger
