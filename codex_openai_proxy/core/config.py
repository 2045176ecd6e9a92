"""Configuration management for the Codex OpenAI Proxy."""

from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_MODELS = "gpt-5,gpt-5.2,gpt-5.3-codex,gpt-5.2-codex"

DEFAULT_INSTRUCTIONS = (
    "You are a helpful AI assistant. Provide clear, accurate, and concise "
    "responses to user questions and requests."
)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Codex backend
    CODEX_BASE_URL: str = "https://chatgpt.com/backend-api/codex"
    CODEX_AUTH_PATH: str = "~/.codex/auth.json"
    CODEX_USER_AGENT: str = (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Comma separated list of base models, e.g. 'gpt-5,gpt-5.2'
    ALLOWED_MODELS: str = DEFAULT_ALLOWED_MODELS

    # Used when the request carries no leading system message
    DEFAULT_INSTRUCTIONS: str = DEFAULT_INSTRUCTIONS

    # Max rendered chunks buffered between the backend reader and the client
    STREAM_QUEUE_SIZE: int = 64

    @field_validator("ALLOWED_MODELS", mode="before")
    @classmethod
    def parse_allowed_models(cls, v: Optional[str]) -> str:
        """Fall back to the built-in allowlist when the override is blank."""
        if v is None or not str(v).strip(" ,"):
            return DEFAULT_ALLOWED_MODELS
        return str(v)

    @field_validator("CODEX_BASE_URL")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate Codex base URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("CODEX_BASE_URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("STREAM_QUEUE_SIZE")
    @classmethod
    def validate_queue_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("STREAM_QUEUE_SIZE must be at least 1")
        return v

    def get_allowed_models(self) -> List[str]:
        """
        Get the ordered allowlist of base models.

        Entries are trimmed, empty entries dropped and duplicates removed
        while keeping the first occurrence.

        Returns:
            List of base model names in configured order
        """
        seen = set()
        models: List[str] = []
        for raw in self.ALLOWED_MODELS.split(","):
            model = raw.strip()
            if model and model not in seen:
                seen.add(model)
                models.append(model)
        return models

    @property
    def responses_url(self) -> str:
        return f"{self.CODEX_BASE_URL}/responses"

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # CORS Settings
    CORS_ALLOW_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: List[str] = ["*"]
    CORS_ALLOW_HEADERS: List[str] = ["*"]

    # Request Timeout
    REQUEST_TIMEOUT: int = 600  # seconds (10 minutes for long-running requests)


# Create global settings instance
settings = Settings()
