"""Codex credential loading (auth.json written by the Codex CLI)."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError, model_validator

from codex_openai_proxy.core.exceptions import CredentialsError
from codex_openai_proxy.utils.logger import get_logger, mask_secret

logger = get_logger(__name__)


class CodexCredentials(BaseModel):
    """
    Credentials for the Codex backend.

    Accepts the Codex CLI layout
    ``{"OPENAI_API_KEY": ..., "tokens": {"access_token": ..., "account_id": ...}}``
    as well as a flat ``{"access_token", "account_id", "api_key"}`` object.
    """

    access_token: Optional[str] = None
    account_id: Optional[str] = None
    api_key: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def flatten_cli_layout(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        flat: Dict[str, Any] = {
            "access_token": data.get("access_token"),
            "account_id": data.get("account_id"),
            "api_key": data.get("api_key") or data.get("OPENAI_API_KEY"),
        }
        tokens = data.get("tokens")
        if isinstance(tokens, dict):
            flat["access_token"] = tokens.get("access_token") or flat["access_token"]
            flat["account_id"] = tokens.get("account_id") or flat["account_id"]
        return flat

    @model_validator(mode="after")
    def require_credential(self) -> "CodexCredentials":
        if not (self.access_token or self.api_key):
            raise ValueError("auth.json contains neither an access token nor an API key")
        return self

    @property
    def uses_token(self) -> bool:
        return bool(self.access_token)

    def auth_headers(self) -> Dict[str, str]:
        """Authorization headers; token credentials win over an API key."""
        if self.access_token:
            headers = {"Authorization": f"Bearer {self.access_token}"}
            if self.account_id:
                headers["chatgpt-account-id"] = self.account_id
            return headers
        return {"Authorization": f"Bearer {self.api_key}"}


def load_credentials(path: str) -> CodexCredentials:
    """
    Read and validate an auth.json file.

    Args:
        path: File path, '~' is expanded

    Returns:
        Parsed credentials

    Raises:
        CredentialsError: if the file is missing, not JSON or has no credential
    """
    auth_path = Path(path).expanduser()
    try:
        raw = auth_path.read_text(encoding="utf-8")
    except OSError as e:
        raise CredentialsError(f"Failed to read {auth_path}: {e}") from e

    try:
        credentials = CodexCredentials.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise CredentialsError(f"Failed to parse {auth_path}: {e}") from e

    if credentials.uses_token:
        logger.info(
            f"Loaded token credentials from {auth_path} "
            f"(account {mask_secret(credentials.account_id)})"
        )
    else:
        logger.info(f"Loaded API key credentials from {auth_path}")
    return credentials
