"""Error taxonomy shared by the translator and the API layer."""

from typing import Any, Dict, Optional


class ProxyError(Exception):
    """Base class for errors that map to a structured error body."""

    status_code = 500
    error_type = "proxy_error"
    code = "internal_error"

    def __init__(self, message: str, param: Optional[str] = None):
        self.message = message
        self.param = param
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {
            "message": self.message,
            "type": self.error_type,
            "code": self.code,
        }
        if self.param is not None:
            error["param"] = self.param
        return {"error": error}


class ModelNotAllowed(ProxyError):
    """Requested model does not resolve to an allowlisted base model."""

    status_code = 400
    error_type = "invalid_request_error"
    code = "model_not_allowed"

    def __init__(self, model: str, allowed_models: Any):
        self.model = model
        super().__init__(
            f"Model '{model}' is not allowed by this proxy. "
            f"Allowed models: {', '.join(allowed_models)}",
            param="model",
        )


class MalformedUpstream(ProxyError):
    """Backend payload is neither a valid response nor a valid event stream."""

    status_code = 502
    error_type = "upstream_error"
    code = "malformed_upstream"


class UpstreamError(ProxyError):
    """Backend returned a non-success status or could not be reached."""

    status_code = 502
    error_type = "upstream_error"
    code = "upstream_error"


class UpstreamAuthRejected(ProxyError):
    """Backend rejected our credentials; the status is passed through."""

    error_type = "authentication_error"
    code = "upstream_auth_rejected"

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


class BackendUnavailable(ProxyError):
    """No translator is configured, so requests cannot reach the backend."""

    status_code = 503
    error_type = "service_unavailable"
    code = "backend_unavailable"


class CredentialsError(Exception):
    """auth.json is missing, unreadable or has no usable credential."""
