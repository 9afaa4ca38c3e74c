"""Error types surfaced to clients as JSON ``{"error": ...}`` bodies."""

from typing import Any, Dict, Optional


class ProxyError(Exception):
    """Base error carrying the HTTP status the client should see."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.body = body

    def to_content(self) -> Dict[str, Any]:
        """JSON body returned to the client."""
        return {"error": self.body if self.body is not None else self.message}


class ClientValidationError(ProxyError):
    """Malformed or missing request fields. The upstream is never contacted."""
    status_code = 400


class UnsupportedBackendError(ProxyError):
    """A resolved alias points at a backend with no configured adapter."""
    status_code = 400


class ModelNotFoundError(ProxyError):
    status_code = 404


class EndpointNotImplementedError(ProxyError):
    status_code = 501

    def __init__(self, message: str = "Not implemented"):
        super().__init__(message)


class BackendConfigError(ProxyError):
    """Adapter is missing credentials; raised before any network call."""
    status_code = 500


class UpstreamError(ProxyError):
    """
    Network failure or non-2xx response from a provider.

    Carries the upstream status code when one was received (500 otherwise)
    and the upstream body, which is passed through to the client unchanged.
    """
    status_code = 500
