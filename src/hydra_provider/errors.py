from typing import Any, Dict, Optional


class HydraProviderError(Exception):
    """Base error for the data provider."""


class HydraClientError(HydraProviderError):
    """Transport-level failure (network, timeout, unexpected httpx error)."""


class HydraHTTPError(HydraClientError):
    def __init__(
        self,
        *,
        status_code: int,
        method: str,
        url: str,
        message: str,
        response_json: Optional[Dict[str, Any]] = None,
        response_text: Optional[str] = None,
        violations: Optional[Dict[str, str]] = None,
    ):
        super().__init__(f"{status_code} {method} {url}: {message}")
        self.status_code = status_code
        self.method = method
        self.url = url
        self.message = message
        self.response_json = response_json
        self.response_text = response_text
        self.violations = violations or {}


class HydraParseError(HydraClientError):
    pass


class UnsupportedOperationError(HydraProviderError, ValueError):
    """Raised for an operation type the request builder does not know."""


class IntrospectionError(HydraProviderError):
    """Raised when the API documentation cannot be fetched or parsed."""

    def __init__(self, message: str, *, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class MissingEntrypointError(HydraProviderError, ValueError):
    """Raised when no entry point is configured."""


class MercureHubUnknownError(HydraProviderError):
    """Raised when a stream URL is needed before any Mercure hub is known."""


__all__ = [
    "HydraProviderError",
    "HydraClientError",
    "HydraHTTPError",
    "HydraParseError",
    "UnsupportedOperationError",
    "IntrospectionError",
    "MissingEntrypointError",
    "MercureHubUnknownError",
]
