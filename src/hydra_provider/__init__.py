"""hydra_provider package exports."""

from .client import HydraClient, RetryConfig
from .config import ProviderConfig
from .errors import (
    HydraClientError,
    HydraHTTPError,
    HydraParseError,
    HydraProviderError,
    IntrospectionError,
    MercureHubUnknownError,
    MissingEntrypointError,
    UnsupportedOperationError,
)
from .filters import compile_filters
from .jsonld import DocumentCache, HydraDocument, transform_document
from .mercure import (
    HttpxEventSource,
    MercureContext,
    SubscriptionManager,
    extract_hub_url,
)
from .models import (
    FileUpload,
    HydraResponse,
    OperationParams,
    OperationType,
    PaginationStatus,
    RequestDescriptor,
)
from .provider import HydraDataProvider
from .request_builder import build_request
from .response_decoder import ResponseDecoder
from .schema import Api, ApiDocumentation, Field, Parameter, Resource

__all__ = [
    # Provider
    "HydraDataProvider",
    "ProviderConfig",
    # Transport
    "HydraClient",
    "RetryConfig",
    "HydraResponse",
    # Exceptions
    "HydraProviderError",
    "HydraClientError",
    "HydraHTTPError",
    "HydraParseError",
    "UnsupportedOperationError",
    "IntrospectionError",
    "MissingEntrypointError",
    "MercureHubUnknownError",
    # Documents
    "HydraDocument",
    "DocumentCache",
    "transform_document",
    # Requests / responses
    "OperationType",
    "OperationParams",
    "RequestDescriptor",
    "FileUpload",
    "PaginationStatus",
    "build_request",
    "compile_filters",
    "ResponseDecoder",
    # Schema
    "Api",
    "ApiDocumentation",
    "Resource",
    "Field",
    "Parameter",
    # Mercure
    "MercureContext",
    "SubscriptionManager",
    "HttpxEventSource",
    "extract_hub_url",
]
