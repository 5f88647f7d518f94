"""
Generic CRUD data provider for Hydra / JSON-LD APIs (API Platform style).

    CREATE   => POST   {entrypoint}/books
    DELETE   => DELETE {entrypoint}/books/123
    GET_LIST => GET    {entrypoint}/books?page=1&order[title]=ASC
    GET_MANY => GET    {entrypoint}/books?id[0]=..&id[1]=..  (or one GET per id)
    GET_ONE  => GET    {entrypoint}/books/123
    UPDATE   => PUT    {entrypoint}/books/123
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from .client import HydraClient
from .config import ProviderConfig
from .errors import IntrospectionError, MissingEntrypointError
from .jsonld import DocumentCache
from .mercure import (
    EventSourceFactory,
    MercureContext,
    SubscriptionCallback,
    SubscriptionManager,
    default_event_source_factory,
)
from .models import HydraResponse, OperationParams, OperationType
from .observability import log_event
from .request_builder import build_request, collection_url
from .response_decoder import ResponseDecoder
from .schema import (
    Api,
    ApiDocumentation,
    Parameter,
    Resource,
    parameters_from_search_template,
    resolve_schema_parameters,
)

Transport = Callable[..., Awaitable[Any]]
SchemaParser = Callable[[str], Awaitable[Union[ApiDocumentation, Mapping[str, Any]]]]
Params = Union[OperationParams, Mapping[str, Any], None]

CORS_HINT = "Have you verified that CORS is correctly configured in your API?"


def introspection_error(exc: BaseException) -> IntrospectionError:
    status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
    message = str(exc) or None
    # Some parsers reject with a wrapper carrying the real error in `.error`
    inner = getattr(exc, "error", None)
    if inner is not None and str(inner):
        message = str(inner)

    text = "Cannot fetch API documentation:\n"
    if message:
        text += f"{message}\n{CORS_HINT}\n"
    if status:
        text += f"Status: {status}"
    return IntrospectionError(text, status=status)


class HydraDataProvider:
    def __init__(
        self,
        entrypoint: str,
        *,
        transport: Optional[Transport] = None,
        schema_parser: Optional[SchemaParser] = None,
        mercure_hub: Optional[str] = None,
        mercure_jwt: Optional[str] = None,
        mercure_topic_url: Optional[str] = None,
        use_embedded: bool = False,
        disable_cache: bool = False,
        event_source_factory: Optional[EventSourceFactory] = None,
        bearer_token: Optional[str] = None,
        timeout_seconds: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ):
        entrypoint = (entrypoint or "").strip().rstrip("/")
        if not entrypoint:
            raise MissingEntrypointError("entrypoint must be provided.")

        self.entrypoint = entrypoint
        self.log = logger or logging.getLogger("hydra_provider.provider")
        self.use_embedded = use_embedded
        self.disable_cache = disable_cache
        self.schema_parser = schema_parser
        self.api_schema: Optional[Api] = None
        self.custom_routes: List[Any] = []

        self._owns_transport = transport is None
        self.transport: Transport = transport or HydraClient(
            bearer_token=bearer_token, timeout_seconds=timeout_seconds
        )

        self.cache = DocumentCache()
        self.mercure = MercureContext(
            hub=mercure_hub,
            jwt=mercure_jwt,
            topic_url=mercure_topic_url or entrypoint,
        )
        self.subscriptions = SubscriptionManager(
            context=self.mercure,
            cache=self.cache,
            base_url=entrypoint,
            add_to_cache=not disable_cache,
            event_source_factory=event_source_factory or default_event_source_factory,
        )
        self.decoder = ResponseDecoder(
            cache=self.cache,
            subscriptions=self.subscriptions,
            use_embedded=use_embedded,
            disable_cache=disable_cache,
        )

    @classmethod
    def from_config(cls, config: ProviderConfig, **overrides: Any) -> "HydraDataProvider":
        kwargs: Dict[str, Any] = {
            "bearer_token": config.bearer_token,
            "timeout_seconds": config.timeout_seconds,
            "mercure_hub": config.mercure_hub,
            "mercure_jwt": config.mercure_jwt,
            "mercure_topic_url": config.mercure_topic_url,
            "use_embedded": config.use_embedded,
            "disable_cache": config.disable_cache,
        }
        kwargs.update(overrides)
        return cls(config.entrypoint, **kwargs)

    @classmethod
    def from_env(cls, **overrides: Any) -> "HydraDataProvider":
        return cls.from_config(ProviderConfig.from_env(), **overrides)

    async def aclose(self) -> None:
        await self.subscriptions.aclose()
        if self._owns_transport and isinstance(self.transport, HydraClient):
            await self.transport.aclose()

    async def __aenter__(self) -> "HydraDataProvider":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def resource_schema(self, resource: str) -> Optional[Resource]:
        if self.api_schema is None:
            return None
        return self.api_schema.find_resource(resource)

    async def fetch_api(
        self, operation: OperationType, resource: str, params: Params
    ) -> Dict[str, Any]:
        params = OperationParams.coerce(params)
        resource_schema = self.resource_schema(resource)
        request = await build_request(
            operation,
            resource,
            params,
            entrypoint=self.entrypoint,
            resource_schema=resource_schema,
        )
        log_event(
            "hydra_operation",
            self.log,
            level=logging.DEBUG,
            operation=OperationType(operation).value,
            resource=resource,
            method=request.method,
            endpoint=str(request.url),
        )
        raw = await self.transport(request.url, method=request.method, body=request.body)
        return await self.decoder.decode(
            operation,
            params,
            HydraResponse.coerce(raw),
            resource_schema=resource_schema,
        )

    # --- Generic CRUD surface ------------------------------------------------ #

    async def get_list(self, resource: str, params: Params = None) -> Dict[str, Any]:
        return await self.fetch_api(OperationType.GET_LIST, resource, params)

    async def get_one(self, resource: str, params: Params) -> Dict[str, Any]:
        return await self.fetch_api(OperationType.GET_ONE, resource, params)

    async def get_many(self, resource: str, params: Params) -> Dict[str, Any]:
        """
        Hydra has no batch read: use an `id` search filter when the resource
        exposes one, otherwise read each id (cached embedded documents first).
        """
        ids = list(OperationParams.coerce(params).ids)
        if await self.has_id_search_filter(resource):
            return await self.get_list(resource, {"filter": {"id": ids}})

        async def read(item_id: Any) -> Any:
            cached = self.cache.get(item_id)
            if cached is not None:
                return cached
            result = await self.fetch_api(OperationType.GET_ONE, resource, {"id": item_id})
            return result["data"]

        data = await asyncio.gather(*(read(item_id) for item_id in ids))
        return {"data": list(data)}

    async def get_many_reference(self, resource: str, params: Params) -> Dict[str, Any]:
        return await self.fetch_api(OperationType.GET_MANY_REFERENCE, resource, params)

    async def create(self, resource: str, params: Params) -> Dict[str, Any]:
        return await self.fetch_api(OperationType.CREATE, resource, params)

    async def update(self, resource: str, params: Params) -> Dict[str, Any]:
        return await self.fetch_api(OperationType.UPDATE, resource, params)

    async def update_many(self, resource: str, params: Params) -> Dict[str, Any]:
        params = OperationParams.coerce(params)
        await asyncio.gather(
            *(
                self.fetch_api(
                    OperationType.UPDATE,
                    resource,
                    params.model_copy(update={"id": item_id}),
                )
                for item_id in params.ids
            )
        )
        return {"data": []}

    async def delete(self, resource: str, params: Params) -> Dict[str, Any]:
        return await self.fetch_api(OperationType.DELETE, resource, params)

    async def delete_many(self, resource: str, params: Params) -> Dict[str, Any]:
        ids = OperationParams.coerce(params).ids
        await asyncio.gather(
            *(self.fetch_api(OperationType.DELETE, resource, {"id": i}) for i in ids)
        )
        return {"data": []}

    # --- Schema ------------------------------------------------------------- #

    async def introspect(self) -> Dict[str, Any]:
        """Parse the API documentation once; later calls reuse the schema."""
        if self.api_schema is not None:
            return {"data": self.api_schema, "customRoutes": self.custom_routes}

        if self.schema_parser is None:
            raise IntrospectionError(
                "Cannot fetch API documentation:\nNo API documentation parser configured."
            )

        try:
            parsed = await self.schema_parser(self.entrypoint)
        except Exception as exc:
            raise introspection_error(exc) from exc

        documentation = (
            parsed
            if isinstance(parsed, ApiDocumentation)
            else ApiDocumentation.model_validate(parsed)
        )
        if documentation.api.resources:
            self.api_schema = documentation.api
            self.custom_routes = documentation.custom_routes
        return {"data": documentation.api, "customRoutes": documentation.custom_routes}

    async def _load_search_parameters(self, resource: Resource) -> List[Parameter]:
        url = resource.url or collection_url(self.entrypoint, resource.name)
        raw = await self.transport(url, method="GET", body=None)
        payload = HydraResponse.coerce(raw).json
        return parameters_from_search_template(payload if isinstance(payload, Mapping) else {})

    async def has_id_search_filter(self, resource: str) -> bool:
        parameters = await resolve_schema_parameters(
            self.resource_schema(resource), self._load_search_parameters
        )
        return "id" in {p.variable for p in parameters}

    # --- Real-time updates -------------------------------------------------- #

    async def subscribe(
        self, topics: Iterable[str], callback: SubscriptionCallback
    ) -> Dict[str, Any]:
        for topic in topics:
            self.subscriptions.subscribe(topic, callback)
        return {"data": None}

    async def unsubscribe(self, resource: str, topics: Iterable[str]) -> Dict[str, Any]:
        for topic in topics:
            await self.subscriptions.unsubscribe(topic)
        return {"data": None}


__all__ = ["HydraDataProvider", "Transport", "SchemaParser", "introspection_error"]
