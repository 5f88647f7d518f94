from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from .jsonld import DocumentCache, transform_document
from .mercure import SubscriptionManager
from .models import HydraResponse, OperationParams, OperationType, PaginationStatus
from .schema import Resource, denormalize_document


def hydra_get(payload: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """Read a Hydra term with or without the `hydra:` prefix."""
    prefixed = f"hydra:{key}"
    if prefixed in payload:
        return payload[prefixed]
    return payload.get(key, default)


def hydra_has(payload: Mapping[str, Any], key: str) -> bool:
    return f"hydra:{key}" in payload or key in payload


def collection_total(payload: Mapping[str, Any]) -> Union[int, PaginationStatus]:
    """
    Exact totalItems when stated; otherwise a PaginationStatus telling whether
    another page follows, this is the last one, or nothing is known.
    """
    if hydra_has(payload, "totalItems"):
        return hydra_get(payload, "totalItems")
    view = hydra_get(payload, "view")
    if not isinstance(view, Mapping):
        return PaginationStatus.NO_INFORMATION
    if hydra_get(view, "next"):
        return PaginationStatus.HAS_NEXT_PAGE
    return PaginationStatus.LAST_PAGE


def collection_members(payload: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    members = hydra_get(payload, "member", [])
    if not isinstance(members, list):
        raise ValueError("Expected hydra:member to be a list.")
    return [m for m in members if isinstance(m, Mapping)]


@dataclass
class ResponseDecoder:
    cache: Optional[DocumentCache] = None
    subscriptions: Optional[SubscriptionManager] = None
    use_embedded: bool = False
    disable_cache: bool = False

    def _to_document(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return transform_document(
            payload,
            cache=self.cache,
            clone=True,
            add_to_cache=not self.disable_cache,
            use_embedded=self.use_embedded,
        )

    async def _denormalize(
        self, resource_schema: Optional[Resource], document: Dict[str, Any]
    ) -> Dict[str, Any]:
        if resource_schema is None:
            return document
        return await denormalize_document(resource_schema, document)

    async def decode(
        self,
        operation: OperationType,
        params: OperationParams,
        response: HydraResponse,
        *,
        resource_schema: Optional[Resource] = None,
    ) -> Dict[str, Any]:
        if self.subscriptions is not None:
            self.subscriptions.discover_hub(response.headers)

        operation = OperationType(operation)
        payload = response.json if isinstance(response.json, Mapping) else {}

        if operation in (OperationType.GET_LIST, OperationType.GET_MANY_REFERENCE):
            documents = [self._to_document(m) for m in collection_members(payload)]
            data = await asyncio.gather(
                *(self._denormalize(resource_schema, d) for d in documents)
            )
            return {"data": list(data), "total": collection_total(payload)}

        if operation is OperationType.DELETE:
            return {"data": {"id": params.id}}

        document = self._to_document(payload)
        return {"data": await self._denormalize(resource_schema, document)}


__all__ = [
    "hydra_get",
    "hydra_has",
    "collection_total",
    "collection_members",
    "ResponseDecoder",
]
