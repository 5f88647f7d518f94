from __future__ import annotations

import json
from datetime import date, datetime, time
from typing import Any, Dict, Mapping, Optional

import httpx
from pydantic import BaseModel

from .errors import UnsupportedOperationError
from .filters import compile_filters, format_query_value
from .models import (
    MultipartBody,
    OperationParams,
    OperationType,
    RequestBody,
    RequestDescriptor,
    as_file_part,
    is_file_like,
)
from .schema import Resource, normalize_document

EXTRA_INFORMATION_KEY = "extraInformation"


def _serialize(value: Any) -> Optional[str]:
    """Text form for values that know how to serialize themselves."""
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    to_json = getattr(value, "to_json", None)
    if callable(to_json):
        return to_json()
    return None


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    serialized = _serialize(value)
    if serialized is not None:
        return serialized
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _contains_file(value: Any) -> bool:
    # FileInput-style payloads wrap the file: {"rawFile": <file>, "title": ...}
    return isinstance(value, Mapping) and any(is_file_like(v) for v in value.values())


def _form_value(value: Any) -> str:
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, default=_json_default)
    return format_query_value(value)


async def encode_body(
    resource: Optional[Resource],
    data: Mapping[str, Any],
    extra_information: Mapping[str, Any],
) -> RequestBody:
    """
    Normalize `data` through the resource schema, then pick the wire format:
    JSON text unless a file is present or `hasFileField` is signalled.
    """
    payload: Dict[str, Any] = (
        await normalize_document(resource, data) if resource is not None else dict(data)
    )

    has_file_field = bool(extra_information.get("hasFileField"))
    if not has_file_field and not any(
        _contains_file(v) or is_file_like(v) for v in payload.values()
    ):
        return json.dumps(payload, default=_json_default)

    body = MultipartBody()
    for key, value in payload.items():
        if _contains_file(value):
            file_value = next(v for v in value.values() if is_file_like(v))
            body.append(key, as_file_part(file_value))
            continue
        if is_file_like(value):
            body.append(key, as_file_part(value))
            continue
        serialized = _serialize(value)
        if serialized is not None:
            body.append(key, (None, serialized.encode("utf-8")))
            continue
        body.append(key, (None, _form_value(value).encode("utf-8")))
    return body


def collection_url(entrypoint: str, resource: str) -> httpx.URL:
    return httpx.URL(f"{entrypoint}/{resource}")


def item_url(entrypoint: str, item_id: Any) -> httpx.URL:
    return httpx.URL(entrypoint).join(str(item_id))


def _with_params(url: httpx.URL, params: Mapping[str, str]) -> httpx.URL:
    return url.copy_merge_params(params) if params else url


async def build_request(
    operation: OperationType,
    resource: str,
    params: OperationParams,
    *,
    entrypoint: str,
    resource_schema: Optional[Resource] = None,
) -> RequestDescriptor:
    """Map a CRUD operation onto the Hydra endpoint, method and body it needs."""
    try:
        operation = OperationType(operation)
    except ValueError as exc:
        raise UnsupportedOperationError(
            f"Unsupported fetch action type {operation}"
        ) from exc

    search_params = {k: format_query_value(v) for k, v in params.search_params.items()}
    collection = _with_params(collection_url(entrypoint, resource), search_params)
    item: Optional[httpx.URL] = None
    if params.id is not None:
        item = _with_params(item_url(entrypoint, params.id), search_params)

    data: Dict[str, Any] = dict(params.data or {})
    extra_information: Mapping[str, Any] = data.pop(EXTRA_INFORMATION_KEY, None) or {}

    if operation is OperationType.CREATE:
        body = await encode_body(resource_schema, data, extra_information)
        return RequestDescriptor(url=collection, method="POST", body=body)

    if operation is OperationType.DELETE:
        return RequestDescriptor(url=_require_item(item, operation), method="DELETE")

    if operation in (OperationType.GET_LIST, OperationType.GET_MANY_REFERENCE):
        query: Dict[str, str] = {}
        if params.sort.order:
            query[f"order[{params.sort.field}]"] = params.sort.order
        if params.pagination.page:
            query["page"] = str(params.pagination.page)
        if params.pagination.per_page:
            query["itemsPerPage"] = str(params.pagination.per_page)
        if params.filter:
            compile_filters(params.filter, query)
        if operation is OperationType.GET_MANY_REFERENCE and params.target:
            query[params.target] = format_query_value(params.id)
        return RequestDescriptor(url=_with_params(collection, query), method="GET")

    if operation is OperationType.GET_ONE:
        return RequestDescriptor(url=_require_item(item, operation), method="GET")

    # UPDATE
    method = "POST" if extra_information.get("hasFileField") else "PUT"
    body = await encode_body(resource_schema, data, extra_information)
    return RequestDescriptor(url=_require_item(item, operation), method=method, body=body)


def _require_item(item: Optional[httpx.URL], operation: OperationType) -> httpx.URL:
    if item is None:
        raise ValueError(f"{operation.value} requires an id")
    return item


__all__ = [
    "EXTRA_INFORMATION_KEY",
    "encode_body",
    "collection_url",
    "item_url",
    "build_request",
]
