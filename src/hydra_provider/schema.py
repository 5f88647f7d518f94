"""
Resource schema as produced by an API documentation parser.

Fields may carry `normalize_data` / `denormalize_data` transforms; a missing
transform means the value passes through unchanged.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field as PydanticField

ValueTransform = Callable[[Any], Union[Any, Awaitable[Any]]]
ParametersLoader = Callable[["Resource"], Awaitable[List["Parameter"]]]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Parameter(BaseModel):
    variable: str
    range: Optional[str] = None
    required: bool = False
    description: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class Field(BaseModel):
    name: str
    id: Optional[str] = None
    range: Optional[str] = None
    # IRI of the referenced resource class when the field is a relation
    reference: Optional[Union[str, bool]] = None
    embedded: Optional[Union[str, bool]] = None
    required: bool = False
    normalize_data: Optional[ValueTransform] = PydanticField(
        default=None, alias="normalizeData"
    )
    denormalize_data: Optional[ValueTransform] = PydanticField(
        default=None, alias="denormalizeData"
    )

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", arbitrary_types_allowed=True
    )

    @property
    def is_relation(self) -> bool:
        return bool(self.reference) or bool(self.embedded)

    async def normalize(self, value: Any) -> Any:
        if self.normalize_data is None:
            return value
        return await _maybe_await(self.normalize_data(value))

    async def denormalize(self, value: Any) -> Any:
        if self.denormalize_data is None:
            return value
        return await _maybe_await(self.denormalize_data(value))


class Resource(BaseModel):
    name: str
    url: Optional[str] = None
    id: Optional[str] = None
    title: Optional[str] = None
    fields: List[Field] = PydanticField(default_factory=list)
    # None until declared by the parser or loaded from the hydra:search template
    parameters: Optional[List[Parameter]] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Api(BaseModel):
    entrypoint: str
    title: Optional[str] = None
    resources: List[Resource] = PydanticField(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    def find_resource(self, name: str) -> Optional[Resource]:
        return next((r for r in self.resources if r.name == name), None)


class ApiDocumentation(BaseModel):
    api: Api
    custom_routes: List[Any] = PydanticField(default_factory=list, alias="customRoutes")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# --- Transforms ------------------------------------------------------------ #


async def normalize_document(resource: Resource, data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Run every present field through its normalize transform.
    Empty-string references become None and skip their transform.
    """
    result = dict(data)
    pending: Dict[str, Awaitable[Any]] = {}
    for fld in resource.fields:
        if fld.name not in result:
            continue
        if fld.reference and result[fld.name] == "":
            result[fld.name] = None
            continue
        if fld.normalize_data is None:
            continue
        pending[fld.name] = fld.normalize(result[fld.name])

    if pending:
        values = await asyncio.gather(*pending.values())
        result.update(zip(pending.keys(), values))
    return result


async def denormalize_document(resource: Resource, data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply denormalize transforms in place to fields present in `data`."""
    pending: Dict[str, Awaitable[Any]] = {}
    for fld in resource.fields:
        if fld.name not in data or fld.denormalize_data is None:
            continue
        pending[fld.name] = fld.denormalize(data[fld.name])

    if pending:
        values = await asyncio.gather(*pending.values())
        data.update(zip(pending.keys(), values))
    return data


# --- Search parameters ------------------------------------------------------- #


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def parameters_from_search_template(payload: Mapping[str, Any]) -> List[Parameter]:
    """Read hydra:search -> hydra:mapping variables from a collection payload."""
    search = _first(payload, "hydra:search", "search")
    if not isinstance(search, Mapping):
        return []
    mapping = _first(search, "hydra:mapping", "mapping") or []
    params: List[Parameter] = []
    for item in mapping:
        if not isinstance(item, Mapping):
            continue
        variable = _first(item, "hydra:variable", "variable")
        if not variable:
            continue
        params.append(
            Parameter(
                variable=variable,
                range=_first(item, "hydra:property", "property"),
                required=bool(_first(item, "hydra:required", "required")),
            )
        )
    return params


async def resolve_schema_parameters(
    resource: Optional[Resource], loader: Optional[ParametersLoader] = None
) -> List[Parameter]:
    """
    Return the resource's search parameters, loading them once via `loader`
    when the schema did not declare any.
    """
    if resource is None:
        return []
    if resource.parameters is not None:
        return resource.parameters
    if loader is None:
        return []
    resource.parameters = await loader(resource)
    return resource.parameters


__all__ = [
    "ValueTransform",
    "ParametersLoader",
    "Parameter",
    "Field",
    "Resource",
    "Api",
    "ApiDocumentation",
    "normalize_document",
    "denormalize_document",
    "parameters_from_search_template",
    "resolve_schema_parameters",
]
