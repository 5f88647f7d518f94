from __future__ import annotations

import io
import mimetypes
import os
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field


class OperationType(str, Enum):
    GET_LIST = "GET_LIST"
    GET_ONE = "GET_ONE"
    GET_MANY_REFERENCE = "GET_MANY_REFERENCE"
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class PaginationStatus(IntEnum):
    """Stand-in totals used when a collection does not state totalItems."""

    LAST_PAGE = -1
    HAS_NEXT_PAGE = -2
    NO_INFORMATION = -3


# --- Bodies ---------------------------------------------------------------- #


@dataclass
class FileUpload:
    """A file value inside a payload; its presence switches the body to multipart."""

    filename: str
    content: Union[bytes, io.IOBase]
    content_type: Optional[str] = None

    def as_httpx(self) -> Tuple[str, Any, str]:
        ctype = (
            self.content_type
            or mimetypes.guess_type(self.filename)[0]
            or "application/octet-stream"
        )
        return self.filename, self.content, ctype


def is_file_like(value: Any) -> bool:
    return isinstance(value, (FileUpload, io.IOBase))


def as_file_part(value: Any) -> Tuple[str, Any, str]:
    if isinstance(value, FileUpload):
        return value.as_httpx()
    name = os.path.basename(str(getattr(value, "name", "") or "upload"))
    return FileUpload(filename=name, content=value).as_httpx()


@dataclass
class MultipartBody:
    """
    Ordered multipart parts in httpx `files=` form.
    Plain form fields are (None, bytes) tuples so httpx emits them without a filename.
    """

    parts: List[Tuple[str, Any]] = field(default_factory=list)

    def append(self, name: str, value: Any) -> None:
        self.parts.append((name, value))

    def field_names(self) -> List[str]:
        return [name for name, _ in self.parts]


RequestBody = Union[str, MultipartBody]


@dataclass
class RequestDescriptor:
    url: httpx.URL
    method: str = "GET"
    body: Optional[RequestBody] = None


@dataclass
class HydraResponse:
    json: Any
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    status_code: int = 200

    @classmethod
    def coerce(cls, value: Any) -> "HydraResponse":
        """Accept a HydraResponse or a {"json": ..., "headers": ...} mapping."""
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            return cls(
                json=value.get("json"),
                headers=httpx.Headers(value.get("headers") or {}),
                status_code=int(value.get("status_code", value.get("status", 200))),
            )
        raise TypeError(
            f"Transport must return HydraResponse or mapping, got {type(value).__name__}"
        )


# --- Operation parameters --------------------------------------------------- #


class Pagination(BaseModel):
    page: Optional[int] = None
    per_page: Optional[int] = Field(default=None, alias="perPage")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Sort(BaseModel):
    field: Optional[str] = None
    order: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class OperationParams(BaseModel):
    """
    Union of everything the generic CRUD operations may carry.
    Each operation reads only the attributes it needs.
    """

    id: Optional[Union[str, int]] = None
    ids: List[Union[str, int]] = Field(default_factory=list)
    data: Optional[Dict[str, Any]] = None
    target: Optional[str] = None
    pagination: Pagination = Field(default_factory=Pagination)
    sort: Sort = Field(default_factory=Sort)
    filter: Dict[str, Any] = Field(default_factory=dict)
    search_params: Dict[str, Any] = Field(default_factory=dict, alias="searchParams")

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", arbitrary_types_allowed=True
    )

    @classmethod
    def coerce(cls, params: Any) -> "OperationParams":
        if params is None:
            return cls()
        if isinstance(params, cls):
            return params.model_copy(deep=False)
        return cls.model_validate(dict(params))


__all__ = [
    "OperationType",
    "PaginationStatus",
    "FileUpload",
    "is_file_like",
    "as_file_part",
    "MultipartBody",
    "RequestBody",
    "RequestDescriptor",
    "HydraResponse",
    "Pagination",
    "Sort",
    "OperationParams",
]
