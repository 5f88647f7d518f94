"""
JSON-LD <-> generic document conversion.

Embedded relations are replaced by their IRIs (or kept inline when
`use_embedded` is set) and remembered in a DocumentCache so that a later
lookup by IRI can skip the HTTP round trip.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Iterator, Mapping, MutableMapping, Optional

JSONLD_ID = "@id"


class HydraDocument(dict):
    """
    A JSON-LD object re-keyed for generic consumers:
    - `id` holds the IRI (`@id`)
    - `originId` holds whatever `id` the API sent, if any
    """

    def __init__(self, source: Mapping[str, Any]):
        super().__init__(source)
        self["originId"] = source.get("id")
        self["id"] = source[JSONLD_ID]

    @property
    def id(self) -> str:
        return self["id"]

    @property
    def origin_id(self) -> Any:
        return self.get("originId")

    def __str__(self) -> str:
        return f"[object {self['id']}]"


class DocumentCache:
    """IRI -> HydraDocument hints; a miss is always acceptable."""

    def __init__(self) -> None:
        self._documents: Dict[str, HydraDocument] = {}

    def get(self, iri: Any) -> Optional[HydraDocument]:
        if not isinstance(iri, str):
            return None
        return self._documents.get(iri)

    def set(self, iri: str, document: HydraDocument) -> None:
        self._documents[iri] = document

    def clear(self) -> None:
        self._documents.clear()

    def __contains__(self, iri: object) -> bool:
        return iri in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[str]:
        return iter(self._documents)


def is_jsonld_object(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value.get(JSONLD_ID))


def _is_relation_list(value: Any) -> bool:
    return (
        isinstance(value, list)
        and len(value) > 0
        and all(is_jsonld_object(item) for item in value)
    )


def transform_document(
    document: Mapping[str, Any],
    *,
    cache: Optional[DocumentCache] = None,
    clone: bool = True,
    add_to_cache: bool = True,
    use_embedded: bool = False,
) -> MutableMapping[str, Any]:
    """
    Convert a JSON-LD document into a HydraDocument.

    Objects without `@id` keep their shape but still get their embedded
    relations flattened. With `clone=False` the caller's tree is reused.
    """
    if clone:
        document = copy.deepcopy(document)

    result: MutableMapping[str, Any]
    if is_jsonld_object(document):
        result = HydraDocument(document)
    elif isinstance(document, MutableMapping):
        result = document
    else:
        result = dict(document)

    def embed(obj: Mapping[str, Any]) -> Any:
        # Inline values stay as received, so the cache entry must not share them.
        if add_to_cache and cache is not None:
            nested = transform_document(
                obj,
                cache=cache,
                clone=use_embedded,
                add_to_cache=False,
                use_embedded=use_embedded,
            )
            cache.set(obj[JSONLD_ID], nested)
        return obj if use_embedded else obj[JSONLD_ID]

    for key, value in list(result.items()):
        if is_jsonld_object(value):
            result[key] = embed(value)
        elif _is_relation_list(value):
            result[key] = [embed(item) for item in value]

    return result


__all__ = [
    "JSONLD_ID",
    "HydraDocument",
    "DocumentCache",
    "is_jsonld_object",
    "transform_document",
]
