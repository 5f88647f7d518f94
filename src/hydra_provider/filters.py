"""Compile a nested filter mapping into API Platform query parameters."""

from __future__ import annotations

from typing import Any, Mapping, MutableMapping

# Sub-keys that are filter operators rather than nested property paths.
OPERATOR_KEYS = frozenset(
    {
        "after",
        "before",
        "strictly_after",
        "strictly_before",
        "lt",
        "gt",
        "lte",
        "gte",
        "between",
    }
)

EXISTS_KEY = "exists"


def format_query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def child_key(root_key: str, sub_key: str) -> str:
    """
    `price` + `between` -> `price[between]`; `author` + `name` -> `author.name`.
    Operator names win over the nested-path reading.
    """
    if root_key == EXISTS_KEY or sub_key in OPERATOR_KEYS:
        return f"{root_key}[{sub_key}]"
    return f"{root_key}.{sub_key}"


def _compile_value(root_key: str, value: Any, query: MutableMapping[str, str]) -> None:
    if isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            query[f"{root_key}[{index}]"] = format_query_value(item)
        return

    if isinstance(value, Mapping):
        for sub_key, sub_value in value.items():
            _compile_value(child_key(root_key, str(sub_key)), sub_value, query)
        return

    query[root_key] = format_query_value(value)


def compile_filters(
    filters: Mapping[str, Any], query: MutableMapping[str, str]
) -> MutableMapping[str, str]:
    """Write one query parameter per leaf of `filters` into `query`."""
    for key, value in filters.items():
        _compile_value(str(key), value, query)
    return query


__all__ = [
    "OPERATOR_KEYS",
    "EXISTS_KEY",
    "format_query_value",
    "child_key",
    "compile_filters",
]
