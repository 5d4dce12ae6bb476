# SPDX-License-Identifier: Apache-2.0
"""Query descriptors for point-in-time and live queries."""
from __future__ import annotations

import operator
from dataclasses import dataclass, field
from typing import Any, Callable

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda value, allowed: value in allowed,
    "not-in": lambda value, allowed: value not in allowed,
    "array-contains": lambda value, item: isinstance(value, list) and item in value,
}


def split_path(path: str) -> tuple[str, str, str]:
    """Return (collection path, collection name, record id) for a record path."""
    parts = [p for p in path.strip("/").split("/") if p]
    if not parts or len(parts) % 2:
        raise ValueError(f"Not a record path: {path!r}")
    collection = "/".join(parts[:-1])
    return collection, parts[-2], parts[-1]


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator {self.op!r}")

    def matches(self, data: dict) -> bool:
        if self.field not in data:
            return False
        try:
            return bool(_OPERATORS[self.op](data[self.field], self.value))
        except TypeError:
            return False


@dataclass(frozen=True)
class QueryDescriptor:
    """Which records a query selects and in what order.

    ``collection`` is a collection path (``protocols/P1/documents``). With
    ``group=True`` it is a bare collection name matched under every parent
    (``assignments`` across all protocols).
    """

    collection: str
    filters: tuple[Filter, ...] = field(default_factory=tuple)
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None
    group: bool = False

    def where(self, field_name: str, op: str, value: Any) -> "QueryDescriptor":
        return QueryDescriptor(
            collection=self.collection,
            filters=self.filters + (Filter(field_name, op, value),),
            order_by=self.order_by,
            descending=self.descending,
            limit=self.limit,
            group=self.group,
        )

    def ordered(self, field_name: str, descending: bool = False) -> "QueryDescriptor":
        return QueryDescriptor(
            collection=self.collection,
            filters=self.filters,
            order_by=field_name,
            descending=descending,
            limit=self.limit,
            group=self.group,
        )

    def targets(self, collection: str) -> bool:
        """True when a write to ``collection`` can change this query's result."""
        if self.group:
            return collection.rsplit("/", 1)[-1] == self.collection
        return collection == self.collection

    def apply(self, rows: list[tuple[str, dict]]) -> list[tuple[str, dict]]:
        """Filter, sort and limit rows client-side."""
        selected = [(rid, data) for rid, data in rows if all(f.matches(data) for f in self.filters)]
        if self.order_by:
            key = self.order_by
            present = [r for r in selected if r[1].get(key) is not None]
            missing = [r for r in selected if r[1].get(key) is None]
            present.sort(key=lambda r: r[1][key], reverse=self.descending)
            selected = present + missing
        if self.limit is not None:
            selected = selected[: self.limit]
        return selected


def collection(path: str) -> QueryDescriptor:
    return QueryDescriptor(collection=path.strip("/"))


def collection_group(name: str) -> QueryDescriptor:
    return QueryDescriptor(collection=name, group=True)
