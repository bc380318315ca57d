from __future__ import annotations

import math
from dataclasses import dataclass, fields
from typing import Any, Mapping, Protocol

from corpus.types import FILTER_FIELDS, ChurchFeature


@dataclass(frozen=True)
class QuerySettings:
    default_limit: int = 100
    max_limit: int = 1000
    # `/filter` always returns page 1 of this many records.
    filter_window: int = 1000


@dataclass(frozen=True)
class Pagination:
    current_page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit > 0 else 0

    @property
    def start(self) -> int:
        return min(self.total, (self.current_page - 1) * self.limit)

    @property
    def stop(self) -> int:
        return min(self.total, self.current_page * self.limit)

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "totalPages": self.total_pages,
            "currentPage": self.current_page,
            "limit": self.limit,
        }


@dataclass(frozen=True)
class QueryResult:
    items: tuple[ChurchFeature, ...]
    pagination: Pagination

    def as_dict(self) -> dict[str, Any]:
        return {
            "churches": [f.to_geojson() for f in self.items],
            "pagination": self.pagination.as_dict(),
        }


@dataclass(frozen=True)
class FilterQuery:
    """
    Conjunctive field filter. Empty fields impose no constraint.
    """

    title: str = ""
    jurisdiction: str = ""
    rite: str = ""
    type: str = ""
    country: str = ""
    address: str = ""

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "FilterQuery":
        known = {f.name for f in fields(cls)}
        return cls(**{k: str(v or "") for k, v in values.items() if k in known})

    def terms(self) -> dict[str, str]:
        """Populated fields, lower-cased, in FILTER_FIELDS order."""
        out: dict[str, str] = {}
        for name in FILTER_FIELDS:
            v = getattr(self, name)
            if v:
                out[name] = v.lower()
        return out


class QueryEngine(Protocol):
    """
    Query engine interface.

    - InMemoryEngine: linear scan over the corpus tuple
    - DuckDBEngine: same predicates evaluated in an in-process DuckDB table
    """

    name: str

    def list(self, page: Any, limit: Any, search: str = "") -> QueryResult: ...

    def filter(self, query: FilterQuery) -> QueryResult: ...
