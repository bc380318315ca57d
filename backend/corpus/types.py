from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Literal


# Fields matched by free-text search (`/churches?search=`).
SEARCH_FIELDS: tuple[str, ...] = (
    "title",
    "address",
    "country",
    "jurisdiction",
    "type",
    "rite",
)
# Fields accepted by the conjunctive filter (`/filter?...`).
FILTER_FIELDS: tuple[str, ...] = (
    "title",
    "jurisdiction",
    "rite",
    "type",
    "country",
    "address",
)
# Every property we index, lower-cased, at load time.
FEATURE_FIELDS: tuple[str, ...] = SEARCH_FIELDS + ("city",)

SourceStatus = Literal["loaded", "missing", "malformed"]


@dataclass(frozen=True)
class SourceSpec:
    path: Path
    # A required source that cannot be read aborts start-up.
    required: bool = False


@dataclass(frozen=True)
class ChurchFeature:
    """
    One feature of the catalog.

    `props` keeps the original property bag for responses; `fields` holds the
    lower-cased searchable values (keys are canonical lower-case names, so both
    `Title` and `title` properties land under `title`).
    """

    ordinal: int
    id: str | None
    lon: float | None
    lat: float | None
    geometry: dict[str, Any] | None
    props: dict[str, Any]
    source: str
    fields: dict[str, str] = field(default_factory=dict, repr=False)

    def value(self, name: str) -> str:
        return self.fields.get(name, "")

    def to_geojson(self) -> dict[str, Any]:
        # Copies, so response serialization can never touch the corpus.
        out: dict[str, Any] = {
            "type": "Feature",
            "geometry": copy.deepcopy(self.geometry),
            "properties": copy.deepcopy(self.props),
        }
        if self.id is not None:
            out["id"] = self.id
        return out


@dataclass(frozen=True)
class SourceReport:
    path: str
    status: SourceStatus
    count: int = 0
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "status": self.status,
            "count": self.count,
            "error": self.error,
        }


@dataclass(frozen=True)
class Corpus:
    """
    All loaded features, in source declaration order then file order.

    Immutable after load; the ordinal of each feature is its index here.
    """

    features: tuple[ChurchFeature, ...]
    sources: tuple[SourceReport, ...] = ()

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self) -> Iterator[ChurchFeature]:
        return iter(self.features)

    def __getitem__(self, i):
        return self.features[i]

    @property
    def skipped(self) -> list[SourceReport]:
        return [s for s in self.sources if s.status != "loaded"]

    def as_dict(self) -> dict[str, Any]:
        return {
            "features": len(self.features),
            "sources": [s.as_dict() for s in self.sources],
        }
