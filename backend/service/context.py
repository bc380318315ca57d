from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from corpus.types import Corpus
from engine.types import QueryEngine
from service.errors import NotReady
from telemetry.store import TelemetryStore
from tiles.reassemble import ReassemblyResult
from tiles.store import MBTilesStore


@dataclass(frozen=True)
class ServiceContext:
    """
    Everything a request handler may touch, built once at start-up.

    Handlers receive this explicitly (FastAPI dependency); nothing here is
    mutated after construction.
    """

    dataset_id: str
    tiles: MBTilesStore
    corpus: Corpus
    engine: QueryEngine
    default_source_layer: str = "parishes"
    reassembly: ReassemblyResult | None = None
    static_dir: str | None = field(default=None, repr=False)
    # Resolved once at start-up; None when telemetry is disabled.
    telemetry: TelemetryStore | None = field(default=None, repr=False)

    @property
    def degraded(self) -> bool:
        partial = self.reassembly is not None and self.reassembly.partial
        return partial or bool(self.corpus.skipped)

    def require_tiles(self) -> MBTilesStore:
        if not self.tiles.ready:
            raise NotReady("Tile store is not open")
        return self.tiles

    def startup_report(self) -> dict[str, Any]:
        return {
            "dataset": self.dataset_id,
            "engine": self.engine.name,
            "reassembly": self.reassembly.as_dict() if self.reassembly else None,
            "corpus": self.corpus.as_dict(),
            "degraded": self.degraded,
        }
