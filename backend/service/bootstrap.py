from __future__ import annotations

import time
from pathlib import Path

from catalog.registry import DatasetEntry, get_dataset, resolve_repo_path
from catalog.types import DatasetConfig
from corpus.load_corpus import load_corpus
from corpus.types import Corpus, SourceSpec
from engine.duckdb import DuckDBEngine
from engine.in_memory import InMemoryEngine
from engine.types import QueryEngine, QuerySettings
from service.config import engine_name, normalize_engine
from service.context import ServiceContext
from service.logging_setup import get_logger
from telemetry.singleton import get_store
from tiles.reassemble import ReassemblyResult, reassemble, resolve_chunks
from tiles.store import MBTilesStore

log = get_logger(__name__)


def build_engine(name: str, corpus: Corpus, settings: QuerySettings) -> QueryEngine:
    if normalize_engine(name) == "duckdb":
        return DuckDBEngine(corpus, settings)
    return InMemoryEngine(corpus, settings)


def query_settings(cfg: DatasetConfig) -> QuerySettings:
    return QuerySettings(
        default_limit=cfg.query.defaultLimit,
        max_limit=cfg.query.maxLimit,
        filter_window=cfg.query.filterWindow,
    )


def build_context(
    entry: DatasetEntry | None = None, *, engine: str | None = None
) -> ServiceContext:
    """
    Start-up sequence: reassemble the container, open it, load the corpus,
    build the query engine.

    Runs once, before the app accepts requests. IOFailure from any phase
    propagates and aborts start-up; skipped non-required inputs only degrade it.
    """
    entry = entry or get_dataset()
    cfg = entry.config
    t0 = time.perf_counter()

    container_path = resolve_repo_path(cfg.container.path)
    reassembly = _reassemble(cfg, container_path)

    tiles = MBTilesStore(container_path)
    tiles.open()

    corpus = load_corpus(
        [SourceSpec(path=resolve_repo_path(s.path), required=s.required) for s in cfg.features.sources]
    )
    query_engine = build_engine(engine or engine_name(), corpus, query_settings(cfg))

    ctx = ServiceContext(
        dataset_id=cfg.id,
        tiles=tiles,
        corpus=corpus,
        engine=query_engine,
        default_source_layer=cfg.container.defaultSourceLayer,
        reassembly=reassembly,
        static_dir=str(resolve_repo_path(cfg.staticDir)) if cfg.staticDir else None,
        telemetry=get_store(),
    )
    log.info(
        "Dataset '%s' ready in %.0f ms (engine=%s, degraded=%s)",
        cfg.id,
        (time.perf_counter() - t0) * 1000.0,
        query_engine.name,
        ctx.degraded,
        extra={"extra": ctx.startup_report()},
    )
    return ctx


def _reassemble(cfg: DatasetConfig, container_path: Path) -> ReassemblyResult | None:
    container = cfg.container
    if not container.has_chunks:
        return None
    chunks = resolve_chunks(
        resolve_repo_path(container.chunkDir),
        names=container.chunks or None,
        pattern=container.chunkPattern,
        required=container.requiredChunks,
    )
    if not chunks:
        # Pattern matched nothing: fine if the container was shipped whole.
        log.warning("No chunk files match %s", container.chunkPattern)
        return None
    return reassemble(chunks, container_path)
