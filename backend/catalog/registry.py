from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable

import yaml

from catalog.types import DatasetConfig

DEFAULT_DATASET_ID = "parishes"


def _repo_root() -> Path:
    # .../backend/catalog/registry.py -> repo root is 2 levels up
    return Path(__file__).resolve().parents[2]


def _datasets_root() -> Path:
    raw = (os.getenv("CHURCHMAP_DATASETS_DIR") or "").strip()
    return Path(raw) if raw else _repo_root() / "datasets"


@dataclass(frozen=True)
class DatasetEntry:
    config: DatasetConfig
    # Absolute path to dataset.yaml on disk; relative paths in it resolve from the repo root.
    path: Path


def _iter_dataset_yaml_files() -> Iterable[Path]:
    root = _datasets_root()
    if not root.exists():
        return []
    # Convention: datasets/*/dataset.yaml
    return root.glob("*/dataset.yaml")


def load_dataset_file(path: Path) -> DatasetConfig:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid dataset yaml root: {path}")
    return DatasetConfig.model_validate(data)


@lru_cache(maxsize=1)
def get_registry() -> dict[str, DatasetEntry]:
    out: dict[str, DatasetEntry] = {}
    for p in sorted(_iter_dataset_yaml_files(), key=lambda x: str(x)):
        cfg = load_dataset_file(p)
        if not cfg.enabled:
            continue
        out[cfg.id] = DatasetEntry(config=cfg, path=p)
    return out


def default_dataset_id() -> str:
    env_id = (os.getenv("CHURCHMAP_DATASET") or "").strip()
    reg = get_registry()
    if env_id and env_id in reg:
        return env_id
    if DEFAULT_DATASET_ID in reg or not reg:
        return DEFAULT_DATASET_ID
    # Fall back to stable ordering.
    return next(iter(reg.keys()))


def get_dataset(dataset_id: str | None = None) -> DatasetEntry:
    reg = get_registry()
    if not reg:
        raise RuntimeError(
            f"No datasets discovered under `{_datasets_root()}/*/dataset.yaml`"
        )
    did = (dataset_id or "").strip() or default_dataset_id()
    if did not in reg:
        raise KeyError(f"Unknown dataset '{did}' (known: {sorted(reg)})")
    return reg[did]


def resolve_repo_path(repo_relative: str) -> Path:
    # Absolute paths are kept; "data/..." and "./data/..." resolve from the repo root.
    p = Path(repo_relative)
    if p.is_absolute():
        return p
    return _repo_root() / p


def clear_registry_cache() -> None:
    """
    Clear the in-memory dataset registry.

    Dataset YAML (or CHURCHMAP_DATASETS_DIR) changes are otherwise not picked up
    until the process restarts.
    """
    get_registry.cache_clear()
