from __future__ import annotations

import os

ENGINES = ("in_memory", "duckdb")


def normalize_engine(name: str | None) -> str:
    n = (name or "in_memory").strip().lower()
    if n in ENGINES:
        return n
    return "in_memory"


def engine_name() -> str:
    return normalize_engine(os.getenv("CHURCHMAP_ENGINE"))


def server_host() -> str:
    return (os.getenv("CHURCHMAP_HOST") or "0.0.0.0").strip() or "0.0.0.0"


def server_port() -> int:
    raw = (os.getenv("CHURCHMAP_PORT") or os.getenv("PORT") or "").strip()
    if raw:
        try:
            return int(raw)
        except ValueError:
            pass
    return 3000
