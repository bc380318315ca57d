from __future__ import annotations

import json
import logging
import os
import sys
import time
from typing import Optional


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line:
      {"t": 1700000000000, "lvl": "INFO", "name": "tiles.reassemble", "msg": "...", "extra": {...}}
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "t": int(time.time() * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        # `logger.warning(msg, extra={"extra": {...}})` attaches a structured payload.
        if hasattr(record, "extra") and isinstance(record.extra, dict):  # type: ignore[attr-defined]
            payload["extra"] = record.extra  # type: ignore[attr-defined]
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger once.

    Level precedence: explicit `level`, CHURCHMAP_LOG_LEVEL, LOG_LEVEL, INFO.
    """
    root = logging.getLogger()
    if getattr(root, "_churchmap_configured", False):
        return

    lvl_name = (
        level
        or os.getenv("CHURCHMAP_LOG_LEVEL")
        or os.getenv("LOG_LEVEL")
        or "INFO"
    ).upper()
    lvl = getattr(logging, lvl_name, None)
    if not isinstance(lvl, int):
        lvl = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(lvl)
    root._churchmap_configured = True  # type: ignore[attr-defined]


def get_logger(name: str) -> logging.Logger:
    """Module logger; configures the root logger on first use."""
    setup_logging()
    return logging.getLogger(name)
