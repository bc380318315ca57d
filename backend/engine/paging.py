from __future__ import annotations

import re
from typing import Any

from engine.types import QuerySettings
from service.errors import BadInput

# Leading integer, like JavaScript's parseInt: "2abc" -> 2, " 3" -> 3.
_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
# Longer digit runs are rejected rather than converted.
_MAX_DIGITS = 18


def parse_int(raw: Any) -> int:
    if isinstance(raw, bool):
        raise BadInput(f"Not an integer: {raw!r}")
    if isinstance(raw, int):
        return raw
    m = _INT_PREFIX.match(str(raw if raw is not None else ""))
    if not m:
        raise BadInput(f"Not an integer: {raw!r}")
    digits = m.group(1)
    if len(digits.lstrip("+-")) > _MAX_DIGITS:
        raise BadInput(f"Integer too long: {len(digits)} digits")
    return int(digits)


def int_param(raw: Any, default: int) -> int:
    """
    Lenient positive-int query parameter: anything unparseable or < 1 is `default`.

    Map clients send partial query strings, so bad paging never fails a request.
    """
    try:
        v = parse_int(raw)
    except BadInput:
        return default
    return v if v >= 1 else default


def page_window(page: Any, limit: Any, settings: QuerySettings) -> tuple[int, int]:
    p = int_param(page, 1)
    lim = int_param(limit, settings.default_limit)
    return p, min(lim, settings.max_limit)
