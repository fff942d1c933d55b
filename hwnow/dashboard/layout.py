"""Grid layout helpers: first-fit placement and layout blob parsing."""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping, Optional

from .types import LayoutItem

GRID_COLUMNS = 12
SCAN_ROWS = 20
NEW_WIDGET_W = 4
NEW_WIDGET_H = 3
DEFAULT_W = 6
DEFAULT_H = 2
BREAKPOINTS = ("lg", "md", "sm", "xs", "xxs")


def _overlaps(a: LayoutItem, x: int, y: int, w: int, h: int) -> bool:
    return x < a.x + a.w and a.x < x + w and y < a.y + a.h and a.y < y + h


def find_first_fit(
    layouts: Iterable[LayoutItem],
    widget_id: str,
    w: int = NEW_WIDGET_W,
    h: int = NEW_WIDGET_H,
    cols: int = GRID_COLUMNS,
    max_rows: int = SCAN_ROWS,
) -> LayoutItem:
    """Place a ``w``x``h`` widget at the first free slot, scanning row-major.

    When nothing fits in the first ``max_rows`` rows the widget goes to
    ``x=0`` directly below the lowest existing widget.
    """
    existing = list(layouts)
    w = max(1, min(w, cols))
    for y in range(max_rows):
        for x in range(cols - w + 1):
            if not any(_overlaps(item, x, y, w, h) for item in existing):
                return LayoutItem(i=widget_id, x=x, y=y, w=w, h=h)
    bottom = max((item.y + item.h for item in existing), default=0)
    return LayoutItem(i=widget_id, x=0, y=bottom, w=w, h=h)


def clamp(item: LayoutItem, cols: int = GRID_COLUMNS) -> LayoutItem:
    """Keep width within the grid and x inside it. Height is only floored at 1."""
    w = max(1, min(item.w, cols))
    x = max(0, min(item.x, cols - w))
    return LayoutItem(i=item.i, x=x, y=max(0, item.y), w=w, h=max(1, item.h))


def _load(blob: Any) -> Any:
    if isinstance(blob, bytes):
        blob = blob.decode()
    if isinstance(blob, str):
        if not blob.strip():
            return None
        return json.loads(blob)
    return blob


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    return default


def parse_layout(widget_id: str, blob: Any) -> LayoutItem:
    """Decode a stored layout into a ``LayoutItem``.

    Accepts the flat ``{x, y, w, h}`` form and the responsive
    ``{lg: {...}, md: {...}}`` form (first breakpoint present wins).
    Missing or non-numeric fields fall back to ``x=0, y=0, w=6, h=2``.
    Raises ``ValueError`` for text that is not valid JSON.
    """
    data = _load(blob)
    if not isinstance(data, Mapping):
        return LayoutItem(i=widget_id)

    if not any(key in data for key in ("x", "y", "w", "h")):
        for bp in BREAKPOINTS:
            candidate = data.get(bp)
            if isinstance(candidate, list):
                candidate = next(
                    (c for c in candidate if isinstance(c, Mapping) and c.get("i") in (None, widget_id)),
                    None,
                )
            if isinstance(candidate, Mapping):
                data = candidate
                break

    return LayoutItem(
        i=widget_id,
        x=_as_int(data.get("x"), 0),
        y=_as_int(data.get("y"), 0),
        w=_as_int(data.get("w"), DEFAULT_W),
        h=_as_int(data.get("h"), DEFAULT_H),
    )


def parse_config(blob: Any) -> dict:
    """Decode a stored widget config. Raises ``ValueError`` on invalid JSON."""
    data = _load(blob)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ValueError(f"widget config must be an object, got {type(data).__name__}")
    return dict(data)


def serialize_layout(item: Optional[LayoutItem]) -> str:
    if item is None:
        return json.dumps({"x": 0, "y": 0, "w": DEFAULT_W, "h": DEFAULT_H})
    return json.dumps(item.as_dict())


def serialize_config(config: Mapping[str, Any]) -> str:
    return json.dumps(dict(config))
