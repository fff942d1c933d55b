"""Local durable fallback for dashboard state that failed to reach the backend.

The cache is one JSON document holding the last known pages, the active page
index, and the widget batches still waiting to be saved. Writes go to a
temporary file that is then renamed over the original, so a crash never
leaves a half-written cache behind.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..utils.logging import get_logger
from .types import DashboardState, LayoutItem, Page, Widget

logger = get_logger("dashboard.fallback")


def _page_to_dict(page: Page) -> dict:
    return {
        "id": page.id,
        "name": page.name,
        "widgets": [
            {"i": w.id, "type": w.widget_type, "config": dict(w.config)} for w in page.widgets
        ],
        "layouts": [{"i": item.i, **item.as_dict()} for item in page.layouts],
    }


def _page_from_dict(data: dict) -> Page:
    return Page(
        id=data["id"],
        name=data.get("name", data["id"]),
        widgets=tuple(
            Widget(id=w["i"], widget_type=w["type"], config=w.get("config") or {})
            for w in data.get("widgets", [])
        ),
        layouts=tuple(
            LayoutItem(i=item["i"], x=item["x"], y=item["y"], w=item["w"], h=item["h"])
            for item in data.get("layouts", [])
        ),
    )


class FallbackCache:
    """JSON-file backed snapshot of dashboard state plus pending save batches.

    Pending batches are keyed by page id; a newer batch for the same page
    replaces the older one since each batch is the page's full widget set.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("fallback_cache_unreadable", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".dashboard-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def save(self, state: DashboardState, pending: Optional[dict[str, list[dict]]] = None) -> None:
        """Store a snapshot of ``state`` and merge ``pending`` batches into the cache."""
        data = self._read()
        batches = data.get("pending") or {}
        batches.update(pending or {})
        self._write({
            "pages": [_page_to_dict(p) for p in state.pages],
            "active_page_index": state.active_page_index,
            "pending": batches,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        })
        logger.info("fallback_cache_written", pages=len(state.pages), pending=len(batches))

    def load_state(self) -> Optional[DashboardState]:
        data = self._read()
        pages = data.get("pages")
        if not pages:
            return None
        try:
            restored = tuple(_page_from_dict(p) for p in pages)
        except (KeyError, TypeError) as e:
            logger.warning("fallback_cache_corrupt", error=str(e))
            return None
        index = data.get("active_page_index", 0)
        if not isinstance(index, int) or not 0 <= index < len(restored):
            index = 0
        return DashboardState(pages=restored, active_page_index=index)

    def pending_batches(self) -> dict[str, list[dict]]:
        batches = self._read().get("pending") or {}
        return {page_id: list(batch) for page_id, batch in batches.items()}

    def clear_pending(self, page_ids: Optional[list[str]] = None) -> None:
        data = self._read()
        if not data.get("pending"):
            return
        if page_ids is None:
            data["pending"] = {}
        else:
            for page_id in page_ids:
                data["pending"].pop(page_id, None)
        self._write(data)
