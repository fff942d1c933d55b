"""Dashboard store — in-memory pages/widgets/layouts kept in sync with a backend.

Page operations are pessimistic: the backend is written first and local
state changes only on success. Widget operations are optimistic: local state
changes immediately and is persisted by a debounced save, or (for removal)
the widget is put back when the backend refuses. ``save_now`` is the explicit
save that reports failure to the caller.

All backend writes go through one lock so a debounced save never interleaves
with a page operation or a widget delete.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace
from typing import Any, Callable, Iterable, Mapping, Optional, Union

from ..errors import (
    ConflictError,
    HWnowError,
    LastPageError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ..utils.logging import get_logger
from . import layout as grid
from .backends import DashboardBackend, HttpDashboardBackend
from .debounce import Debouncer
from .fallback import FallbackCache
from .types import DashboardState, LayoutItem, Page, Widget, WidgetType

logger = get_logger("dashboard.store")

Listener = Callable[[DashboardState], None]

DEFAULT_USER_ID = "global-user"
DEFAULT_PAGE_ID = "main-page"
DEFAULT_PAGE_NAME = "Main Page"


class DashboardStore:
    """Explicit state container for one user's dashboard.

    Observers register with ``subscribe()`` and receive every new
    ``DashboardState``.
    """

    def __init__(
        self,
        backend: DashboardBackend,
        user_id: str = DEFAULT_USER_ID,
        fallback: Optional[FallbackCache] = None,
        save_delay: float = 1.5,
        default_page_id: str = DEFAULT_PAGE_ID,
        default_page_name: str = DEFAULT_PAGE_NAME,
    ):
        self._backend = backend
        self._user_id = user_id
        self._fallback = fallback
        self._default_page_id = default_page_id
        self._default_page_name = default_page_name
        self._state = DashboardState()
        self._listeners: list[Listener] = []
        self._dirty: set[str] = set()
        self._write_lock = asyncio.Lock()
        self._debouncer = Debouncer(self._save_dirty_pages, save_delay)

    @property
    def state(self) -> DashboardState:
        return self._state

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def save_pending(self) -> bool:
        return self._debouncer.pending

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: DashboardState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error("dashboard_listener_failed", error=str(e))

    def _replace_page(self, page: Page) -> None:
        pages = tuple(page if p.id == page.id else p for p in self._state.pages)
        self._set_state(replace(self._state, pages=pages))

    def _require_active_page(self) -> Page:
        page = self._state.active_page
        if page is None:
            raise ValidationError("Dashboard has no active page")
        return page

    # --- Loading ---

    async def initialize(self) -> DashboardState:
        """Load every page and its widgets from the backend.

        Falls back to the local cache (or a single empty default page) when
        the backend cannot be reached.
        """
        try:
            pages = await self._load_remote()
        except HWnowError as e:
            logger.warning("dashboard_remote_load_failed", user_id=self._user_id, error=e.detail)
            cached = self._fallback.load_state() if self._fallback else None
            if cached is not None:
                logger.info("dashboard_restored_from_fallback", pages=len(cached.pages))
                state = replace(cached, is_initialized=True)
            else:
                state = DashboardState(
                    pages=(Page(id=self._default_page_id, name=self._default_page_name),),
                    is_initialized=True,
                )
            self._set_state(state)
            return state

        state = DashboardState(pages=pages, active_page_index=0, is_initialized=True)
        self._set_state(state)
        logger.info(
            "dashboard_initialized",
            user_id=self._user_id,
            pages=len(pages),
            widgets=sum(len(p.widgets) for p in pages),
        )
        return state

    async def _load_remote(self) -> tuple[Page, ...]:
        records = await self._backend.get_pages(self._user_id)
        if not records:
            await self._create_default_page()
            records = [{"pageId": self._default_page_id, "pageName": self._default_page_name}]

        try:
            page_ids = [r["pageId"] for r in records]
        except (KeyError, TypeError) as e:
            raise PersistenceError(f"Malformed page record from backend: {e!r}") from e
        await self._replay_pending(page_ids)

        pages = []
        for record in records:
            widgets = await self._backend.get_widgets(self._user_id, record["pageId"])
            pages.append(self._build_page(record, widgets))
        return tuple(pages)

    async def _create_default_page(self) -> None:
        try:
            async with self._write_lock:
                await self._backend.create_page(
                    self._user_id, self._default_page_id, self._default_page_name
                )
        except ConflictError:
            pass
        except HWnowError as e:
            logger.warning("default_page_create_failed", user_id=self._user_id, error=e.detail)

    async def _replay_pending(self, page_ids: list[str]) -> None:
        if self._fallback is None:
            return
        pending = self._fallback.pending_batches()
        replayed = []
        for page_id, batch in pending.items():
            if page_id not in page_ids or not batch:
                continue
            try:
                async with self._write_lock:
                    await self._backend.save_widgets(batch)
            except HWnowError as e:
                logger.warning("pending_batch_replay_failed", page_id=page_id, error=e.detail)
                continue
            replayed.append(page_id)
        if replayed:
            self._fallback.clear_pending(replayed)
            logger.info("pending_batches_replayed", pages=replayed)

    def _build_page(self, record: Mapping[str, Any], widget_records: Iterable[Mapping[str, Any]]) -> Page:
        page_id = record["pageId"]
        widgets = []
        layouts = []
        for raw in widget_records:
            widget_id = raw.get("widgetId") if isinstance(raw, Mapping) else None
            if not widget_id:
                logger.warning("widget_without_id_skipped", page_id=page_id)
                continue
            try:
                config = grid.parse_config(raw.get("config"))
            except ValueError as e:
                logger.warning("widget_config_invalid", widget_id=widget_id, error=str(e))
                config = {}
            try:
                item = grid.parse_layout(widget_id, raw.get("layout"))
            except ValueError as e:
                logger.warning("widget_layout_invalid", widget_id=widget_id, error=str(e))
                item = LayoutItem(i=widget_id)
            widgets.append(Widget(id=widget_id, widget_type=raw.get("widgetType", ""), config=config))
            layouts.append(item)
        return Page(
            id=page_id,
            name=record.get("pageName") or page_id,
            widgets=tuple(widgets),
            layouts=tuple(layouts),
        )

    # --- Pages ---

    async def add_page(self) -> Page:
        page = Page(id=str(uuid.uuid4()), name=f"Page {len(self._state.pages) + 1}")
        async with self._write_lock:
            await self._backend.create_page(self._user_id, page.id, page.name)

        pages = self._state.pages + (page,)
        self._set_state(replace(self._state, pages=pages, active_page_index=len(pages) - 1))
        logger.info("dashboard_page_added", page_id=page.id)
        return page

    async def remove_page(self, page_id: str) -> None:
        if len(self._state.pages) <= 1:
            raise LastPageError("Cannot delete the last remaining page")
        if self._state.page_index(page_id) < 0:
            logger.debug("dashboard_page_remove_missing", page_id=page_id)
            return

        async with self._write_lock:
            await self._backend.delete_page(self._user_id, page_id)

        current = self._state
        index = current.page_index(page_id)
        if index < 0:
            return
        pages = current.pages[:index] + current.pages[index + 1:]
        active = current.active_page_index
        if index <= active and active > 0:
            active -= 1
        active = max(0, min(active, len(pages) - 1))
        self._dirty.discard(page_id)
        self._set_state(replace(current, pages=pages, active_page_index=active))
        logger.info("dashboard_page_removed", page_id=page_id, active_page_index=active)

    def set_active_page_index(self, index: int) -> None:
        if not 0 <= index < len(self._state.pages):
            raise ValidationError(f"Page index {index} out of range")
        self._set_state(replace(self._state, active_page_index=index))

    async def update_page_name(self, page_id: str, name: str) -> None:
        if not name:
            raise ValidationError("pageName required")
        async with self._write_lock:
            await self._backend.update_page_name(self._user_id, page_id, name)

        index = self._state.page_index(page_id)
        if index >= 0:
            self._replace_page(replace(self._state.pages[index], name=name))

    # --- Widgets ---

    def add_widget(self, widget_type: Union[WidgetType, str]) -> Widget:
        try:
            kind = WidgetType(widget_type).value
        except ValueError:
            raise ValidationError(f"Unknown widget type: {widget_type}") from None

        page = self._require_active_page()
        widget = Widget(id=str(uuid.uuid4()), widget_type=kind)
        item = grid.find_first_fit(page.layouts, widget.id)
        self._replace_page(
            replace(page, widgets=page.widgets + (widget,), layouts=page.layouts + (item,))
        )
        logger.debug("widget_added", widget_id=widget.id, widget_type=kind, x=item.x, y=item.y)
        self._mark_dirty(page.id)
        return widget

    async def remove_widget(self, widget_id: str) -> None:
        page = self._require_active_page()
        widget = page.find_widget(widget_id)
        if widget is None:
            logger.debug("widget_remove_missing", widget_id=widget_id)
            return

        item = page.layout_for(widget_id)
        widget_pos = page.widgets.index(widget)
        layout_pos = page.layouts.index(item) if item is not None else 0
        self._replace_page(
            replace(
                page,
                widgets=tuple(w for w in page.widgets if w.id != widget_id),
                layouts=tuple(li for li in page.layouts if li.i != widget_id),
            )
        )
        try:
            async with self._write_lock:
                await self._backend.delete_widget(self._user_id, page.id, widget_id)
        except HWnowError as e:
            logger.warning("widget_remove_rolled_back", widget_id=widget_id, error=e.detail)
            self._restore_widget(page.id, widget, widget_pos, item, layout_pos)
            # A save may have persisted the removal while the delete was queued
            self._mark_dirty(page.id)
            raise
        logger.info("widget_removed", page_id=page.id, widget_id=widget_id)

    def _restore_widget(
        self,
        page_id: str,
        widget: Widget,
        widget_pos: int,
        item: Optional[LayoutItem],
        layout_pos: int,
    ) -> None:
        """Put back a widget whose removal the backend refused.

        Only that widget and its layout return, at their old positions; other
        pages and the active index are left as they are now. Nothing happens
        when the page itself is gone.
        """
        index = self._state.page_index(page_id)
        if index < 0:
            return
        current = self._state.pages[index]
        widgets, layouts = current.widgets, current.layouts
        if current.find_widget(widget.id) is None:
            widgets = widgets[:widget_pos] + (widget,) + widgets[widget_pos:]
        if item is not None and current.layout_for(widget.id) is None:
            layouts = layouts[:layout_pos] + (item,) + layouts[layout_pos:]
        self._replace_page(replace(current, widgets=widgets, layouts=layouts))

    def update_layout(self, layouts: Iterable[Union[LayoutItem, Mapping[str, Any]]]) -> None:
        page = self._require_active_page()
        items = tuple(
            grid.clamp(item if isinstance(item, LayoutItem) else grid.parse_layout(item["i"], item))
            for item in layouts
        )
        self._replace_page(replace(page, layouts=items))
        self._mark_dirty(page.id)

    def update_widget_config(self, widget_id: str, partial: Mapping[str, Any]) -> None:
        page = self._require_active_page()
        widget = page.find_widget(widget_id)
        if widget is None:
            raise NotFoundError(f"Widget {widget_id} not found")
        updated = widget.with_config(partial)
        self._replace_page(
            replace(page, widgets=tuple(updated if w.id == widget_id else w for w in page.widgets))
        )
        self._mark_dirty(page.id)

    # --- Saving ---

    def _mark_dirty(self, page_id: str) -> None:
        self._dirty.add(page_id)
        self._debouncer.schedule()

    def save_state(self) -> None:
        """Schedule a debounced save of the active page."""
        page = self._require_active_page()
        self._mark_dirty(page.id)

    async def flush(self) -> None:
        """Run a scheduled save now instead of waiting for the delay."""
        await self._debouncer.flush()

    async def save_now(self) -> None:
        """Save the active page, plus any other dirty page, immediately.

        Unlike the debounced save this reports failure: pages that could not
        be saved go to the fallback cache and ``PersistenceError`` is raised.
        """
        self._debouncer.cancel()
        page = self._require_active_page()
        self._dirty.add(page.id)
        failed = await self._save_dirty_pages()
        if failed:
            raise PersistenceError(f"Could not save pages: {', '.join(sorted(failed))}")
        logger.info("dashboard_saved", page_id=page.id)

    def _serialize_page(self, page: Page) -> list[dict]:
        return [
            {
                "userId": self._user_id,
                "pageId": page.id,
                "widgetId": widget.id,
                "widgetType": widget.widget_type,
                "config": grid.serialize_config(widget.config),
                "layout": grid.serialize_layout(page.layout_for(widget.id)),
            }
            for widget in page.widgets
        ]

    async def _save_dirty_pages(self) -> dict[str, list[dict]]:
        """Save every dirty page and return the batches that failed."""
        async with self._write_lock:
            page_ids, self._dirty = self._dirty, set()
            failed: dict[str, list[dict]] = {}
            saved: list[str] = []
            for page_id in page_ids:
                index = self._state.page_index(page_id)
                if index < 0:
                    continue
                batch = self._serialize_page(self._state.pages[index])
                if not batch:
                    saved.append(page_id)
                    continue
                try:
                    await self._backend.save_widgets(batch)
                except HWnowError as e:
                    logger.error("dashboard_save_failed", page_id=page_id, error=e.detail)
                    failed[page_id] = batch
                    continue
                saved.append(page_id)
                logger.debug("dashboard_page_saved", page_id=page_id, widgets=len(batch))

        if self._fallback is None:
            return failed
        if failed:
            self._fallback.save(self._state, failed)
        if saved:
            self._fallback.clear_pending(saved)
            # Backend is reachable again, retry batches left by earlier cycles
            retry = [
                page_id
                for page_id in self._fallback.pending_batches()
                if page_id not in failed
                and page_id not in self._dirty
                and self._state.page_index(page_id) >= 0
            ]
            if retry:
                await self._replay_pending(retry)
        return failed

    async def reset_state(self) -> DashboardState:
        """Drop local state and pending saves, then reload from the backend."""
        self._debouncer.cancel()
        self._dirty.clear()
        self._set_state(DashboardState())
        return await self.initialize()


def create_dashboard_store(config, client=None) -> DashboardStore:
    """Build a store that talks to the REST API described by ``config``.

    ``config`` is an ``HWnowConfig``; ``client`` optionally supplies a
    preconfigured ``httpx.AsyncClient``.
    """
    backend = HttpDashboardBackend(
        config.dashboard_api_url,
        timeout=config.dashboard_request_timeout,
        client=client,
    )
    return DashboardStore(
        backend,
        user_id=config.default_user_id,
        fallback=FallbackCache(config.dashboard_fallback_path),
        save_delay=config.dashboard_save_delay_seconds,
        default_page_id=config.default_page_id,
        default_page_name=config.default_page_name,
    )
