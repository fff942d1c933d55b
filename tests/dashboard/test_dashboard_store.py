"""Tests for the dashboard store against an in-memory fake backend."""

import asyncio
import json

import pytest

from hwnow.dashboard.fallback import FallbackCache
from hwnow.dashboard.store import DashboardStore
from hwnow.dashboard.types import LayoutItem
from hwnow.errors import (
    ConflictError,
    LastPageError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)

USER = "global-user"


class FakeBackend:
    """Dict-backed backend.

    Methods named in ``failing`` raise PersistenceError; a method with an
    event in ``gates`` waits for it before doing anything.
    """

    def __init__(self):
        self.pages: list[dict] = []
        self.widgets: dict[str, list[dict]] = {}
        self.failing: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        self.saved_batches: list[list[dict]] = []
        self.calls: list[str] = []

    async def _enter(self, name):
        self.calls.append(name)
        if name in self.gates:
            await self.gates[name].wait()
        if name in self.failing:
            raise PersistenceError(f"{name} unavailable")

    def add_page(self, page_id, name, widgets=()):
        self.pages.append({"pageId": page_id, "pageName": name, "pageOrder": len(self.pages)})
        self.widgets[page_id] = list(widgets)

    async def get_pages(self, user_id):
        await self._enter("get_pages")
        return [dict(p) for p in self.pages]

    async def create_page(self, user_id, page_id, page_name):
        await self._enter("create_page")
        if any(p["pageId"] == page_id for p in self.pages):
            raise ConflictError(f"Page {page_id} already exists")
        self.add_page(page_id, page_name)

    async def delete_page(self, user_id, page_id):
        await self._enter("delete_page")
        self.pages = [p for p in self.pages if p["pageId"] != page_id]
        self.widgets.pop(page_id, None)

    async def update_page_name(self, user_id, page_id, page_name):
        await self._enter("update_page_name")
        for page in self.pages:
            if page["pageId"] == page_id:
                page["pageName"] = page_name
                return
        raise NotFoundError(f"Page {page_id} not found")

    async def get_widgets(self, user_id, page_id):
        await self._enter("get_widgets")
        return [dict(w) for w in self.widgets.get(page_id, [])]

    async def save_widgets(self, widgets):
        await self._enter("save_widgets")
        self.saved_batches.append(list(widgets))
        self.widgets[widgets[0]["pageId"]] = [dict(w) for w in widgets]

    async def delete_widget(self, user_id, page_id, widget_id):
        await self._enter("delete_widget")
        self.widgets[page_id] = [w for w in self.widgets.get(page_id, []) if w["widgetId"] != widget_id]


def _record(widget_id, page_id="main-page", widget_type="cpu", config="{}", layout=None):
    return {
        "userId": USER,
        "pageId": page_id,
        "widgetId": widget_id,
        "widgetType": widget_type,
        "config": config,
        "layout": layout if layout is not None else json.dumps({"x": 0, "y": 0, "w": 4, "h": 3}),
    }


@pytest.fixture
def backend():
    backend = FakeBackend()
    backend.add_page("main-page", "Main Page")
    return backend


@pytest.fixture
def fallback(tmp_path):
    return FallbackCache(tmp_path / "dashboard.json")


@pytest.fixture
def store(backend, fallback):
    return DashboardStore(backend, user_id=USER, fallback=fallback, save_delay=0.02)


class TestInitialize:
    @pytest.mark.asyncio
    async def test_loads_pages_and_widgets(self, backend, store):
        backend.widgets["main-page"] = [_record("w1", config='{"color": "red"}')]
        state = await store.initialize()

        assert state.is_initialized
        assert state.active_page_index == 0
        page = state.pages[0]
        assert page.widgets[0].config == {"color": "red"}
        assert page.layout_for("w1") == LayoutItem("w1", 0, 0, 4, 3)

    @pytest.mark.asyncio
    async def test_bad_blobs_fall_back_per_widget(self, backend, store):
        backend.widgets["main-page"] = [
            _record("w1", config="{broken", layout="not json"),
            _record("w2", config='{"ok": 1}'),
        ]
        state = await store.initialize()

        page = state.pages[0]
        assert page.find_widget("w1").config == {}
        assert page.layout_for("w1") == LayoutItem("w1", 0, 0, 6, 2)
        assert page.find_widget("w2").config == {"ok": 1}

    @pytest.mark.asyncio
    async def test_creates_default_page_for_new_user(self, fallback):
        backend = FakeBackend()
        store = DashboardStore(backend, fallback=fallback)
        state = await store.initialize()

        assert [p.id for p in state.pages] == ["main-page"]
        assert state.pages[0].name == "Main Page"
        assert backend.pages[0]["pageId"] == "main-page"

    @pytest.mark.asyncio
    async def test_unreachable_backend_uses_default_page(self, backend, store):
        backend.failing.add("get_pages")
        state = await store.initialize()

        assert state.is_initialized
        assert [p.id for p in state.pages] == ["main-page"]
        assert state.pages[0].widgets == ()

    @pytest.mark.asyncio
    async def test_unreachable_backend_uses_fallback_cache(self, backend, store, fallback):
        await store.initialize()
        store.add_widget("cpu")
        backend.failing.add("save_widgets")
        await store.flush()

        backend.failing.add("get_pages")
        restarted = DashboardStore(backend, fallback=fallback)
        state = await restarted.initialize()
        assert [w.widget_type for w in state.pages[0].widgets] == ["cpu"]

    @pytest.mark.asyncio
    async def test_pending_batches_replayed_before_load(self, backend, store, fallback):
        await store.initialize()
        widget = store.add_widget("gpu")
        backend.failing.add("save_widgets")
        await store.flush()
        assert fallback.pending_batches()

        backend.failing.clear()
        restarted = DashboardStore(backend, fallback=fallback)
        state = await restarted.initialize()

        assert state.pages[0].find_widget(widget.id) is not None
        assert fallback.pending_batches() == {}


    @pytest.mark.asyncio
    async def test_malformed_page_records_use_default_page(self, backend, store):
        backend.pages = [{"pageName": "no id"}]

        state = await store.initialize()
        assert [p.id for p in state.pages] == ["main-page"]
        assert state.is_initialized


class TestPages:
    @pytest.mark.asyncio
    async def test_add_page_activates_it(self, backend, store):
        await store.initialize()
        page = await store.add_page()

        assert page.name == "Page 2"
        assert store.state.active_page_index == 1
        assert [p["pageId"] for p in backend.pages] == ["main-page", page.id]

    @pytest.mark.asyncio
    async def test_add_page_failure_leaves_state(self, backend, store):
        await store.initialize()
        before = store.state
        backend.failing.add("create_page")

        with pytest.raises(PersistenceError):
            await store.add_page()
        assert store.state is before

    @pytest.mark.asyncio
    async def test_remove_last_page_refused(self, backend, store):
        await store.initialize()
        with pytest.raises(LastPageError):
            await store.remove_page("main-page")
        assert "delete_page" not in backend.calls

    @pytest.mark.asyncio
    async def test_remove_unknown_page_is_noop(self, backend, store):
        await store.initialize()
        await store.add_page()
        before = store.state

        await store.remove_page("ghost")
        assert store.state is before
        assert "delete_page" not in backend.calls

    @pytest.mark.asyncio
    async def test_remove_page_before_active_shifts_index(self, backend, store):
        for i in range(2, 4):
            backend.add_page(f"p{i}", f"P{i}")
        await store.initialize()
        store.set_active_page_index(2)

        await store.remove_page("main-page")
        assert store.state.active_page_index == 1
        assert store.state.active_page.id == "p3"

    @pytest.mark.asyncio
    async def test_remove_active_first_page_keeps_index_zero(self, backend, store):
        backend.add_page("p2", "P2")
        await store.initialize()

        await store.remove_page("main-page")
        assert store.state.active_page_index == 0
        assert [p.id for p in store.state.pages] == ["p2"]

    @pytest.mark.asyncio
    async def test_remove_page_after_active_keeps_index(self, backend, store):
        backend.add_page("p2", "P2")
        backend.add_page("p3", "P3")
        await store.initialize()

        await store.remove_page("p3")
        assert store.state.active_page_index == 0

    @pytest.mark.asyncio
    async def test_remove_page_failure_leaves_state(self, backend, store):
        backend.add_page("p2", "P2")
        await store.initialize()
        backend.failing.add("delete_page")

        with pytest.raises(PersistenceError):
            await store.remove_page("p2")
        assert len(store.state.pages) == 2

    @pytest.mark.asyncio
    async def test_set_active_page_index_out_of_range(self, store):
        await store.initialize()
        with pytest.raises(ValidationError):
            store.set_active_page_index(3)

    @pytest.mark.asyncio
    async def test_rename_page(self, backend, store):
        await store.initialize()
        await store.update_page_name("main-page", "Overview")
        assert store.state.pages[0].name == "Overview"
        assert backend.pages[0]["pageName"] == "Overview"


class TestWidgets:
    @pytest.mark.asyncio
    async def test_add_widget_uses_first_fit(self, backend, store):
        backend.widgets["main-page"] = [
            _record("a", layout=json.dumps({"x": 0, "y": 0, "w": 4, "h": 3})),
            _record("b", layout=json.dumps({"x": 4, "y": 0, "w": 4, "h": 3})),
        ]
        await store.initialize()

        widget = store.add_widget("ram")
        item = store.state.active_page.layout_for(widget.id)
        assert (item.x, item.y, item.w, item.h) == (8, 0, 4, 3)
        assert store.save_pending
        await store.flush()

    @pytest.mark.asyncio
    async def test_add_unknown_widget_type(self, store):
        await store.initialize()
        with pytest.raises(ValidationError):
            store.add_widget("toaster")

    @pytest.mark.asyncio
    async def test_remove_widget_rolls_back_on_failure(self, backend, store):
        backend.widgets["main-page"] = [_record("w1"), _record("w2")]
        await store.initialize()
        snapshot = store.state.pages
        backend.failing.add("delete_widget")

        with pytest.raises(PersistenceError):
            await store.remove_widget("w1")

        assert store.state.pages == snapshot
        assert store.save_pending
        backend.failing.clear()
        await store.flush()
        assert {w["widgetId"] for w in backend.widgets["main-page"]} == {"w1", "w2"}

    @pytest.mark.asyncio
    async def test_failed_remove_keeps_page_added_meanwhile(self, backend, store):
        backend.widgets["main-page"] = [_record("w1"), _record("w2")]
        await store.initialize()
        gate = backend.gates["create_page"] = asyncio.Event()
        backend.failing.add("delete_widget")

        adding = asyncio.create_task(store.add_page())
        await asyncio.sleep(0)
        removing = asyncio.create_task(store.remove_widget("w1"))
        await asyncio.sleep(0)
        gate.set()
        new_page = await adding
        with pytest.raises(PersistenceError):
            await removing

        assert [p.id for p in store.state.pages] == ["main-page", new_page.id]
        assert store.state.active_page.id == new_page.id
        main = store.state.pages[0]
        assert [w.id for w in main.widgets] == ["w1", "w2"]
        assert [item.i for item in main.layouts] == ["w1", "w2"]
        assert [p["pageId"] for p in backend.pages] == ["main-page", new_page.id]
        await store.flush()

    @pytest.mark.asyncio
    async def test_remove_widget_success(self, backend, store):
        backend.widgets["main-page"] = [_record("w1"), _record("w2")]
        await store.initialize()

        await store.remove_widget("w1")
        page = store.state.active_page
        assert [w.id for w in page.widgets] == ["w2"]
        assert page.layout_for("w1") is None
        assert [w["widgetId"] for w in backend.widgets["main-page"]] == ["w2"]

    @pytest.mark.asyncio
    async def test_remove_missing_widget_is_noop(self, backend, store):
        await store.initialize()
        await store.remove_widget("ghost")
        assert "delete_widget" not in backend.calls

    @pytest.mark.asyncio
    async def test_update_missing_widget_config(self, store):
        await store.initialize()
        with pytest.raises(NotFoundError):
            store.update_widget_config("ghost", {"color": "red"})

    @pytest.mark.asyncio
    async def test_update_widget_config_merges(self, backend, store):
        backend.widgets["main-page"] = [_record("w1", config='{"color": "red", "unit": "c"}')]
        await store.initialize()

        store.update_widget_config("w1", {"color": "blue"})
        assert dict(store.state.active_page.find_widget("w1").config) == {"color": "blue", "unit": "c"}
        await store.flush()

    @pytest.mark.asyncio
    async def test_update_layout_accepts_dicts(self, backend, store):
        backend.widgets["main-page"] = [_record("w1")]
        await store.initialize()

        store.update_layout([{"i": "w1", "x": 2, "y": 5, "w": 3, "h": 2}])
        assert store.state.active_page.layout_for("w1") == LayoutItem("w1", 2, 5, 3, 2)
        await store.flush()

    @pytest.mark.asyncio
    async def test_update_layout_keeps_items_inside_grid(self, backend, store):
        backend.widgets["main-page"] = [_record("w1")]
        await store.initialize()

        store.update_layout([{"i": "w1", "x": 9, "y": 0, "w": 20, "h": 2}])
        assert store.state.active_page.layout_for("w1") == LayoutItem("w1", 0, 0, 12, 2)
        await store.flush()


class TestSaving:
    @pytest.mark.asyncio
    async def test_burst_of_edits_saves_once(self, backend, store):
        await store.initialize()
        for kind in ("cpu", "ram", "gpu"):
            store.add_widget(kind)

        await asyncio.sleep(0.1)
        assert len(backend.saved_batches) == 1
        assert len(backend.saved_batches[0]) == 3

    @pytest.mark.asyncio
    async def test_saved_state_matches_after_reload(self, backend, store):
        await store.initialize()
        widget = store.add_widget("cpu")
        store.update_widget_config(widget.id, {"color": "green"})
        await store.flush()

        reloaded = DashboardStore(backend)
        state = await reloaded.initialize()
        assert state.pages == store.state.pages

    @pytest.mark.asyncio
    async def test_save_covers_every_dirty_page(self, backend, store):
        backend.add_page("p2", "P2")
        await store.initialize()
        store.add_widget("cpu")
        store.set_active_page_index(1)
        store.add_widget("ram")

        await store.flush()
        assert {batch[0]["pageId"] for batch in backend.saved_batches} == {"main-page", "p2"}

    @pytest.mark.asyncio
    async def test_failed_save_goes_to_fallback(self, backend, store, fallback):
        await store.initialize()
        widget = store.add_widget("cpu")
        backend.failing.add("save_widgets")

        await store.flush()
        pending = fallback.pending_batches()
        assert [w["widgetId"] for w in pending["main-page"]] == [widget.id]
        # Local state is kept
        assert store.state.active_page.find_widget(widget.id) is not None

    @pytest.mark.asyncio
    async def test_successful_save_clears_pending(self, backend, store, fallback):
        await store.initialize()
        store.add_widget("cpu")
        backend.failing.add("save_widgets")
        await store.flush()

        backend.failing.clear()
        store.save_state()
        await store.flush()
        assert fallback.pending_batches() == {}

    @pytest.mark.asyncio
    async def test_successful_save_retries_other_pending_pages(self, backend, store, fallback):
        backend.add_page("p2", "P2")
        await store.initialize()
        store.set_active_page_index(1)
        widget = store.add_widget("ram")
        backend.failing.add("save_widgets")
        await store.flush()
        assert set(fallback.pending_batches()) == {"p2"}

        backend.failing.clear()
        store.set_active_page_index(0)
        store.add_widget("cpu")
        await store.flush()

        assert [w["widgetId"] for w in backend.widgets["p2"]] == [widget.id]
        assert fallback.pending_batches() == {}

    @pytest.mark.asyncio
    async def test_save_now_saves_active_page(self, backend, store):
        await store.initialize()
        widget = store.add_widget("cpu")

        await store.save_now()
        assert [w["widgetId"] for w in backend.widgets["main-page"]] == [widget.id]
        assert not store.save_pending

    @pytest.mark.asyncio
    async def test_save_now_raises_after_writing_fallback(self, backend, store, fallback):
        await store.initialize()
        widget = store.add_widget("cpu")
        backend.failing.add("save_widgets")

        with pytest.raises(PersistenceError):
            await store.save_now()
        assert [w["widgetId"] for w in fallback.pending_batches()["main-page"]] == [widget.id]
        assert not store.save_pending

    @pytest.mark.asyncio
    async def test_reset_state_reloads(self, backend, store):
        await store.initialize()
        store.add_widget("cpu")

        state = await store.reset_state()
        assert state.pages[0].widgets == ()
        assert not store.save_pending


class TestSubscribe:
    @pytest.mark.asyncio
    async def test_listener_receives_states(self, store):
        seen = []
        unsubscribe = store.subscribe(seen.append)
        await store.initialize()
        assert seen[-1].is_initialized

        unsubscribe()
        await store.add_page()
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_store(self, store):
        def broken(state):
            raise RuntimeError("listener bug")

        store.subscribe(broken)
        state = await store.initialize()
        assert state.is_initialized


class TestRepositoryBackend:
    @pytest.mark.asyncio
    async def test_store_over_repository(self, repository):
        from hwnow.dashboard.backends import RepositoryBackend

        backend = RepositoryBackend(repository)
        store = DashboardStore(backend, save_delay=0.01)
        await store.initialize()
        widget = store.add_widget("disk_read")
        await store.flush()

        stored = await repository.get_widgets(USER, "main-page")
        assert [w.widget_id for w in stored] == [widget.id]
        assert json.loads(stored[0].layout) == {"x": 0, "y": 0, "w": 4, "h": 3}

        await store.add_page()
        await store.remove_page("main-page")
        assert await repository.get_widgets(USER, "main-page") == []
        assert [p.page_order for p in await repository.get_pages(USER)] == [0]
