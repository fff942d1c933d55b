"""HTTP dashboard backend against the real API through ASGITransport."""

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from hwnow.dashboard.backends import HttpDashboardBackend
from hwnow.dashboard.store import DashboardStore
from hwnow.errors import ConflictError, LastPageError, NotFoundError, PersistenceError

USER = "global-user"


@pytest_asyncio.fixture
async def backend(app_client):
    from hwnow.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test/api/v1") as client:
        yield HttpDashboardBackend(client=client)


class TestHttpDashboardBackend:
    @pytest.mark.asyncio
    async def test_page_lifecycle(self, backend):
        await backend.create_page(USER, "main-page", "Main Page")
        await backend.create_page(USER, "p2", "P2")
        await backend.update_page_name(USER, "p2", "Second")

        pages = await backend.get_pages(USER)
        assert [(p["pageId"], p["pageName"]) for p in pages] == [
            ("main-page", "Main Page"),
            ("p2", "Second"),
        ]

        await backend.delete_page(USER, "p2")
        assert len(await backend.get_pages(USER)) == 1

    @pytest.mark.asyncio
    async def test_error_statuses_map_to_domain_errors(self, backend):
        await backend.create_page(USER, "main-page", "Main Page")

        with pytest.raises(ConflictError):
            await backend.create_page(USER, "main-page", "Again")
        with pytest.raises(ConflictError) as exc_info:
            await backend.delete_page(USER, "main-page")
        assert "last" in exc_info.value.detail
        with pytest.raises(NotFoundError):
            await backend.update_page_name(USER, "ghost", "Name")

    @pytest.mark.asyncio
    async def test_widgets_round_trip(self, backend):
        batch = [{
            "userId": USER,
            "pageId": "main-page",
            "widgetId": "w1",
            "widgetType": "cpu",
            "config": '{"color": "red"}',
            "layout": '{"x": 0, "y": 0, "w": 4, "h": 3}',
        }]
        await backend.save_widgets(batch)
        widgets = await backend.get_widgets(USER, "main-page")
        assert widgets[0]["config"] == '{"color": "red"}'

        await backend.delete_widget(USER, "main-page", "w1")
        assert await backend.get_widgets(USER, "main-page") == []

    @pytest.mark.asyncio
    async def test_store_over_http(self, backend):
        store = DashboardStore(backend, user_id=USER, save_delay=0.01)
        state = await store.initialize()
        assert [p.id for p in state.pages] == ["main-page"]

        widget = store.add_widget("cpu")
        await store.flush()

        with pytest.raises(LastPageError):
            await store.remove_page("main-page")

        reloaded = await DashboardStore(backend, user_id=USER).initialize()
        assert reloaded.pages[0].find_widget(widget.id) is not None


class TestUnreachableApi:
    @pytest.mark.asyncio
    async def test_transport_error_becomes_persistence_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://hwnow/api/v1")
        backend = HttpDashboardBackend(client=client)
        with pytest.raises(PersistenceError):
            await backend.get_pages(USER)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_non_json_error_body(self):
        client = AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway")),
            base_url="http://hwnow/api/v1",
        )
        backend = HttpDashboardBackend(client=client)
        with pytest.raises(PersistenceError) as exc_info:
            await backend.get_pages(USER)
        assert exc_info.value.detail == "bad gateway"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_non_json_success_body_falls_back_to_default_page(self):
        client = AsyncClient(
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, text="<html>proxy</html>")
            ),
            base_url="http://hwnow/api/v1",
        )
        backend = HttpDashboardBackend(client=client)
        with pytest.raises(PersistenceError):
            await backend.get_pages(USER)

        state = await DashboardStore(backend, user_id=USER).initialize()
        assert [p.id for p in state.pages] == ["main-page"]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_object_body_where_list_expected(self):
        client = AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"pages": []})),
            base_url="http://hwnow/api/v1",
        )
        backend = HttpDashboardBackend(client=client)
        with pytest.raises(PersistenceError):
            await backend.get_widgets(USER, "main-page")
        await client.aclose()
