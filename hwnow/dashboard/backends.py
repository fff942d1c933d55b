"""Backends the dashboard store persists through.

Both speak the same camelCase record shapes as the REST API:

- page: ``{pageId, pageName, pageOrder}``
- widget: ``{userId, pageId, widgetId, widgetType, config, layout}`` where
  ``config`` and ``layout`` are JSON text.

Failures surface as ``hwnow.errors`` exceptions whichever backend is used.
"""

from __future__ import annotations

from typing import Optional, Protocol

import httpx

from ..errors import PersistenceError, error_for_status
from ..persistence.repository import DashboardRepository, WidgetRecord
from ..utils.logging import get_logger

logger = get_logger("dashboard.backends")


class DashboardBackend(Protocol):
    async def get_pages(self, user_id: str) -> list[dict]: ...

    async def create_page(self, user_id: str, page_id: str, page_name: str) -> None: ...

    async def delete_page(self, user_id: str, page_id: str) -> None: ...

    async def update_page_name(self, user_id: str, page_id: str, page_name: str) -> None: ...

    async def get_widgets(self, user_id: str, page_id: str) -> list[dict]: ...

    async def save_widgets(self, widgets: list[dict]) -> None: ...

    async def delete_widget(self, user_id: str, page_id: str, widget_id: str) -> None: ...


class HttpDashboardBackend:
    """Talks to the ``/api/v1`` REST surface with httpx.

    Pass ``client`` to reuse a long-lived ``httpx.AsyncClient`` (its
    ``base_url`` must point at the API root); otherwise a client is opened
    per request.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8080/api/v1",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                response = await self._client.request(method, path, **kwargs)
            else:
                async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout) as client:
                    response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("dashboard_api_unreachable", method=method, path=path, error=str(e))
            raise PersistenceError(f"Dashboard API unreachable: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            detail = body.get("detail", response.text) if isinstance(body, dict) else response.text
            logger.warning(
                "dashboard_api_error",
                method=method,
                path=path,
                status_code=response.status_code,
                detail=detail,
            )
            raise error_for_status(response.status_code, str(detail))
        return response

    async def _get_list(self, path: str, params: dict) -> list[dict]:
        response = await self._request("GET", path, params=params)
        try:
            body = response.json()
        except ValueError as e:
            logger.warning("dashboard_api_bad_body", path=path, error=str(e))
            raise PersistenceError(f"Dashboard API returned a non-JSON body for {path}") from e
        if body is None:
            return []
        if not isinstance(body, list) or not all(isinstance(r, dict) for r in body):
            logger.warning("dashboard_api_bad_body", path=path, body_type=type(body).__name__)
            raise PersistenceError(f"Dashboard API returned an unexpected body for {path}")
        return body

    async def get_pages(self, user_id: str) -> list[dict]:
        return await self._get_list("/pages", {"userId": user_id})

    async def create_page(self, user_id: str, page_id: str, page_name: str) -> None:
        await self._request(
            "POST", "/pages", json={"userId": user_id, "pageId": page_id, "pageName": page_name}
        )

    async def delete_page(self, user_id: str, page_id: str) -> None:
        await self._request("DELETE", "/pages", params={"userId": user_id, "pageId": page_id})

    async def update_page_name(self, user_id: str, page_id: str, page_name: str) -> None:
        await self._request(
            "PUT", "/pages/name", json={"userId": user_id, "pageId": page_id, "pageName": page_name}
        )

    async def get_widgets(self, user_id: str, page_id: str) -> list[dict]:
        return await self._get_list("/widgets", {"userId": user_id, "pageId": page_id})

    async def save_widgets(self, widgets: list[dict]) -> None:
        await self._request("POST", "/widgets", json=widgets)

    async def delete_widget(self, user_id: str, page_id: str, widget_id: str) -> None:
        await self._request(
            "DELETE",
            "/widgets",
            params={"userId": user_id, "pageId": page_id, "widgetId": widget_id},
        )


class RepositoryBackend:
    """In-process backend calling the repository directly."""

    def __init__(self, repository: DashboardRepository):
        self._repo = repository

    async def get_pages(self, user_id: str) -> list[dict]:
        return [page.to_dict() for page in await self._repo.get_pages(user_id)]

    async def create_page(self, user_id: str, page_id: str, page_name: str) -> None:
        await self._repo.create_page(user_id, page_id, page_name)

    async def delete_page(self, user_id: str, page_id: str) -> None:
        await self._repo.delete_page(user_id, page_id)

    async def update_page_name(self, user_id: str, page_id: str, page_name: str) -> None:
        await self._repo.update_page_name(user_id, page_id, page_name)

    async def get_widgets(self, user_id: str, page_id: str) -> list[dict]:
        return [w.to_dict() for w in await self._repo.get_widgets(user_id, page_id)]

    async def save_widgets(self, widgets: list[dict]) -> None:
        await self._repo.save_widgets([
            WidgetRecord(
                user_id=w["userId"],
                page_id=w["pageId"],
                widget_id=w["widgetId"],
                widget_type=w["widgetType"],
                config=w.get("config", ""),
                layout=w.get("layout", ""),
            )
            for w in widgets
        ])

    async def delete_widget(self, user_id: str, page_id: str, widget_id: str) -> None:
        await self._repo.delete_widget(user_id, page_id, widget_id)
