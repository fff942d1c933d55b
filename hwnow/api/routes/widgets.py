"""Widget state routes — list, batch save, delete."""

from fastapi import APIRouter, Depends, Query

from ...dependencies import get_repository
from ...persistence.repository import DashboardRepository
from ..schemas import WidgetPayload

router = APIRouter(prefix="/widgets", tags=["widgets"])


@router.get("")
async def list_widgets(
    user_id: str = Query(..., alias="userId", min_length=1),
    page_id: str = Query("main-page", alias="pageId"),
    repo: DashboardRepository = Depends(get_repository),
):
    """Widgets of a page; an empty list when the page has none."""
    widgets = await repo.get_widgets(user_id, page_id or "main-page")
    return [w.to_dict() for w in widgets]


@router.post("")
async def save_widgets(
    body: list[WidgetPayload],
    repo: DashboardRepository = Depends(get_repository),
):
    """Save a batch of widgets using the configured save strategy."""
    if not body:
        return {"success": True, "message": "No widgets to save", "saved": 0}

    saved = await repo.save_widgets([w.to_record() for w in body])
    return {
        "success": True,
        "message": "Widgets saved",
        "saved": saved,
        "strategy": repo.save_strategy.value,
    }


@router.delete("")
async def delete_widget(
    user_id: str = Query(..., alias="userId", min_length=1),
    page_id: str = Query("main-page", alias="pageId"),
    widget_id: str = Query(..., alias="widgetId", min_length=1),
    repo: DashboardRepository = Depends(get_repository),
):
    """Delete one widget. Deleting a missing widget still succeeds."""
    deleted = await repo.delete_widget(user_id, page_id or "main-page", widget_id)
    return {"success": True, "deleted": deleted}
