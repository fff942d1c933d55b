"""Dashboard page routes — list, create, delete, rename."""

from fastapi import APIRouter, Depends, Query

from ...dependencies import get_repository
from ...errors import NotFoundError
from ...persistence.repository import DashboardRepository
from ..schemas import PageRequest

router = APIRouter(prefix="/pages", tags=["pages"])


@router.get("")
async def list_pages(
    user_id: str = Query(..., alias="userId", min_length=1),
    repo: DashboardRepository = Depends(get_repository),
):
    """Pages of a user ordered by position. Empty when the user has none."""
    return [page.to_dict() for page in await repo.get_pages(user_id)]


@router.post("")
async def create_page(
    body: PageRequest,
    repo: DashboardRepository = Depends(get_repository),
):
    page = await repo.create_page(body.user_id, body.page_id, body.page_name)
    return {"success": True, "message": "Page created", "page": page.to_dict()}


@router.delete("")
async def delete_page(
    user_id: str = Query(..., alias="userId", min_length=1),
    page_id: str = Query(..., alias="pageId", min_length=1),
    repo: DashboardRepository = Depends(get_repository),
):
    """Delete a page and its widgets. The user's last page cannot be deleted.

    Deleting a page that does not exist succeeds without changing anything.
    """
    try:
        await repo.delete_page(user_id, page_id)
    except NotFoundError:
        return {"success": True, "message": "Page not found, nothing deleted"}
    return {"success": True, "message": "Page deleted"}


@router.put("/name")
async def update_page_name(
    body: PageRequest,
    repo: DashboardRepository = Depends(get_repository),
):
    page = await repo.update_page_name(body.user_id, body.page_id, body.page_name)
    return {"success": True, "message": "Page renamed", "page": page.to_dict()}
