"""Dashboard repository — durable CRUD for pages, widgets and resource logs.

Every write runs inside a single transaction; a failure rolls the whole
transaction back so partial writes are never observable.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, insert, literal_column, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import ConflictError, LastPageError, NotFoundError, PersistenceError, ValidationError
from ..models.page import Page
from ..models.resource_log import ResourceLog
from ..models.widget_state import WidgetState
from ..utils.logging import get_logger

logger = get_logger("persistence.repository")


class SaveStrategy(str, Enum):
    """How ``save_widgets`` treats widgets missing from a batch.

    REPLACE_ALL: the batch is the page's complete widget set; every stored
        widget of the batch's (user, page) is deleted before inserting.
    UPSERT: rows are inserted or updated by (user, page, widget) key;
        stored widgets absent from the batch are left untouched.
    """

    REPLACE_ALL = "replace_all"
    UPSERT = "upsert"


@dataclass(frozen=True)
class WidgetRecord:
    """One widget row to be written. ``config`` and ``layout`` are JSON text."""

    user_id: str
    page_id: str
    widget_id: str
    widget_type: str
    config: str = ""
    layout: str = ""

    def as_values(self, now: datetime) -> dict:
        return {
            "user_id": self.user_id,
            "page_id": self.page_id,
            "widget_id": self.widget_id,
            "widget_type": self.widget_type,
            "config": self.config,
            "layout": self.layout,
            "created_at": now,
            "updated_at": now,
        }


@dataclass(frozen=True)
class ResourceSample:
    timestamp: datetime
    metric_type: str
    value: float


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _require(**fields: str) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")


class DashboardRepository:
    """Pages, widget states and resource logs over an async session factory."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        save_strategy: SaveStrategy | str = SaveStrategy.REPLACE_ALL,
    ):
        self._factory = session_factory
        self._save_strategy = SaveStrategy(save_strategy)

    @property
    def save_strategy(self) -> SaveStrategy:
        return self._save_strategy

    # --- Pages ---

    async def get_pages(self, user_id: str) -> list[Page]:
        """Pages of a user ordered by position. Empty means "needs a default page"."""
        _require(user_id=user_id)
        async with self._factory() as session:
            result = await session.execute(
                select(Page).where(Page.user_id == user_id).order_by(Page.page_order)
            )
            return list(result.scalars().all())

    async def create_page(self, user_id: str, page_id: str, page_name: str) -> Page:
        """Append a page at ``max(page_order) + 1`` (0 for the first page)."""
        _require(user_id=user_id, page_id=page_id, page_name=page_name)
        async with self._factory() as session:
            try:
                async with session.begin():
                    existing = await session.get(Page, (user_id, page_id))
                    if existing is not None:
                        raise ConflictError(f"Page {page_id} already exists")

                    result = await session.execute(
                        select(func.coalesce(func.max(Page.page_order), -1)).where(
                            Page.user_id == user_id
                        )
                    )
                    next_order = int(result.scalar_one()) + 1

                    now = _now()
                    page = Page(
                        user_id=user_id,
                        page_id=page_id,
                        page_name=page_name,
                        page_order=next_order,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(page)
            except IntegrityError as e:
                raise ConflictError(f"Page {page_id} already exists") from e
            except SQLAlchemyError as e:
                logger.error("create_page_failed", user_id=user_id, page_id=page_id, error=str(e))
                raise PersistenceError("Failed to create page") from e

        logger.info("page_created", user_id=user_id, page_id=page_id, page_order=next_order)
        return page

    async def ensure_default_page(self, user_id: str, page_id: str, page_name: str) -> bool:
        """Create the page if the user has no page with that id. Returns True if created."""
        try:
            await self.create_page(user_id, page_id, page_name)
            return True
        except ConflictError:
            return False

    async def delete_page(self, user_id: str, page_id: str) -> None:
        """Delete a page and all its widgets atomically.

        Remaining pages are renumbered so positions stay dense. Raises
        ``LastPageError`` when the page is the user's only one. The check runs
        after the delete inside the same transaction.
        """
        _require(user_id=user_id, page_id=page_id)
        async with self._factory() as session:
            try:
                async with session.begin():
                    page = await session.get(Page, (user_id, page_id))
                    if page is None:
                        raise NotFoundError(f"Page {page_id} not found")

                    widgets = await session.execute(
                        delete(WidgetState).where(
                            WidgetState.user_id == user_id,
                            WidgetState.page_id == page_id,
                        )
                    )
                    await session.delete(page)
                    await session.flush()

                    remaining = await session.execute(
                        select(Page).where(Page.user_id == user_id).order_by(Page.page_order)
                    )
                    others = remaining.scalars().all()
                    if not others:
                        raise LastPageError("Cannot delete the last remaining page")
                    for index, other in enumerate(others):
                        if other.page_order != index:
                            other.page_order = index
            except SQLAlchemyError as e:
                logger.error("delete_page_failed", user_id=user_id, page_id=page_id, error=str(e))
                raise PersistenceError("Failed to delete page") from e

        logger.info(
            "page_deleted",
            user_id=user_id,
            page_id=page_id,
            widgets_deleted=widgets.rowcount,
        )

    async def update_page_name(self, user_id: str, page_id: str, new_name: str) -> Page:
        _require(user_id=user_id, page_id=page_id, page_name=new_name)
        async with self._factory() as session:
            try:
                async with session.begin():
                    page = await session.get(Page, (user_id, page_id))
                    if page is None:
                        raise NotFoundError(f"Page {page_id} not found")
                    page.page_name = new_name
                    page.updated_at = _now()
            except SQLAlchemyError as e:
                logger.error("update_page_name_failed", user_id=user_id, page_id=page_id, error=str(e))
                raise PersistenceError("Failed to update page name") from e

        logger.info("page_renamed", user_id=user_id, page_id=page_id)
        return page

    # --- Widgets ---

    async def get_widgets(self, user_id: str, page_id: str) -> list[WidgetState]:
        """All widgets of a page; an empty list when there are none."""
        _require(user_id=user_id, page_id=page_id)
        async with self._factory() as session:
            result = await session.execute(
                select(WidgetState)
                .where(WidgetState.user_id == user_id, WidgetState.page_id == page_id)
                .order_by(literal_column("widget_states.rowid"))
            )
            return list(result.scalars().all())

    async def save_widgets(
        self,
        widgets: Sequence[WidgetRecord],
        strategy: SaveStrategy | str | None = None,
    ) -> int:
        """Write a batch of widgets in one transaction. Returns the rows written.

        An empty batch is a no-op that never touches the database.
        """
        if not widgets:
            logger.debug("save_widgets_empty")
            return 0

        strategy = SaveStrategy(strategy or self._save_strategy)
        for w in widgets:
            _require(
                user_id=w.user_id,
                page_id=w.page_id,
                widget_id=w.widget_id,
                widget_type=w.widget_type,
            )

        targets = {(w.user_id, w.page_id) for w in widgets}
        if strategy is SaveStrategy.REPLACE_ALL and len(targets) > 1:
            raise ValidationError("A replace-all batch must target a single user and page")

        now = _now()
        async with self._factory() as session:
            try:
                async with session.begin():
                    if strategy is SaveStrategy.REPLACE_ALL:
                        user_id, page_id = next(iter(targets))
                        result = await session.execute(
                            delete(WidgetState).where(
                                WidgetState.user_id == user_id,
                                WidgetState.page_id == page_id,
                            )
                        )
                        logger.debug(
                            "widgets_replaced",
                            user_id=user_id,
                            page_id=page_id,
                            deleted=result.rowcount,
                        )
                        await session.execute(
                            insert(WidgetState), [w.as_values(now) for w in widgets]
                        )
                    else:
                        for w in widgets:
                            stmt = sqlite_insert(WidgetState).values(**w.as_values(now))
                            stmt = stmt.on_conflict_do_update(
                                index_elements=["user_id", "page_id", "widget_id"],
                                set_={
                                    "widget_type": stmt.excluded.widget_type,
                                    "config": stmt.excluded.config,
                                    "layout": stmt.excluded.layout,
                                    "updated_at": stmt.excluded.updated_at,
                                },
                            )
                            await session.execute(stmt)
            except IntegrityError as e:
                logger.error("save_widgets_conflict", strategy=strategy.value, error=str(e))
                raise ConflictError("Duplicate widget in batch") from e
            except SQLAlchemyError as e:
                logger.error("save_widgets_failed", strategy=strategy.value, error=str(e))
                raise PersistenceError("Failed to save widgets") from e

        logger.info("widgets_saved", strategy=strategy.value, count=len(widgets))
        return len(widgets)

    async def delete_widget(self, user_id: str, page_id: str, widget_id: str) -> bool:
        """Delete one widget. Deleting a missing widget succeeds and returns False."""
        _require(user_id=user_id, page_id=page_id, widget_id=widget_id)
        async with self._factory() as session:
            try:
                async with session.begin():
                    result = await session.execute(
                        delete(WidgetState).where(
                            WidgetState.user_id == user_id,
                            WidgetState.page_id == page_id,
                            WidgetState.widget_id == widget_id,
                        )
                    )
            except SQLAlchemyError as e:
                logger.error("delete_widget_failed", widget_id=widget_id, error=str(e))
                raise PersistenceError("Failed to delete widget") from e

        if result.rowcount == 0:
            logger.warning(
                "widget_delete_missing", user_id=user_id, page_id=page_id, widget_id=widget_id
            )
            return False
        logger.info("widget_deleted", user_id=user_id, page_id=page_id, widget_id=widget_id)
        return True

    # --- Resource logs ---

    async def append_resource_logs(self, samples: Iterable[ResourceSample]) -> int:
        rows = [
            {"timestamp": s.timestamp, "metric_type": s.metric_type, "value": s.value}
            for s in samples
        ]
        if not rows:
            return 0
        async with self._factory() as session:
            try:
                async with session.begin():
                    await session.execute(insert(ResourceLog), rows)
            except SQLAlchemyError as e:
                raise PersistenceError("Failed to append resource logs") from e
        return len(rows)

    async def get_resource_logs(
        self,
        metric_type: Optional[str] = None,
        since: Optional[datetime] = None,
        limit: int = 500,
    ) -> list[ResourceLog]:
        """Most recent samples first."""
        query = select(ResourceLog)
        if metric_type:
            query = query.where(ResourceLog.metric_type == metric_type)
        if since is not None:
            query = query.where(ResourceLog.timestamp >= since)
        query = query.order_by(ResourceLog.timestamp.desc(), ResourceLog.id.desc()).limit(limit)
        async with self._factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())
