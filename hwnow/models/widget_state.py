"""Widget state model — per-user, per-page widget config and layout blobs."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class WidgetState(Base):
    __tablename__ = "widget_states"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    page_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    widget_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    widget_type: Mapped[str] = mapped_column(String(64), nullable=False)
    config: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    layout: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "pageId": self.page_id,
            "widgetId": self.widget_id,
            "widgetType": self.widget_type,
            "config": self.config or "",
            "layout": self.layout or "",
        }
